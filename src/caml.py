# castudio
# Copyright 2025 - Ricardo Quesada

"""
CAML codec: Core Animation XML <-> layer tree.

Editor space (top-left origin, Y down, top-left anchored positions) is
converted to Core Animation space (bottom-left origin, Y up, center anchored
positions) when writing, and back when reading. See geometry.py.
"""

import logging
import math
import re
import xml.etree.ElementTree as ET

from coloraide import Color

import geometry
from ca_states import (
    DEFAULT_STATE_NAMES,
    StateOverride,
    StateTransition,
    TransitionAnimation,
    TransitionElement,
    default_transitions,
    is_base_state,
)
from geometry import Size, Vec2
from layer import (
    KEYFRAME_KEY_PATHS,
    GroupLayer,
    ImageLayer,
    KeyframeAnimation,
    Layer,
    ShapeLayer,
    TextLayer,
    new_layer_id,
)
from layer_tree import ANCHOR_TOLERANCE, layer_index
from project import CAProject

logger = logging.getLogger(__name__)

CAML_NS = "http://www.apple.com/CoreAnimation/1.0"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

# Shapes without fill are rendered opaque white
DEFAULT_SHAPE_FILL = "#ffffffff"

_ROTATION_KEY_PATHS = ("transform.rotation.x", "transform.rotation.y", "transform.rotation.z")
_NUMERIC_TYPE_RE = re.compile(r"^(integer|float|real|number)$", re.IGNORECASE)
_ROTATE_RE = re.compile(r"rotate\(([^)]+)\)", re.IGNORECASE)
# layer field -> rotation attribute
_ROTATION_ATTRIBUTES = {
    "rotation": "transform.rotation.z",
    "rotation_x": "transform.rotation.x",
    "rotation_y": "transform.rotation.y",
}

ET.register_namespace("", CAML_NS)


def _tag(name: str) -> str:
    return f"{{{CAML_NS}}}{name}"


def _local_name(el: ET.Element) -> str:
    return el.tag.rsplit("}", 1)[-1]


def _child(el: ET.Element, name: str) -> ET.Element | None:
    for c in el:
        if _local_name(c) == name:
            return c
    return None


def _descendants(el: ET.Element, name: str) -> list[ET.Element]:
    return [d for d in el.iter() if _local_name(d) == name]


def _fmt_number(value: float) -> str:
    if isinstance(value, bool):
        value = int(value)
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _parse_number_list(value: str | None) -> list[float]:
    if not value:
        return []
    out = []
    for s in re.split(r"[;\s]+", value.strip()):
        if not s:
            continue
        try:
            out.append(float(s))
        except ValueError:
            out.append(0.0)
    return out


def _parse_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        f = float(value)
    except ValueError:
        return None
    return f if math.isfinite(f) else None


#
# Colors
#
def hex_to_ca_color(value: str) -> str:
    """Converts a CSS color (e.g: "#ff8000", "#ff800080", "red") into "r g b a" unit floats."""
    color = Color(value).convert("srgb").fit()
    r, g, b = color.coords()
    a = color.alpha()
    return " ".join(_fmt_number(round(v, 4)) for v in (r, g, b, a))


def ca_color_to_hex(value: str) -> str | None:
    """Converts "r g b [a]" unit floats into "#rrggbb" (or "#rrggbbaa" when translucent)."""
    value = value.strip()
    if not value:
        return None
    parts = _parse_number_list(value)
    if len(parts) < 3 or value.startswith("#"):
        # Not in Core Animation format. Accept anything that is a valid CSS color.
        try:
            return Color(value).to_string(hex=True)
        except ValueError:
            logger.warning(f"Invalid color: '{value}'")
            return None
    alpha = parts[3] if len(parts) >= 4 else 1.0
    rgb = [min(1.0, max(0.0, v)) for v in parts[:3]]
    return Color("srgb", rgb, min(1.0, max(0.0, alpha))).to_string(hex=True)


def _set_color(el: ET.Element, name: str, value: str | None) -> None:
    if not value:
        return
    try:
        el.set(name, hex_to_ca_color(value))
    except ValueError:
        logger.warning(f"Ignoring invalid color '{value}' for attribute '{name}'")


#
# Serialization
#
def _set(el: ET.Element, name: str, value) -> None:
    if value is None or value == "":
        return
    if isinstance(value, (int, float)):
        value = _fmt_number(value)
    el.set(name, str(value))


def _serialize_layer(layer: Layer, container_height: float) -> ET.Element:
    el = ET.Element(_tag("CALayer"))
    _set(el, "id", layer.id)
    _set(el, "name", layer.name)
    w = max(0, layer.size.w)
    h = max(0, layer.size.h)
    el.set("bounds", f"0 0 {_fmt_number(w)} {_fmt_number(h)}")
    ca_x, ca_y = geometry.to_ca_layer_space(layer.position, Size(w, h), container_height)
    el.set("position", f"{ca_x} {ca_y}")

    anchor = layer.anchor_point
    if anchor is not None and (
        abs(anchor.x - 0.5) > ANCHOR_TOLERANCE or abs(anchor.y - 0.5) > ANCHOR_TOLERANCE
    ):
        el.set("anchorPoint", f"{_fmt_number(anchor.x)} {_fmt_number(anchor.y)}")
    if layer.geometry_flipped is not None:
        el.set("geometryFlipped", "1" if layer.geometry_flipped else "0")
    _set(el, "opacity", layer.opacity)
    for field_name, attr_name in _ROTATION_ATTRIBUTES.items():
        degrees = getattr(layer, field_name)
        if degrees is not None:
            _set(el, attr_name, geometry.degrees_to_radians(degrees))
    if not layer.visible:
        el.set("hidden", "1")

    match layer:
        case ShapeLayer():
            _set_color(el, "backgroundColor", layer.fill or layer.background_color or DEFAULT_SHAPE_FILL)
            _set(el, "cornerRadius", layer.radius if layer.radius is not None else layer.corner_radius)
            _set_color(el, "borderColor", layer.stroke or layer.border_color)
            _set(el, "borderWidth", layer.stroke_width if layer.stroke_width is not None else layer.border_width)
        case _:
            _set_color(el, "backgroundColor", layer.background_color)
            _set(el, "cornerRadius", layer.corner_radius)
            _set_color(el, "borderColor", layer.border_color)
            _set(el, "borderWidth", layer.border_width)

    match layer:
        case TextLayer():
            el.set("text", layer.text or "")
            _set(el, "fontFamily", layer.font_family)
            _set(el, "fontSize", layer.font_size)
            _set_color(el, "color", layer.color)
            _set(el, "align", layer.align)

    # Needed by the wallpaper engine
    el.set("allowsEdgeAntialiasing", "1")
    el.set("allowsGroupOpacity", "1")
    el.set("contentsFormat", "RGBA8")
    el.set("cornerCurve", "circular")

    match layer:
        case ImageLayer():
            contents = ET.SubElement(el, _tag("contents"))
            image = ET.SubElement(contents, _tag("CGImage"))
            _set(image, "src", layer.src)
        case GroupLayer():
            if layer.children:
                sublayers = ET.SubElement(el, _tag("sublayers"))
                for child in layer.children:
                    sublayers.append(_serialize_layer(child, container_height))

    animations = _serialize_animations(layer, container_height)
    if animations is not None:
        el.append(animations)
    return el


def _keyframe_value_to_ca(key_path: str, value, size: Size, container_height: float) -> tuple[str, str]:
    """Returns the (tag, value) of a keyframe. Invalid values are written as 0."""
    if key_path == "position":
        point = value if isinstance(value, Vec2) else Vec2(0, 0)
        ca_x, ca_y = geometry.to_ca_layer_space(point, size, container_height)
        return "CGPoint", f"{ca_x} {ca_y}"
    n = value if isinstance(value, (int, float)) and math.isfinite(value) else 0
    if key_path == "position.x":
        return "NSNumber", str(geometry.to_ca_x(n, size.w))
    if key_path == "position.y":
        return "NSNumber", str(geometry.to_ca_y(n, size.h, container_height))
    return "real", _fmt_number(geometry.degrees_to_radians(n))


def _serialize_animations(layer: Layer, container_height: float) -> ET.Element | None:
    anim = layer.animation
    if anim is None or not anim.enabled or not anim.values:
        return None
    if anim.key_path not in KEYFRAME_KEY_PATHS:
        logger.warning(f"Layer {layer.id}: cannot animate '{anim.key_path}', animation skipped")
        return None

    animations = ET.Element(_tag("animations"))
    a_el = ET.SubElement(
        animations,
        _tag("animation"),
        {
            "type": "CAKeyframeAnimation",
            "keyPath": anim.key_path,
            "autoreverses": "1" if anim.autoreverses else "0",
            # Starts with the wallpaper
            "beginTime": "1e-100",
            "duration": _fmt_number(anim.effective_duration),
            "removedOnCompletion": "0",
        },
    )
    if anim.infinite:
        a_el.set("repeatCount", "inf")
        a_el.set("repeatDuration", "inf")
    else:
        a_el.set("repeatDuration", _fmt_number(anim.effective_repeat_duration))
    a_el.set("calculationMode", "linear")

    size = Size(max(0, layer.size.w), max(0, layer.size.h))
    values = ET.SubElement(a_el, _tag("values"))
    for value in anim.values:
        tag, ca_value = _keyframe_value_to_ca(anim.key_path, value, size, container_height)
        ET.SubElement(values, _tag(tag), {"value": ca_value})
    return animations


def _base_value(layer: Layer, key_path: str) -> float | None:
    match key_path:
        case "position.x":
            return layer.position.x
        case "position.y":
            return layer.position.y
        case "bounds.size.width":
            return layer.size.w
        case "bounds.size.height":
            return layer.size.h
        case "transform.rotation.z":
            return layer.rotation or 0
        case "transform.rotation.x":
            return layer.rotation_x or 0
        case "transform.rotation.y":
            return layer.rotation_y or 0
        case "opacity":
            return 1 if layer.opacity is None else layer.opacity
    return None


def complete_state_overrides(
    state_names: list[str], state_overrides: dict[str, list[StateOverride]], index: dict[str, Layer]
) -> dict[str, list[StateOverride]]:
    """
    Returns a copy of state_overrides where every (target, key path) overridden
    in a state is present in all the states. Missing ones get the target's
    base value. The wallpaper engine only animates keys present in every state.
    """
    result = {name: list(state_overrides.get(name, [])) for name in state_names}
    present = {name: {(ov.target_id, ov.key_path) for ov in ovs} for name, ovs in result.items()}
    for name in state_names:
        for ov in list(result[name]):
            key = (ov.target_id, ov.key_path)
            target = index.get(ov.target_id)
            value = _base_value(target, ov.key_path) if target is not None else None
            if value is None:
                continue
            for other in state_names:
                if key not in present[other]:
                    result[other].append(StateOverride(ov.target_id, ov.key_path, value))
                    present[other].add(key)
    return result


def _override_value_to_ca(
    ov: StateOverride, index: dict[str, Layer], container_height: float
) -> tuple[str, str]:
    """Returns the (type, value) attributes of an override."""
    value = ov.value
    if isinstance(value, str):
        return "string", value
    target = index.get(ov.target_id)
    if ov.key_path == "position.x" and target is not None:
        value = geometry.to_ca_x(value, target.size.w)
    elif ov.key_path == "position.y" and target is not None:
        value = geometry.to_ca_y(value, target.size.h, container_height)
    elif ov.key_path in _ROTATION_KEY_PATHS:
        value = geometry.degrees_to_radians(value)
    if float(value).is_integer():
        return "integer", str(int(value))
    return "real", repr(float(value))


def _serialize_states(
    state_names: list[str],
    state_overrides: dict[str, list[StateOverride]],
    index: dict[str, Layer],
    container_height: float,
) -> ET.Element:
    states_el = ET.Element(_tag("states"))
    completed = complete_state_overrides(state_names, state_overrides, index)
    for name in state_names:
        state_el = ET.SubElement(states_el, _tag("LKState"), {"name": name})
        elements = ET.SubElement(state_el, _tag("elements"))
        for ov in completed[name]:
            set_value = ET.SubElement(
                elements, _tag("LKStateSetValue"), {"targetId": ov.target_id, "keyPath": ov.key_path}
            )
            value_type, value = _override_value_to_ca(ov, index, container_height)
            ET.SubElement(set_value, _tag("value"), {"type": value_type, "value": value})
    return states_el


def _serialize_transitions(transitions: list[StateTransition]) -> ET.Element:
    transitions_el = ET.Element(_tag("stateTransitions"))
    for t in transitions:
        t_el = ET.SubElement(
            transitions_el, _tag("LKStateTransition"), {"fromState": t.from_state, "toState": t.to_state}
        )
        elements = ET.SubElement(t_el, _tag("elements"))
        for e in t.elements:
            e_el = ET.SubElement(
                elements, _tag("LKStateTransitionElement"), {"targetId": e.target_id, "key": e.key_path}
            )
            anim = e.animation
            if anim is None:
                continue
            a_el = ET.SubElement(e_el, _tag("animation"))
            _set(a_el, "type", anim.type)
            _set(a_el, "damping", anim.damping)
            _set(a_el, "mass", anim.mass)
            _set(a_el, "stiffness", anim.stiffness)
            _set(a_el, "velocity", anim.velocity)
            _set(a_el, "duration", anim.duration)
            _set(a_el, "fillMode", anim.fill_mode)
            _set(a_el, "keyPath", anim.key_path)
    return transitions_el


def serialize_caml(
    root: Layer,
    project: CAProject | None = None,
    state_names: list[str] | None = None,
    state_overrides: dict[str, list[StateOverride]] | None = None,
    state_transitions: list[StateTransition] | None = None,
    pretty: bool = False,
) -> str:
    """
    Serializes a layer tree, and its states, into a CAML document.

    Args:
        root: the root layer.
        project: used for the container height (844 when None) and for the
            root geometryFlipped, unless the root sets its own.
        state_names: states to write. The base state is skipped. When no
            states are left, Locked, Unlock and Sleep are written.
        state_overrides: state name -> overrides. Not modified.
        state_transitions: written as is. The default transitions are written
            when empty.
        pretty: indents the output.

    Returns:
        The CAML document, including the XML declaration.
    """
    container_height = geometry.container_height_or_default(project.height if project is not None else None)
    names = [n for n in (state_names or []) if not is_base_state(n)]
    if not names:
        names = list(DEFAULT_STATE_NAMES)
    transitions = state_transitions or default_transitions()

    caml = ET.Element(_tag("caml"))
    root_el = _serialize_layer(root, container_height)
    if root.geometry_flipped is None and project is not None:
        root_el.set("geometryFlipped", "1" if project.geometry_flipped else "0")
    ET.SubElement(root_el, _tag("scriptComponents"))
    index = layer_index(root)
    root_el.append(_serialize_states(names, state_overrides or {}, index, container_height))
    root_el.append(_serialize_transitions(transitions))
    caml.append(root_el)

    if pretty:
        ET.indent(caml, space="  ")
    body = ET.tostring(caml, encoding="unicode")
    sep = "\n" if pretty else ""
    return f"{XML_DECLARATION}{sep}{body}{sep}"


#
# Parsing
#
def _parse_document(xml: str | bytes) -> ET.Element:
    if isinstance(xml, str):
        # ElementTree refuses str input with an encoding declaration
        xml = xml.encode("utf-8")
    return ET.fromstring(xml)


def _find_root_layer(doc: ET.Element) -> ET.Element | None:
    for el in doc.iter():
        if _local_name(el) == "CALayer":
            return el
    return None


def _container_height_for(root_el: ET.Element, container_height: float | None) -> float:
    if container_height:
        return container_height
    bounds = _parse_number_list(root_el.get("bounds"))
    if len(bounds) >= 4 and bounds[3] > 0:
        return bounds[3]
    return geometry.DEFAULT_CONTAINER_HEIGHT


def _parse_transform_rotations(transform: str | None) -> dict[str, float]:
    """
    Parses "rotate(30deg) rotate(10deg, 0, 1, 0)" into layer rotation fields (degrees).
    A rotation without axis is around Z.
    """
    rotations = {}
    for match in _ROTATE_RE.finditer(transform or ""):
        parts = [p.strip() for p in match.group(1).split(",")]
        angle = _parse_float(re.sub(r"deg", "", parts[0], flags=re.IGNORECASE).strip())
        degrees = angle if angle is not None else 0.0
        if len(parts) < 4:
            rotations["rotation"] = degrees
            continue
        axis = [_parse_float(p) for p in parts[1:4]]
        for field_name, unit in (
            ("rotation_x", [1, 0, 0]),
            ("rotation_y", [0, 1, 0]),
            ("rotation", [0, 0, 1]),
        ):
            if all(a is not None and abs(a - u) < 1e-6 for a, u in zip(axis, unit)):
                rotations[field_name] = degrees
    return rotations


def _parse_keyframe_animation(el: ET.Element, size: Size, container_height: float) -> KeyframeAnimation | None:
    """Returns the first CAKeyframeAnimation of the layer, with its values in editor space."""
    animations = _child(el, "animations")
    if animations is None:
        return None
    for a_el in animations:
        if _local_name(a_el) != "animation" or a_el.get("type") != "CAKeyframeAnimation":
            continue
        key_path = a_el.get("keyPath") or "position"
        values = []
        values_el = _child(a_el, "values")
        for v_el in values_el if values_el is not None else []:
            numbers = _parse_number_list(v_el.get("value"))
            if key_path == "position":
                if len(numbers) >= 2:
                    values.append(geometry.from_ca_layer_space(numbers[0], numbers[1], size, container_height))
                continue
            if not numbers:
                continue
            n = numbers[0]
            if key_path == "position.x":
                n = geometry.from_ca_x(n, size.w)
            elif key_path == "position.y":
                n = geometry.from_ca_y(n, size.h, container_height)
            elif key_path in _ROTATION_KEY_PATHS:
                n = geometry.radians_to_degrees(n)
            values.append(n)

        repeat_duration = a_el.get("repeatDuration")
        infinite = "inf" in ((a_el.get("repeatCount") or "").lower(), (repeat_duration or "").lower())
        return KeyframeAnimation(
            key_path=key_path,
            values=values,
            duration=_parse_float(a_el.get("duration")),
            autoreverses=a_el.get("autoreverses") in ("1", "true", "YES"),
            infinite=infinite,
            repeat_duration=None if infinite else _parse_float(repeat_duration),
        )
    return None


def _parse_common(el: ET.Element, default_name: str, container_height: float) -> dict:
    bounds = _parse_number_list(el.get("bounds"))
    size = Size(bounds[2] if len(bounds) > 2 else 0, bounds[3] if len(bounds) > 3 else 0)
    ca_pos = _parse_number_list(el.get("position"))
    if len(ca_pos) >= 2:
        position = geometry.from_ca_layer_space(ca_pos[0], ca_pos[1], size, container_height)
    else:
        position = Vec2(0, 0)

    common = {
        "id": el.get("id") or new_layer_id(),
        "name": el.get("name") or default_name,
        "position": position,
        "size": size,
        "opacity": _parse_float(el.get("opacity")),
        "border_width": _parse_float(el.get("borderWidth")),
        "corner_radius": _parse_float(el.get("cornerRadius")),
        "visible": el.get("hidden", "0") not in ("1", "true", "YES"),
    }
    # transform="rotate(...)" is only used when the rotation attribute is missing
    transform_rotations = _parse_transform_rotations(el.get("transform"))
    for field_name, attr_name in _ROTATION_ATTRIBUTES.items():
        radians = _parse_float(el.get(attr_name))
        if radians is not None:
            common[field_name] = geometry.radians_to_degrees(radians)
        elif field_name in transform_rotations:
            common[field_name] = transform_rotations[field_name]
    flipped = el.get("geometryFlipped")
    if flipped is not None:
        common["geometry_flipped"] = 1 if flipped.strip() == "1" else 0
    animation = _parse_keyframe_animation(el, size, container_height)
    if animation is not None:
        common["animation"] = animation
    anchor = _parse_number_list(el.get("anchorPoint"))
    if len(anchor) == 2 and (
        abs(anchor[0] - 0.5) > ANCHOR_TOLERANCE or abs(anchor[1] - 0.5) > ANCHOR_TOLERANCE
    ):
        common["anchor_point"] = Vec2(anchor[0], anchor[1])
    if el.get("backgroundColor"):
        common["background_color"] = ca_color_to_hex(el.get("backgroundColor"))
    if el.get("borderColor"):
        common["border_color"] = ca_color_to_hex(el.get("borderColor"))
    return common


def _parse_text_layer(el: ET.Element, container_height: float) -> TextLayer:
    """CATextLayer, as written by other tools."""
    common = _parse_common(el, "Text Layer", container_height)
    font = _child(el, "font")
    string = _child(el, "string")
    color = el.get("foregroundColor")
    return TextLayer(
        **common,
        text=string.get("value", "") if string is not None else "",
        font_family=font.get("value") if font is not None else None,
        font_size=_parse_float(el.get("fontSize")),
        color=ca_color_to_hex(color) if color else None,
        align=el.get("alignmentMode"),
    )


def _parse_layer(el: ET.Element, container_height: float) -> Layer:
    if _local_name(el) == "CATextLayer":
        return _parse_text_layer(el, container_height)

    sublayers = _child(el, "sublayers")
    child_els = []
    if sublayers is not None:
        child_els = [c for c in sublayers if _local_name(c) in ("CALayer", "CATextLayer")]

    image_src = None
    contents = _child(el, "contents")
    if contents is not None:
        image = _child(contents, "CGImage")
        if image is not None:
            image_src = image.get("src")

    if image_src and not child_els:
        return ImageLayer(**_parse_common(el, "Image Layer", container_height), src=image_src)

    text = el.get("text")
    if text is not None and not child_els:
        color = el.get("color")
        return TextLayer(
            **_parse_common(el, "Text Layer", container_height),
            text=text,
            font_family=el.get("fontFamily"),
            font_size=_parse_float(el.get("fontSize")),
            color=ca_color_to_hex(color) if color else None,
            align=el.get("align"),
        )

    # Everything else, empty leaves included, is a group
    children = [_parse_layer(c, container_height) for c in child_els]
    return GroupLayer(**_parse_common(el, "Layer", container_height), children=children)


def parse_caml(xml: str | bytes, container_height: float | None = None) -> Layer | None:
    """
    Parses a CAML document into a layer tree.

    Args:
        xml: the CAML document.
        container_height: used to convert positions back to editor space.
            Defaults to the height of the root layer, or 844.

    Returns:
        The root layer, or None if the document has no layers, is invalid or
        its layers are nested too deeply.
    """
    try:
        doc = _parse_document(xml)
    except ET.ParseError as e:
        logger.error(f"Failed to parse CAML: {e}")
        return None
    root_el = _find_root_layer(doc)
    if root_el is None:
        logger.warning("CAML document without CALayer")
        return None
    try:
        return _parse_layer(root_el, _container_height_for(root_el, container_height))
    except RecursionError as e:
        logger.error(f"Failed to parse CAML, layers nested too deeply: {e}")
        return None


def parse_states(xml: str | bytes) -> list[str]:
    """Returns the declared state names, in document order."""
    try:
        doc = _parse_document(xml)
    except ET.ParseError as e:
        logger.error(f"Failed to parse states: {e}")
        return []
    names = []
    for states_el in _descendants(doc, "states")[:1]:
        for state_el in _descendants(states_el, "LKState"):
            name = (state_el.get("name") or "").strip()
            if name:
                names.append(name)
    return names


def _parse_override_value(value_el: ET.Element | None) -> float | int | str:
    if value_el is None:
        return ""
    value_type = value_el.get("type") or ""
    raw = value_el.get("value") or ""
    if not _NUMERIC_TYPE_RE.match(value_type):
        return raw
    n = _parse_float(raw)
    if n is None:
        return raw
    if value_type.lower() == "integer" and n.is_integer():
        return int(n)
    return n


def parse_state_overrides(
    xml: str | bytes, container_height: float | None = None
) -> dict[str, list[StateOverride]]:
    """
    Returns state name -> overrides.

    Numeric position.x / position.y values are converted back to editor space
    using the target layer's size, and rotations back to degrees.
    Returns an empty dict if the document cannot be parsed.
    """
    index = {}
    height = geometry.DEFAULT_CONTAINER_HEIGHT
    try:
        doc = _parse_document(xml)
        root_el = _find_root_layer(doc)
        if root_el is not None:
            height = _container_height_for(root_el, container_height)
            index = layer_index(_parse_layer(root_el, height))
    except (ET.ParseError, RecursionError) as e:
        logger.error(f"Failed to parse state overrides: {e}")
        return {}

    result = {}
    for states_el in _descendants(doc, "states")[:1]:
        for state_el in _descendants(states_el, "LKState"):
            name = state_el.get("name") or ""
            overrides = []
            elements = _child(state_el, "elements")
            set_values = _descendants(elements, "LKStateSetValue") if elements is not None else []
            for sv in set_values:
                target_id = sv.get("targetId") or ""
                key_path = sv.get("keyPath") or ""
                if not target_id or not key_path:
                    continue
                value = _parse_override_value(_child(sv, "value"))
                if not isinstance(value, str):
                    target = index.get(target_id)
                    if key_path == "position.x" and target is not None:
                        value = geometry.from_ca_x(value, target.size.w)
                    elif key_path == "position.y" and target is not None:
                        value = geometry.from_ca_y(value, target.size.h, height)
                    elif key_path in _ROTATION_KEY_PATHS:
                        value = geometry.radians_to_degrees(value)
                overrides.append(StateOverride(target_id, key_path, value))
            result[name] = overrides
    return result


def _parse_animation(anim_el: ET.Element) -> TransitionAnimation:
    return TransitionAnimation(
        type=anim_el.get("type") or "",
        damping=_parse_float(anim_el.get("damping")),
        mass=_parse_float(anim_el.get("mass")),
        stiffness=_parse_float(anim_el.get("stiffness")),
        velocity=_parse_float(anim_el.get("velocity")),
        duration=_parse_float(anim_el.get("duration")),
        fill_mode=anim_el.get("fillMode") or None,
        key_path=anim_el.get("keyPath") or None,
    )


def parse_state_transitions(xml: str | bytes) -> list[StateTransition]:
    """Returns the declared transitions. Elements without target or key are skipped."""
    try:
        doc = _parse_document(xml)
    except ET.ParseError as e:
        logger.error(f"Failed to parse state transitions: {e}")
        return []
    transitions = []
    for transitions_el in _descendants(doc, "stateTransitions")[:1]:
        for t_el in _descendants(transitions_el, "LKStateTransition"):
            elements = []
            elements_el = _child(t_el, "elements")
            element_els = (
                _descendants(elements_el, "LKStateTransitionElement") if elements_el is not None else []
            )
            for e_el in element_els:
                target_id = e_el.get("targetId") or ""
                key_path = e_el.get("key") or e_el.get("keyPath") or ""
                if not target_id or not key_path:
                    continue
                anim_el = _child(e_el, "animation")
                animation = _parse_animation(anim_el) if anim_el is not None else None
                elements.append(TransitionElement(target_id, key_path, animation))
            transitions.append(
                StateTransition(t_el.get("fromState") or "", t_el.get("toState") or "", elements)
            )
    return transitions
