# castudio
# Copyright 2025 - Ricardo Quesada

import uuid
from dataclasses import dataclass, field, fields
from typing import ClassVar, Self

from geometry import Size, Vec2

# Group "display types" that own their content exclusively.
# See layer_tree.insert_into_group().
EXCLUSIVE_DISPLAY_TYPES = ("text", "image", "gradient")

# Key paths a keyframe animation can drive
KEYFRAME_KEY_PATHS = (
    "position",
    "position.x",
    "position.y",
    "transform.rotation.x",
    "transform.rotation.y",
    "transform.rotation.z",
)


def new_layer_id() -> str:
    return str(uuid.uuid4())


@dataclass
class KeyframeAnimation:
    """
    A CAKeyframeAnimation attached to a layer. It starts with the wallpaper.

    values are in editor space, like the layer itself: Vec2 top-left positions
    for "position", numbers for "position.x" / "position.y" and degrees for
    the rotations.
    """

    key_path: str = "position"
    values: list[Vec2 | float] = field(default_factory=list)
    enabled: bool = True
    # Seconds. When unset, one second per step between keyframes.
    duration: float | None = None
    autoreverses: bool = False
    # When False, it repeats during repeat_duration seconds (duration when unset).
    infinite: bool = True
    repeat_duration: float | None = None

    @property
    def effective_duration(self) -> float:
        if self.duration is not None and self.duration > 0:
            return self.duration
        return max(1, len(self.values) - 1)

    @property
    def effective_repeat_duration(self) -> float:
        if self.repeat_duration is not None and self.repeat_duration > 0:
            return self.repeat_duration
        return self.effective_duration

    @classmethod
    def from_dict(cls, d: dict) -> Self:
        anim = cls()
        for f in fields(anim):
            if f.name not in d:
                continue
            value = d[f.name]
            if f.name == "values":
                value = [Vec2(v[0], v[1]) if isinstance(v, (list, tuple)) else v for v in value]
            setattr(anim, f.name, value)
        return anim

    def to_dict(self) -> dict:
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        # toml arrays must be homogeneous
        d["values"] = [
            [float(v.x), float(v.y)] if isinstance(v, Vec2) else float(v) for v in self.values
        ]
        return d


@dataclass
class Layer:
    """
    Fields shared by every layer kind.

    Layer itself is never instantiated. Use one of ImageLayer, TextLayer,
    ShapeLayer or GroupLayer. The concrete class is the discriminant: kind
    specific fields are only reachable after an isinstance() / match check.
    """

    kind: ClassVar[str] = "layer"

    id: str = field(default_factory=new_layer_id)
    name: str = "Layer"
    # Top-left corner, editor space.
    position: Vec2 = Vec2()
    size: Size = Size()
    opacity: float | None = None
    # Degrees, around the Z, X and Y axes
    rotation: float | None = None
    rotation_x: float | None = None
    rotation_y: float | None = None
    background_color: str | None = None
    border_color: str | None = None
    border_width: float | None = None
    corner_radius: float | None = None
    visible: bool = True
    # Unit coordinates. None means centered (0.5, 0.5)
    anchor_point: Vec2 | None = None
    # 1: top-left origin for this layer and its sublayers. Written as is, positions are still mapped Y-up.
    geometry_flipped: int | None = None
    animation: KeyframeAnimation | None = None

    #
    # Public methods
    #
    @classmethod
    def from_dict(cls, d: dict, children: list["Layer"] | None = None) -> "AnyLayer":
        """Creates a Layer from a dict. Group children are resolved by the caller."""
        layer_type = d.get("layer_type", "GroupLayer")
        layer_cls = _LAYER_TYPES.get(layer_type)
        if layer_cls is None:
            raise ValueError(f"Invalid layer type: {layer_type}")
        layer = layer_cls()
        layer.populate_from_dict(d)
        if isinstance(layer, GroupLayer) and children is not None:
            layer.children = list(children)
        return layer

    def populate_from_dict(self, d: dict) -> None:
        for f in fields(self):
            if f.name not in d or f.name == "children":
                continue
            value = d[f.name]
            # Convert lists (from toml) to the geometry types
            if f.name in ("position", "anchor_point") and value is not None:
                value = Vec2(value[0], value[1])
            elif f.name == "size":
                value = Size(value[0], value[1])
            elif f.name == "animation" and value is not None:
                value = KeyframeAnimation.from_dict(value)
            setattr(self, f.name, value)

    def to_dict(self) -> dict:
        """
        Returns a dictionary that represents the Layer.

        Group children are stored as a list of ids: the caller is responsible
        for storing the children themselves.
        """
        d = {"layer_type": self.__class__.__name__}
        for f in fields(self):
            value = getattr(self, f.name)
            # toml arrays must be homogeneous
            if isinstance(value, Vec2):
                value = (float(value.x), float(value.y))
            elif isinstance(value, Size):
                value = (float(value.w), float(value.h))
            elif f.name == "children":
                value = [child.id for child in value]
            elif isinstance(value, KeyframeAnimation):
                value = value.to_dict()
            elif isinstance(value, dict):
                value = dict(value)
            d[f.name] = value
        return d

    @property
    def center(self) -> Vec2:
        return Vec2(self.position.x + self.size.w / 2, self.position.y + self.size.h / 2)

    @property
    def effective_anchor_point(self) -> Vec2:
        if self.anchor_point is None:
            return Vec2(0.5, 0.5)
        return self.anchor_point


@dataclass
class ImageLayer(Layer):
    kind: ClassVar[str] = "image"

    name: str = "Image Layer"
    # URL or path relative to the bundle, e.g. "assets/pic.png"
    src: str = ""
    # cover, contain, fill or none
    fit: str | None = None


@dataclass
class TextLayer(Layer):
    kind: ClassVar[str] = "text"

    name: str = "Text Layer"
    text: str = ""
    font_family: str | None = None
    font_size: float | None = None
    color: str | None = None
    # left, center, right or justified
    align: str | None = None


@dataclass
class ShapeLayer(Layer):
    kind: ClassVar[str] = "shape"

    name: str = "Shape Layer"
    # rect, circle or rounded-rect
    shape: str = "rect"
    fill: str | None = None
    stroke: str | None = None
    stroke_width: float | None = None
    radius: float | None = None


@dataclass
class GroupLayer(Layer):
    kind: ClassVar[str] = "group"

    name: str = "Group"
    children: list[Layer] = field(default_factory=list)
    # Kind of content the group stands in for. Set when a leaf gets wrapped.
    display_type: str | None = None
    # Kind specific properties copied from the wrapped leaf (fill, src, text...)
    display_props: dict = field(default_factory=dict)

    @classmethod
    def create_root(cls, width: float, height: float, name: str = "Root") -> Self:
        return cls(name=name, position=Vec2(0, 0), size=Size(width, height))


AnyLayer = ImageLayer | TextLayer | ShapeLayer | GroupLayer

_LAYER_TYPES: dict[str, type[Layer]] = {
    "ImageLayer": ImageLayer,
    "TextLayer": TextLayer,
    "ShapeLayer": ShapeLayer,
    "GroupLayer": GroupLayer,
}
