# castudio
# Copyright 2025 - Ricardo Quesada

"""
Core Animation bundles (.ca files).

A bundle is a zip file with:
- index.xml: a plist whose "rootDocument" points to the scene
- main.caml: the scene (see caml.py)
- assetManifest.caml
- assets/: images referenced by the scene
"""

import io
import logging
import plistlib
import re
import uuid
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field
from xml.parsers.expat import ExpatError

import caml
from ca_states import (
    StateOverride,
    StateTransition,
    is_base_state,
    spring_transitions_for,
)
from file_utils import data_url_to_bytes, is_data_url, mime_to_ext
from layer import ImageLayer, Layer
from layer_tree import iter_layers
from project import CAProject

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.xml"
DEFAULT_SCENE = "main.caml"
ASSET_MANIFEST_FILENAME = "assetManifest.caml"
ASSETS_FOLDER = "assets"
DEFAULT_COMPRESSION_LEVEL = 6

BACKGROUND_CA = "Background.ca"
FLOATING_CA = "Floating.ca"
DEFAULT_DUAL_WIDTH = 390
DEFAULT_DUAL_HEIGHT = 844

ASSET_MANIFEST = """<?xml version="1.0" encoding="UTF-8"?>

<caml xmlns="http://www.apple.com/CoreAnimation/1.0">
  <MicaAssetManifest>
    <modules type="NSArray"/>
  </MicaAssetManifest>
</caml>"""

_ASSETS_PATH_RE = re.compile(r"(^|/)assets/", re.IGNORECASE)


class CAFileError(ValueError):
    pass


@dataclass
class CABundle:
    project: CAProject
    root: Layer
    # filename -> data
    assets: dict[str, bytes] = field(default_factory=dict)
    states: list[str] = field(default_factory=list)
    state_overrides: dict[str, list[StateOverride]] = field(default_factory=dict)
    state_transitions: list[StateTransition] = field(default_factory=list)


def _asset_bytes(name: str, data) -> bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    raise TypeError(f"Unsupported data type for asset '{name}': {type(data).__name__}")


def pack_ca(bundle: CABundle, compression_level: int = DEFAULT_COMPRESSION_LEVEL) -> bytes:
    """
    Packs a bundle into a .ca zip file.

    When the bundle has no transitions, a spring transition in and out of
    every state is generated, animating the key paths overridden in that state.
    Bundles without states get the default transitions (see caml.serialize_caml).

    Returns:
        The zip file contents.
    """
    transitions = bundle.state_transitions
    if not transitions:
        state_names = [n for n in bundle.states if not is_base_state(n)]
        transitions = spring_transitions_for(state_names, bundle.state_overrides)

    scene = caml.serialize_caml(
        bundle.root,
        bundle.project,
        bundle.states,
        bundle.state_overrides,
        transitions,
        pretty=True,
    )
    index = plistlib.dumps({"rootDocument": DEFAULT_SCENE}, fmt=plistlib.FMT_XML)

    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=compression_level
    ) as zf:
        zf.writestr(DEFAULT_SCENE, scene)
        zf.writestr(INDEX_FILENAME, index)
        zf.writestr(ASSET_MANIFEST_FILENAME, ASSET_MANIFEST)
        for name, data in bundle.assets.items():
            zf.writestr(f"{ASSETS_FOLDER}/{name}", _asset_bytes(name, data))
    logger.info(f"Packed '{bundle.project.name}' with {len(bundle.assets)} asset(s)")
    return buffer.getvalue()


def _find_index(read, names: list[str]) -> bytes | None:
    for candidate in (INDEX_FILENAME, "Index.xml", "index.plist"):
        if candidate in names:
            return read(candidate)
    for name in names:
        if name.endswith("index.xml") or name.endswith("Index.xml"):
            return read(name)
    return None


def _root_document_name(index: bytes) -> str | None:
    """
    Producers store the scene name either as a <rootDocument> element or as a
    plist key / string pair. Binary plists are supported too.
    """
    try:
        doc = ET.fromstring(index)
    except ET.ParseError:
        doc = None
    if doc is not None:
        for el in doc.iter("rootDocument"):
            if el.text and el.text.strip():
                return el.text.strip()
        for parent in doc.iter():
            children = list(parent)
            for i, el in enumerate(children):
                if el.tag != "key" or (el.text or "").strip() != "rootDocument":
                    continue
                for sibling in children[i + 1 :]:
                    if sibling.tag == "string" and sibling.text and sibling.text.strip():
                        return sibling.text.strip()
    try:
        plist = plistlib.loads(index)
    except (ExpatError, ValueError):
        return None
    if isinstance(plist, dict) and isinstance(plist.get("rootDocument"), str):
        return plist["rootDocument"].strip()
    return None


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _find_scene(names: list[str], scene_name: str) -> str | None:
    if scene_name in names:
        return scene_name
    base = _basename(scene_name)
    for name in names:
        if _basename(name) == base:
            return name
    for name in names:
        if _basename(name).lower() in ("index.xml", "assetmanifest.caml"):
            continue
        if name.lower().endswith((".caml", ".xml")):
            return name
    return None


def _unique_name(base: str, taken: dict) -> str:
    name = base
    counter = 0
    while name in taken:
        counter += 1
        stem, dot, ext = base.rpartition(".")
        name = f"{stem}_{counter}.{ext}" if dot else f"{base}_{counter}"
    return name


def extract_inline_assets(xml: str) -> tuple[str, dict[str, bytes]]:
    """
    Moves images embedded as "data:" URLs into assets.

    Returns:
        A tuple (xml, assets). The returned xml references the extracted
        images as "assets/<name>". If nothing was extracted, xml is returned
        untouched.
    """
    try:
        doc = ET.fromstring(xml.encode("utf-8"))
    except ET.ParseError:
        return xml, {}

    assets = {}
    for el in doc.iter():
        tag = el.tag.rsplit("}", 1)[-1]
        is_image = tag == "CGImage" or (tag == "contents" and (el.get("type") or "").lower() == "cgimage")
        src = el.get("src") or ""
        if not is_image or not is_data_url(src):
            continue
        try:
            data, mime = data_url_to_bytes(src)
        except ValueError as e:
            logger.warning(f"Could not decode inline image: {e}")
            continue
        name = _unique_name(f"inline_{uuid.uuid4()}.{mime_to_ext(mime)}", assets)
        assets[name] = data
        el.set("src", f"{ASSETS_FOLDER}/{name}")

    if not assets:
        return xml, {}
    logger.info(f"Extracted {len(assets)} inline image(s) into {ASSETS_FOLDER}/")
    return caml.XML_DECLARATION + ET.tostring(doc, encoding="unicode"), assets


def _log_missing_assets(root: Layer, assets: dict[str, bytes]) -> None:
    missing = []
    for layer in iter_layers(root):
        if not isinstance(layer, ImageLayer) or not _ASSETS_PATH_RE.search(layer.src):
            continue
        name = _basename(layer.src)
        if name and name not in assets and name not in missing:
            missing.append(name)
    if missing:
        logger.warning(f"Missing {len(missing)} asset(s) referenced in CAML: {', '.join(missing)}")


def _read_assets(read, names: list[str]) -> dict[str, bytes]:
    """Every non-empty file inside an "assets" folder, keyed by filename. First one wins."""
    assets = {}
    for name in names:
        if not _ASSETS_PATH_RE.search(name):
            continue
        filename = _basename(_ASSETS_PATH_RE.split(name, maxsplit=1)[-1]).strip()
        if not filename or filename in assets:
            continue
        content = read(name)
        if content:
            assets[filename] = content
    return assets


def _open_zip(data: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise CAFileError(f"Invalid CA archive: {e}") from e


def _load_bundle(read, names: list[str]) -> CABundle:
    """
    Loads a bundle out of a zip.

    Args:
        read: called with one of names, returns its contents.
        names: the files of the bundle, relative to the bundle folder.
    """
    index = _find_index(read, names)
    scene_name = (_root_document_name(index) if index else None) or DEFAULT_SCENE
    scene_path = _find_scene(names, scene_name)
    if scene_path is None:
        raise CAFileError(f"CAML scene not found in package: '{scene_name}'")
    try:
        xml = read(scene_path).decode("utf-8")
        assets = _read_assets(read, names)
    except (zipfile.BadZipFile, UnicodeDecodeError) as e:
        raise CAFileError(f"Corrupt CA archive: {e}") from e

    xml, inline_assets = extract_inline_assets(xml)
    for name, content in inline_assets.items():
        assets.setdefault(name, content)

    root = caml.parse_caml(xml)
    if root is None:
        raise CAFileError(f"Failed to parse CAML: '{scene_path}'")
    _log_missing_assets(root, assets)

    project = CAProject(
        id=str(uuid.uuid4()),
        name="Imported Project",
        width=max(0, root.size.w),
        height=max(0, root.size.h),
        geometry_flipped=root.geometry_flipped or 0,
    )
    logger.info(f"Unpacked '{scene_path}' with {len(assets)} asset(s)")
    return CABundle(
        project=project,
        root=root,
        assets=assets,
        states=caml.parse_states(xml),
        state_overrides=caml.parse_state_overrides(xml),
        state_transitions=caml.parse_state_transitions(xml),
    )


def unpack_ca(data: bytes) -> CABundle:
    """
    Unpacks a .ca zip file.

    Raises:
        CAFileError: if data is not a zip file, has no scene or the scene
            cannot be parsed.
    """
    with _open_zip(data) as zf:
        names = [info.filename for info in zf.infolist() if not info.is_dir()]
        return _load_bundle(zf.read, names)


@dataclass
class DualCABundle:
    """A wallpaper split in two scenes: one behind the clock and one floating over it."""

    project: CAProject
    background: CABundle
    floating: CABundle


def _bundle_folder(paths: list[str], folder: str) -> str | None:
    """The path of the first folder named like folder (case insensitive), with a trailing "/"."""
    folder = folder.lower()
    for path in paths:
        parts = path.split("/")[:-1]
        lowered = [p.lower() for p in parts]
        if folder in lowered:
            last = len(lowered) - 1 - lowered[::-1].index(folder)
            return "/".join(parts[: last + 1]) + "/"
    return None


def _load_bundle_in(zf: zipfile.ZipFile, paths: dict[str, str], folder: str) -> CABundle:
    prefix = folder.lower()
    # relative path -> zip member
    members = {
        path[len(folder) :]: member for path, member in paths.items() if path.lower().startswith(prefix)
    }
    return _load_bundle(lambda name: zf.read(members[name]), list(members))


def unpack_dual_ca_zip(data: bytes) -> DualCABundle:
    """
    Unpacks a zip file containing a Background.ca and a Floating.ca folder.
    The folders may be nested, and their names are matched case insensitively.

    The project takes its size from the floating scene, or from the background
    scene when the floating root has no size.

    Raises:
        CAFileError: if data is not a zip file, a folder is missing or one of
            the scenes cannot be read.
    """
    with _open_zip(data) as zf:
        # normalized path -> zip member
        paths = {
            info.filename.replace("\\", "/"): info.filename for info in zf.infolist() if not info.is_dir()
        }
        floating_folder = _bundle_folder(list(paths), FLOATING_CA)
        background_folder = _bundle_folder(list(paths), BACKGROUND_CA)
        if floating_folder is None or background_folder is None:
            raise CAFileError(f"Unsupported zip structure: expected {BACKGROUND_CA} and {FLOATING_CA}")
        floating = _load_bundle_in(zf, paths, floating_folder)
        background = _load_bundle_in(zf, paths, background_folder)

    fg, bg = floating.root, background.root
    project = CAProject(
        id=str(uuid.uuid4()),
        name="Imported Project",
        width=max(0, fg.size.w or bg.size.w or DEFAULT_DUAL_WIDTH),
        height=max(0, fg.size.h or bg.size.h or DEFAULT_DUAL_HEIGHT),
        geometry_flipped=next((g for g in (fg.geometry_flipped, bg.geometry_flipped) if g is not None), 0),
    )
    logger.info(f"Unpacked {BACKGROUND_CA} from '{background_folder}' and {FLOATING_CA} from '{floating_folder}'")
    return DualCABundle(project=project, background=background, floating=floating)
