# castudio
# Copyright 2025 - Ricardo Quesada

"""
Wallpaper packages (.tendies files).

A .tendies file is a zip file created from a template: a wallpaper descriptor
skeleton. The Core Animation content is added inside the descriptor, and the
descriptor's Wallpaper.plist is patched so that it points to it.
"""

import io
import logging
import plistlib
import posixpath
import re
import zipfile
from xml.parsers.expat import ExpatError
from xml.sax.saxutils import escape

logger = logging.getLogger(__name__)

TENDIES_WALLPAPER_DIR = (
    "descriptors/09E9B685-7456-4856-9C10-47DF26B76C33/versions/0/contents/"
    "7400.WWDC_2022-390w-844h@3x~iphone.wallpaper/"
)
DEFAULT_CA_FILENAME = "project.ca"
WALLPAPER_PLIST = "Wallpaper.plist"
COMPRESSION_LEVEL = 9

PLIST_KEY_PATH = ("assets", "lockAndHome", "default", "foregroundAnimationFileName")
_FILENAME_RE = re.compile(rb"(<key>foregroundAnimationFileName</key>\s*<string>)([^<]*)(</string>)")


class TendiesError(ValueError):
    pass


def _patch_structured(data: bytes, filename: str) -> bytes:
    plist = plistlib.loads(data)
    node = plist
    for key in PLIST_KEY_PATH[:-1]:
        node = node[key]
    if not isinstance(node, dict):
        raise TypeError(f"'{PLIST_KEY_PATH[-2]}' is not a dictionary")
    node[PLIST_KEY_PATH[-1]] = filename
    fmt = plistlib.FMT_BINARY if data.startswith(b"bplist00") else plistlib.FMT_XML
    return plistlib.dumps(plist, fmt=fmt)


def patch_wallpaper_plist(data: bytes, filename: str) -> bytes | None:
    """
    Sets assets.lockAndHome.default.foregroundAnimationFileName to filename.

    The plist is decoded and encoded back in its original format, binary or
    XML. If that fails, the raw bytes are patched with a regex, which works
    for XML plists only.

    Returns:
        The patched plist, or None if it could not be patched.
    """
    try:
        return _patch_structured(data, filename)
    except (ExpatError, ValueError, KeyError, TypeError, OverflowError) as e:
        logger.debug(f"Structured plist patch failed ({e!r}), trying regex")

    replacement = escape(filename).encode("utf-8")
    patched, count = _FILENAME_RE.subn(lambda m: m.group(1) + replacement + m.group(3), data, count=1)
    if count == 0:
        logger.warning("Could not find foregroundAnimationFileName in Wallpaper.plist")
        return None
    return patched


def _open_template(template: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(template))
    except zipfile.BadZipFile as e:
        raise TendiesError(f"Invalid template archive: {e}") from e


def _find_plist(names: list[str], folder: str) -> str | None:
    """Looks for Wallpaper.plist in folder, and then anywhere in the archive."""
    path = posixpath.join(folder, WALLPAPER_PLIST) if folder else WALLPAPER_PLIST
    if path in names:
        return path
    for name in names:
        if posixpath.basename(name) == WALLPAPER_PLIST:
            return name
    return None


def _build(template: bytes, files: dict[str, bytes], plist_folder: str, ca_filename: str) -> bytes:
    """Copies the template, adds files and patches the plist. Built in memory."""
    with _open_template(template) as src:
        names = [info.filename for info in src.infolist()]
        overrides = dict(files)

        plist_path = _find_plist(names + list(files), plist_folder)
        if plist_path is None:
            logger.warning(f"{WALLPAPER_PLIST} not found in template, skipping patch")
        else:
            data = overrides[plist_path] if plist_path in overrides else src.read(plist_path)
            patched = patch_wallpaper_plist(data, ca_filename)
            if patched is None:
                logger.warning(f"Could not patch '{plist_path}', leaving it untouched")
            else:
                logger.info(f"Patched '{plist_path}' with '{ca_filename}'")
                overrides[plist_path] = patched

        out = io.BytesIO()
        with zipfile.ZipFile(
            out, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESSION_LEVEL
        ) as dst:
            for info in src.infolist():
                if info.filename in overrides:
                    continue
                if info.is_dir():
                    dst.writestr(info, b"")
                else:
                    dst.writestr(
                        info.filename,
                        src.read(info),
                        compress_type=zipfile.ZIP_DEFLATED,
                        compresslevel=COMPRESSION_LEVEL,
                    )
            for name, data in overrides.items():
                dst.writestr(name, data)
    return out.getvalue()


def build_tendies(
    template: bytes,
    ca_data: bytes,
    ca_filename: str = DEFAULT_CA_FILENAME,
    internal_dir: str = TENDIES_WALLPAPER_DIR,
) -> bytes:
    """
    Creates a .tendies file from a template and a .ca file.

    Args:
        template: the template zip file.
        ca_data: the .ca file, stored as is.
        ca_filename: name used for the .ca file inside the descriptor.
        internal_dir: descriptor folder inside the template.

    Returns:
        The .tendies file contents.

    Raises:
        TendiesError: if the template is not a valid zip file.
    """
    ca_filename = (ca_filename or "").strip() or DEFAULT_CA_FILENAME
    folder = internal_dir.rstrip("/")
    files = {posixpath.join(folder, ca_filename) if folder else ca_filename: bytes(ca_data)}
    return _build(template, files, folder, ca_filename)


def build_tendies_from_bundle(template: bytes, bundle_zip: bytes, ca_folder_path: str) -> bytes:
    """
    Creates a .tendies file from a template and a .ca file, expanding the
    .ca file into the folder ca_folder_path.

    The Wallpaper.plist next to ca_folder_path is patched with the folder's name.

    Raises:
        TendiesError: if the template or the bundle are not valid zip files.
    """
    ca_folder_path = ca_folder_path.strip("/")
    parent, folder_name = posixpath.split(ca_folder_path)
    try:
        bundle = zipfile.ZipFile(io.BytesIO(bundle_zip))
    except zipfile.BadZipFile as e:
        raise TendiesError(f"Invalid CA bundle: {e}") from e
    files = {}
    with bundle:
        for info in bundle.infolist():
            if info.is_dir():
                continue
            files[posixpath.join(ca_folder_path, info.filename)] = bundle.read(info)
    logger.debug(f"Adding {len(files)} bundle file(s) under '{ca_folder_path}'")
    return _build(template, files, parent, folder_name)
