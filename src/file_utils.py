# castudio
# Copyright 2025 - Ricardo Quesada

import base64
import re
import urllib.parse

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+)?(?P<params>(;[^;,]*)*?)(?P<b64>;base64)?,(?P<data>.*)$", re.I | re.S)


def sanitize_filename(name: str) -> str:
    """
    Returns a filename that is safe to store inside a bundle.

    Unsafe characters in the base name are replaced with "_". The extension
    keeps only alphanumeric characters and is lowercased.
    e.g: "my photo!.PNG" -> "my_photo_.png"
    """
    name = (name or "").strip()
    if not name:
        return ""
    parts = name.split(".")
    ext = parts.pop() if len(parts) > 1 else ""
    base = ".".join(parts) or "image"
    safe_base = re.sub(r"[^a-z0-9\-_.]+", "_", base, flags=re.I)
    safe_ext = re.sub(r"[^a-z0-9]+", "", ext, flags=re.I).lower()
    return f"{safe_base}.{safe_ext}" if safe_ext else safe_base


def mime_to_ext(mime: str | None) -> str:
    if not mime:
        return "bin"
    m = mime.lower()
    if "png" in m:
        return "png"
    if "jpeg" in m or "jpg" in m:
        return "jpg"
    if "webp" in m:
        return "webp"
    if "gif" in m:
        return "gif"
    if "svg" in m:
        return "svg"
    return "bin"


def is_data_url(value: str) -> bool:
    return value[:5].lower() == "data:"


def data_url_to_bytes(url: str) -> tuple[bytes, str]:
    """
    Decodes a "data:" URL.

    Returns:
        A tuple (data, mime_type).

    Raises:
        ValueError: if url is not a valid data URL.
    """
    m = _DATA_URL_RE.match(url.strip())
    if m is None:
        raise ValueError(f"Invalid data URL: {url[:32]}...")
    mime = m.group("mime") or "application/octet-stream"
    data = m.group("data")
    if m.group("b64"):
        try:
            return base64.b64decode(data, validate=False), mime
        except ValueError as e:
            raise ValueError(f"Invalid base64 payload in data URL: {e}") from e
    return urllib.parse.unquote_to_bytes(data), mime
