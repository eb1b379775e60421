"""Document-level settings and the header that carries them."""

from __future__ import annotations

import re
from typing import Any

from . import markers
from .model import DocumentSettings

_SET_TEXT_SIZE_RE = re.compile(r"^[ \t]*#set text\(\s*size\s*:\s*([\d.]+(?:pt|em))\s*\)[ \t]*\n?", re.M)
_FONT_SIZE_RE = re.compile(r"^[\d.]+(?:pt|em)$")


def settings_to_dict(settings: DocumentSettings) -> dict:
    return {
        "tableCaptionNumbering": settings.table_caption_numbering,
        "imageCaptionNumbering": settings.image_caption_numbering,
        "imageCaptionPosition": settings.image_caption_position,
        "fontSize": settings.font_size,
        "verticalSpaceVisible": settings.vertical_space_visible,
    }


def coerce_settings(data: Any) -> DocumentSettings:
    """Settings from a decoded payload; unknown or mistyped keys keep their defaults."""
    settings = DocumentSettings()
    if not isinstance(data, dict):
        return settings
    for key, attr in (
        ("tableCaptionNumbering", "table_caption_numbering"),
        ("imageCaptionNumbering", "image_caption_numbering"),
        ("verticalSpaceVisible", "vertical_space_visible"),
    ):
        if isinstance(data.get(key), bool):
            setattr(settings, attr, data[key])
    if data.get("imageCaptionPosition") in ("above", "below"):
        settings.image_caption_position = data["imageCaptionPosition"]
    font_size = data.get("fontSize")
    if isinstance(font_size, str) and _FONT_SIZE_RE.match(font_size.strip()):
        settings.font_size = font_size.strip()
    return settings


def render_header(settings: DocumentSettings) -> str:
    return f"{markers.encode(markers.DOC, settings_to_dict(settings))}\n#set text(size: {settings.font_size})"


def strip_header(text: str) -> tuple[DocumentSettings, str]:
    """Split the settings header off ``text``.

    Without a DOC marker, a bare ``#set text(size: ..)`` line still sets the font size.
    """
    token = markers.find_token(markers.DOC, text)
    if token is not None:
        settings = coerce_settings(markers.decode_payload(token.group(1)))
        text = text[: token.start()] + text[token.end() :]
    else:
        settings = DocumentSettings()
        size = _SET_TEXT_SIZE_RE.search(text)
        if size is not None:
            settings.font_size = size.group(1)
    return settings, _SET_TEXT_SIZE_RE.sub("", text)
