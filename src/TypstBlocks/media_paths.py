"""Heuristic checks for image URLs coming from hosting services or model output."""

from __future__ import annotations

import re

PROJECT_IMAGE_PREFIX = "/static/projects/{project_id}/images/"

_PLACEHOLDER_TAG_RE = re.compile(r"\[\[\s*IMAGE_PLACEHOLDER", re.I)
_PLACEHOLDER_HINT_RE = re.compile(r"\[\[\s*IMAGE_PLACEHOLDER\s*:\s*(.*?)\s*\]\]", re.I)
_CJK_RE = re.compile(r"[一-龥]")
_PLACEHOLDER_WORDS_RE = re.compile(r"\[\[.*\]\]|待.*图|占位")
_ILLEGAL_CHARS_RE = re.compile(r'[<>"|?*]')


def is_image_placeholder(path: str) -> bool:
    return bool(_PLACEHOLDER_TAG_RE.search(path))


def placeholder_hint(path: str) -> str:
    match = _PLACEHOLDER_HINT_RE.search(path)
    return match.group(1) if match else ""


def is_likely_hallucinated(path: str) -> bool:
    """True for paths that were almost certainly invented rather than uploaded."""
    filename = path.rsplit("/", 1)[-1]
    return bool(
        _CJK_RE.search(filename)
        or _PLACEHOLDER_WORDS_RE.search(path)
        or _ILLEGAL_CHARS_RE.search(path)
    )


def normalize_image_url(url: str, project_id: str | None) -> str | None:
    """Return ``url`` if it points into the project's image folder, else None.

    Placeholder tags are kept as they are. A literal ``<project_id>`` is filled in.
    """
    value = url.strip()
    if not value or is_image_placeholder(value):
        return value
    if project_id is None:
        return None if is_likely_hallucinated(value) else value
    value = value.replace("<project_id>", project_id).replace("{project_id}", project_id)
    if not value.startswith(PROJECT_IMAGE_PREFIX.format(project_id=project_id)):
        return None
    if is_likely_hallucinated(value):
        return None
    return value
