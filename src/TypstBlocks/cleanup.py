"""Repair of malformed markup written by older serializer versions.

Shapes handled::

    #text(font: "SimSun")[#text(font: "SimSun")[#block[]
    #text(font: "SimSun")[#block[
    #enum(tight: true)[...][...]
    ]]
    #text(font: "SimSun")[]]
"""

from __future__ import annotations

import re

_WRAPPED_LIST_RE = re.compile(
    r"^[ \t]*#text[ \t]*\([^)\n]*\)[ \t]*\[[ \t]*#block[ \t]*\[[ \t]*\n"
    r"[ \t]*(#(?:enum|list)\([^)\n]*\)(?:\[[^\]\n]*\])+)[ \t]*\n"
    r"[ \t]*\]\][ \t]*$",
    re.M,
)
_LINE_PATTERNS = (
    re.compile(r"^[ \t]*#text[ \t]*\([^)\n]*\)[ \t]*\[[ \t]*#text[ \t]*\([^)\n]*\)[ \t]*\[[ \t]*#block[ \t]*\[[ \t]*\][ \t]*$", re.M),
    re.compile(r"^[ \t]*#text[ \t]*\([^)\n]*\)[ \t]*\[[ \t]*#block[ \t]*\[[ \t]*$", re.M),
    re.compile(r"^[ \t]*#text[ \t]*\([^)\n]*\)[ \t]*\[[ \t]*\][ \t]*\]*[ \t]*$", re.M),
    re.compile(r"^[ \t]*\]\][ \t]*$", re.M),
)
_BLANK_RUN_RE = re.compile(r"\n(?:[ \t]*\n){2,}")
_FENCE_RE = re.compile(r"^```[^\n]*\n.*?^```[ \t]*$", re.M | re.S)


def _repair(chunk: str) -> str:
    # Must run before the line patterns below eat its wrapper and closing lines.
    chunk = _WRAPPED_LIST_RE.sub(lambda m: m.group(1), chunk)
    for pattern in _LINE_PATTERNS:
        chunk = pattern.sub("", chunk)
    return _BLANK_RUN_RE.sub("\n\n", chunk)


def cleanup_markup(text: str) -> str:
    """Drop known-bad wrapper lines and collapse blank runs; fenced code is left alone."""
    if not text:
        return ""
    result = text.replace("\r\n", "\n").strip()
    pieces = []
    position = 0
    for fence in _FENCE_RE.finditer(result):
        pieces.append(_repair(result[position : fence.start()]))
        pieces.append(fence.group(0))
        position = fence.end()
    pieces.append(_repair(result[position:]))
    return "".join(pieces).strip()
