"""Shared Typst markup helpers: bracket scanning, decorators, paragraph runs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Sequence

from .math_convert import sanitize_inline_math

MAX_DECORATOR_DEPTH = 10

DEFAULT_LEADING_EM = 0.65
LINE_SPACING_CHOICES = (0.8, 0.9, 1.0, 1.2, 1.5, 2.0)
_LINE_SPACING_TOLERANCE = 0.12

EMPTY_CONTENT = "#h(0pt)"
LINEBREAK = "#linebreak()"

BULLET_RE = re.compile(r"^-(?:\s+|$)")
ORDERED_RE = re.compile(r"^(\d+)[.)](?:\s+|$)")
_LINEBREAK_SPLIT_RE = re.compile(r"\s*#linebreak\(\)\s*")
_ALIGN_WRAPPER_RE = re.compile(r"^#align\(\s*(left|center|right)\s*\)\s*\[")
_TEXT_WRAPPER_RE = re.compile(r"^#text\(([^()\[\]]*)\)\s*\[")
_ANY_WRAPPER_RE = re.compile(r"^#[A-Za-z][\w.-]*(?:\([^()\[\]]*\))?\s*\[")
_FONT_ARG_RE = re.compile(r'font\s*:\s*"([^"]*)"')
_SIZE_ARG_RE = re.compile(r"size\s*:\s*([^,]+)")
_LIST_MACRO_RE = re.compile(r"^#(list|enum)\(([^()\[\]]*)\)")
_START_ARG_RE = re.compile(r"start\s*:\s*(\d+)")
_LEGACY_ITEM_RE = re.compile(r"^([-+])\s+(.*)$")
_GUARDED_START_RE = re.compile(r"^(?:[$=`+-]|/\*|#\[)")
GUARD_OPEN = "#["


def find_closing(text: str, open_index: int, opening: str = "[", closing: str = "]") -> int:
    """Index of the bracket matching ``text[open_index]``, or -1.

    Backslash escapes are skipped, and so are string literals inside code
    arguments. A quote in markup content is plain text.
    """
    depth = 0
    parens = 0
    in_string = False
    i = open_index
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if in_string:
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"' and (parens > 0 or opening == "("):
            in_string = True
        elif ch == "(":
            parens += 1
        elif ch == ")":
            parens = max(0, parens - 1)
        if ch == opening:
            depth += 1
        elif ch == closing:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def read_bracket_groups(text: str, index: int) -> tuple[List[str], int]:
    """Collect consecutive ``[...]`` groups starting at ``index``."""
    groups: List[str] = []
    i = index
    while True:
        j = i
        while j < len(text) and text[j] in " \t":
            j += 1
        if j >= len(text) or text[j] != "[":
            return groups, i
        end = find_closing(text, j)
        if end == -1:
            return groups, i
        groups.append(text[j + 1 : end])
        i = end + 1


def wraps_whole(text: str, open_index: int) -> bool:
    return find_closing(text, open_index) == len(text) - 1


@dataclass
class Decoration:
    align: str | None = None
    font: str | None = None
    size: str | None = None


def _style_args(args: str) -> tuple[str | None, str | None] | None:
    """Font and size of a ``#text(...)`` argument list, None if it sets anything else."""
    font = size = None
    for part in args.split(","):
        part = part.strip()
        if not part:
            continue
        key = part.split(":", 1)[0].strip()
        if key == "font":
            match = _FONT_ARG_RE.match(part)
        elif key == "size":
            match = _SIZE_ARG_RE.match(part)
        else:
            return None
        if match is None:
            return None
        if key == "font":
            font = match.group(1)
        else:
            size = match.group(1).strip()
    return font, size


def unwrap_decorators(line: str) -> tuple[str, Decoration]:
    """Peel ``#align(x)[..]`` and font/size-only ``#text(..)[..]`` wrappers."""
    text = line.strip()
    decoration = Decoration()
    for _ in range(MAX_DECORATOR_DEPTH):
        match = _ALIGN_WRAPPER_RE.match(text)
        if match and wraps_whole(text, match.end() - 1):
            decoration.align = decoration.align or match.group(1)
            text = text[match.end() : -1].strip()
            continue
        match = _TEXT_WRAPPER_RE.match(text)
        if match and wraps_whole(text, match.end() - 1):
            style = _style_args(match.group(1))
            if style is not None:
                decoration.font = decoration.font or style[0]
                decoration.size = decoration.size or style[1]
                text = text[match.end() : -1].strip()
                continue
        break
    return text, decoration


def wrap_text(body: str, font: str | None = None, size: str | None = None) -> str:
    args = []
    if font:
        args.append(f'font: "{font.strip()}"')
    if size:
        args.append(f"size: {size.strip()}")
    if not args:
        return body
    return f"#text({', '.join(args)})[{body}]"


def wrap_align(body: str, align: str | None) -> str:
    if align and align != "left":
        return f"#align({align})[{body}]"
    return body


def align_value(align: str | None) -> str:
    return align if align in {"left", "right"} else "center"


# ---------------------------------------------------------------------------
# Line spacing


def snap_line_spacing(multiplier: float | None) -> float | None:
    """Nearest supported multiplier, None when unset, 1x or too far off."""
    if multiplier is None:
        return None
    best = min(LINE_SPACING_CHOICES, key=lambda option: abs(multiplier - option))
    if abs(multiplier - best) > _LINE_SPACING_TOLERANCE or best == 1.0:
        return None
    return best


def leading_from_multiplier(multiplier: float) -> float:
    return round(DEFAULT_LEADING_EM * multiplier, 3)


def multiplier_from_leading(leading_em: float) -> float | None:
    if abs(leading_em - DEFAULT_LEADING_EM) < 1e-6:
        return None
    best = None
    best_diff = float("inf")
    for option in LINE_SPACING_CHOICES:
        # Older files wrote the multiplier itself as the leading.
        diff = min(abs(leading_em - option), abs(leading_em - DEFAULT_LEADING_EM * option))
        if diff < best_diff:
            best, best_diff = option, diff
    if best_diff > _LINE_SPACING_TOLERANCE or best == 1.0:
        return None
    return best


def format_em(value: float) -> str:
    return f"{value:g}em"


# ---------------------------------------------------------------------------
# Paragraph runs

TEXT = "text"
BULLET = "bullet"
ORDERED = "ordered"


@dataclass
class Segment:
    kind: str
    lines: List[str]


def _visible(line: str) -> str:
    """Inner text of a single whole-line ``#name(..)[..]`` wrapper."""
    match = _ANY_WRAPPER_RE.match(line)
    if match and wraps_whole(line, match.end() - 1):
        return line[match.end() : -1].strip()
    return line


def line_kind(line: str) -> str:
    visible = _visible(line.strip())
    if BULLET_RE.match(visible):
        return BULLET
    if ORDERED_RE.match(visible):
        return ORDERED
    return TEXT


def segment_lines(lines: Sequence[str]) -> List[Segment]:
    segments: List[Segment] = []
    for line in lines:
        kind = line_kind(line)
        if segments and segments[-1].kind == kind:
            segments[-1].lines.append(line)
        else:
            segments.append(Segment(kind=kind, lines=[line]))
    return segments


def _strip_item_prefix(line: str, kind: str) -> tuple[str, int | None]:
    stripped = line.strip()
    pattern = BULLET_RE if kind == BULLET else ORDERED_RE
    match = _ANY_WRAPPER_RE.match(stripped)
    if match and wraps_whole(stripped, match.end() - 1):
        inner = stripped[match.end() : -1].strip()
        prefix = pattern.match(inner)
        number = int(prefix.group(1)) if kind == ORDERED else None
        return stripped[: match.end()] + inner[prefix.end() :] + "]", number
    prefix = pattern.match(stripped)
    number = int(prefix.group(1)) if kind == ORDERED else None
    return stripped[prefix.end() :], number


def guard_text_line(line: str) -> str:
    """Wrap a text run that would read as another construct in a ``#[..]`` block."""
    if not _GUARDED_START_RE.match(line):
        return line
    guarded = f"{GUARD_OPEN}{line}]"
    return guarded if wraps_whole(guarded, len(GUARD_OPEN) - 1) else line


def _item(body: str) -> str:
    return f"[{body if body.strip() else EMPTY_CONTENT}]"


def paragraph_to_markup(content: str) -> List[str]:
    """Render paragraph content as markup lines, one per run."""
    out: List[str] = []
    for segment in segment_lines(content.split("\n")):
        if segment.kind == TEXT:
            parts = [line.strip() or EMPTY_CONTENT for line in segment.lines]
            out.append(guard_text_line(f" {LINEBREAK} ".join(parts)))
            continue
        items = [_strip_item_prefix(line, segment.kind) for line in segment.lines]
        body = "".join(_item(text) for text, _ in items)
        if segment.kind == BULLET:
            out.append(f"#list(tight: true){body}")
            continue
        start = items[0][1] or 1
        params = "tight: true" if start == 1 else f"tight: true, start: {start}"
        out.append(f"#enum({params}){body}")
    return out


def parse_list_macro(text: str) -> List[str] | None:
    """``#list(..)[a][b]`` or ``#enum(..)[a][b]`` filling a whole line, as item lines."""
    match = _LIST_MACRO_RE.match(text)
    if match is None:
        return None
    groups, end = read_bracket_groups(text, match.end())
    if text[end:].strip():
        return None
    start_match = _START_ARG_RE.search(match.group(2))
    number = int(start_match.group(1)) if start_match else 1
    lines = []
    for group in groups:
        body = group.strip()
        if body == EMPTY_CONTENT:
            body = ""
        if match.group(1) == "list":
            lines.append(f"- {body}")
        else:
            lines.append(f"{number}. {body}")
            number += 1
    return lines


def markup_to_paragraph_lines(text: str) -> List[str]:
    """Inverse of one :func:`paragraph_to_markup` line."""
    if text.startswith(GUARD_OPEN) and wraps_whole(text, len(GUARD_OPEN) - 1):
        text = text[len(GUARD_OPEN) : -1]
    else:
        items = parse_list_macro(text)
        if items is not None:
            return items
        legacy = _LEGACY_ITEM_RE.match(text)
        if legacy:
            return [f"- {legacy.group(2)}" if legacy.group(1) == "-" else f"1. {legacy.group(2)}"]
    return ["" if part == EMPTY_CONTENT else part for part in _LINEBREAK_SPLIT_RE.split(text)]


def renumber_ordered(lines: List[str]) -> List[str]:
    """Number consecutive ordered lines sequentially from the first one."""
    out: List[str] = []
    expected = None
    for line in lines:
        match = ORDERED_RE.match(line)
        if match is None:
            expected = None
            out.append(line)
            continue
        if expected is None:
            expected = int(match.group(1))
        out.append(f"{expected}. {line[match.end():]}")
        expected += 1
    return out


def inline_to_single_line(text: str) -> str:
    s = sanitize_inline_math(text or "")
    s = re.sub(r"\\n(?![A-Za-z])", "\n", s)
    return re.sub(r"\r?\n", f" {LINEBREAK} ", s)
