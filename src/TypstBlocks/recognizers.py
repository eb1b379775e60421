"""Line recognizers turning Typst markup back into blocks.

Each recognizer looks at ``lines[index]`` (and possibly a few lines after it)
and either returns a :class:`~TypstBlocks.parser.Match` or None. Markers are
authoritative: when a structured payload is present it wins over whatever the
visible markup says.
"""

from __future__ import annotations

import logging
import re
from typing import List, Sequence

from . import markers
from .containers import recognize_composite_row, recognize_cover
from .markup import (
    EMPTY_CONTENT,
    find_closing,
    markup_to_paragraph_lines,
    multiplier_from_leading,
    parse_list_macro,
    renumber_ordered,
    unwrap_decorators,
    wraps_whole,
)
from .math_convert import typst_to_latex
from .model import (
    ANSWER_PLACEHOLDER,
    ZERO_WIDTH_SPACE,
    ChartBlock,
    CodeBlock,
    Heading,
    ImageBlock,
    InputField,
    InputLine,
    ListBlock,
    MathBlock,
    Paragraph,
    TableBlock,
    VerticalSpace,
)
from .parser import Match, ParseContext, Registry, ScanState
from .payloads import coerce_chart_payload, coerce_math_lines, coerce_table_payload

logger = logging.getLogger(__name__)

ANSWER_LOOKAHEAD = 20
LEGACY_TABLE_LOOKAHEAD = 200
LIST_BLOCK_LOOKAHEAD = 200

_HEADING_RE = re.compile(r"^(={1,6})(?:\s+(.*))?$")
_FENCE_OPEN_RE = re.compile(r"^```\s*([^\s`]*)\s*$")
_MATH_RE = re.compile(r"^\$\s*(.*?)\s*\$\s*(?:/\*MATH:([^*\s]*)\*/)?$", re.S)
_ALIGN_RE = re.compile(r"^#align\(\s*(left|center|right)")
_CAPTION_LINE_RE = re.compile(r"^#align\(\s*(left|center|right)\s*\)\s*\[")
_IMAGE_CALL_RE = re.compile(r'image\(\s*"((?:[^"\\]|\\.)*)"')
_WIDTH_ARG_RE = re.compile(r"width\s*:\s*([^,)\]]+)")
_HEIGHT_ARG_RE = re.compile(r"height\s*:\s*([^,)\]]+)")
_LEGACY_IMAGE_RE = re.compile(r'^#(?:image\(|align\(\s*(?:left|center|right)\s*,\s*image\()')
_FIGURE_RE = re.compile(r"^#figure\(")
_TABLE_WIDTH_RE = re.compile(r"#?block\(\s*width\s*:\s*([^\)\]]+)")
_LEGACY_TABLE_RE = re.compile(
    r"^#(?:align\(\s*center\s*\)\s*\[\s*#block\(\s*width\s*:|align\(\s*center\s*,\s*table\(|table\()"
)
_VSPACE_RE = re.compile(r"^#v\(\s*([^)]+?)\s*\)$")
_LEGACY_VSPACE_RE = re.compile(r"^#block\(\s*height\s*:\s*([^,)]+?)\s*[,)]")
_LIST_BLOCK_OPEN_RE = re.compile(r"^#block(?:\([^()]*\))?\s*\[$")
_SET_FONT_RE = re.compile(r'^#set text\(\s*font\s*:\s*"([^"]*)"\s*\)$')
_SET_PAR_RE = re.compile(r"^#set par\(\s*leading\s*:\s*(\d+(?:\.\d+)?|\.\d+)em\s*\)$")
_LEGACY_LIST_ITEM_RE = re.compile(r"^([-+])\s+(.*)$")
_ANSWER_LABEL_RE = re.compile(r"^#text\(fill: luma\(140\)\)\[(.*)\]$")


def _strip(lines: Sequence[str], index: int) -> str:
    return lines[index].strip() if 0 <= index < len(lines) else ""


def _has_any_marker(text: str) -> bool:
    return "/*" in text and "*/" in text


def _is_caption_line(text: str) -> bool:
    """A whole-line ``#align(x)[...]`` with no marker of its own."""
    match = _CAPTION_LINE_RE.match(text)
    return bool(match) and not _has_any_marker(text) and wraps_whole(text, match.end() - 1)


def _caption_text(text: str) -> str:
    inner, _ = unwrap_decorators(text)
    return inner


def _align_of(text: str, default: str = "center") -> str:
    match = _ALIGN_RE.match(text)
    return match.group(1) if match else default


def _payload_str(payload: dict, key: str, default: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else default


# ---------------------------------------------------------------------------
# List block


def recognize_list(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    if not _LIST_BLOCK_OPEN_RE.match(_strip(lines, index)):
        return None
    font = None
    items: List[str] | None = None
    for j in range(index + 1, min(len(lines), index + LIST_BLOCK_LOOKAHEAD)):
        current = lines[j].strip()
        if current == "]":
            if items is None:
                return None
            content = "\n".join(renumber_ordered(items))
            return Match(ListBlock(content=content, font=font), j + 1, ScanState.SKIPPING_UNTIL_MARKER)
        if not current:
            continue
        font_match = _SET_FONT_RE.match(current)
        if font_match:
            font = font_match.group(1)
            continue
        macro_items = parse_list_macro(current)
        if macro_items is not None:
            items = (items or []) + macro_items
            continue
        legacy = _LEGACY_LIST_ITEM_RE.match(current)
        if legacy:
            marker = "-" if legacy.group(1) == "-" else "1."
            items = (items or []) + [f"{marker} {legacy.group(2)}"]
            continue
        return None
    return None


# ---------------------------------------------------------------------------
# Math


def recognize_math(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    line = _strip(lines, index)
    if not line.startswith("$"):
        return None
    match = _MATH_RE.match(line)
    if match is None:
        return None
    visible = match.group(1)
    if match.group(2) is None and "$" in visible:
        # Text that merely starts and ends with inline math.
        return None
    payload = markers.decode_payload(match.group(2)) if match.group(2) is not None else None

    if isinstance(payload, dict):
        typst = _payload_str(payload, "typst", "")
        latex = _payload_str(payload, "latex", "") or typst_to_latex(typst)
        fmt = payload.get("format")
        brace = payload.get("brace")
        block = MathBlock(
            content=typst,
            math_format=fmt if fmt in ("latex", "typst") else "latex",
            math_latex=latex,
            math_typst=typst,
            math_lines=coerce_math_lines(payload.get("lines")),
            math_brace=brace if isinstance(brace, bool) else None,
        )
    else:
        if match.group(2) is not None:
            logger.warning("Math marker on line %d could not be decoded", index + 1)
        block = MathBlock(
            content=visible,
            math_format="latex",
            math_latex=typst_to_latex(visible),
            math_typst=visible,
        )
    return Match(block, index + 1)


# ---------------------------------------------------------------------------
# Code


def recognize_code(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    match = _FENCE_OPEN_RE.match(_strip(lines, index))
    if match is None:
        return None
    body: List[str] = []
    j = index + 1
    while j < len(lines) and lines[j].strip() != "```":
        body.append(lines[j])
        j += 1
    if j >= len(lines):
        logger.warning("Code fence opened on line %d is never closed", index + 1)
    block = CodeBlock(content="\n".join(body), language=match.group(1))
    return Match(block, min(j + 1, len(lines)), ScanState.IN_CODE_FENCE)


# ---------------------------------------------------------------------------
# Heading


def recognize_heading(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    line = _strip(lines, index)
    inner, outer = unwrap_decorators(line)
    match = _HEADING_RE.match(inner)
    if match is None:
        return None
    text, decoration = unwrap_decorators(match.group(2) or "")
    block = Heading(
        content=text,
        level=len(match.group(1)),
        font=decoration.font or outer.font,
        align=outer.align,
    )
    return Match(block, index + 1)


# ---------------------------------------------------------------------------
# Table


def _table_from_line(line: str) -> TableBlock:
    decoded = markers.decode(markers.TABLE, line)
    if decoded is None:
        logger.warning("Table marker could not be decoded; using an empty table")
    width = _TABLE_WIDTH_RE.search(line)
    return TableBlock(
        table=coerce_table_payload(decoded),
        width=width.group(1).strip() if width else "50%",
    )


def recognize_table(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    line = _strip(lines, index)
    if markers.trailing_token(markers.TABLE, line):
        return Match(_table_from_line(line), index + 1)

    following = _strip(lines, index + 1)
    if _is_caption_line(line) and markers.trailing_token(markers.TABLE, following):
        return Match(_table_from_line(following), index + 2)

    if _LEGACY_TABLE_RE.match(line) and not _has_any_marker(line):
        for j in range(index + 1, min(len(lines), index + LEGACY_TABLE_LOOKAHEAD)):
            if not lines[j].strip():
                break
            if markers.trailing_token(markers.TABLE, lines[j]):
                return Match(_table_from_line(lines[j].strip()), j + 1, ScanState.SKIPPING_UNTIL_MARKER)
    return None


# ---------------------------------------------------------------------------
# Vertical space


def recognize_vertical_space(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    line = _strip(lines, index)
    if markers.has_token(markers.VSPACE, line):
        payload = markers.decode(markers.VSPACE, line)
        length = payload.get("length") if isinstance(payload, dict) else None
        if not isinstance(length, str):
            visible = re.search(r"#v\(\s*([^)]+?)\s*\)", line)
            length = visible.group(1) if visible else "5%"
        return Match(VerticalSpace(content=length), index + 1)

    match = _VSPACE_RE.match(line) or _LEGACY_VSPACE_RE.match(line)
    if match:
        return Match(VerticalSpace(content=match.group(1)), index + 1)
    return None


# ---------------------------------------------------------------------------
# Input field


def _input_lines(payload: dict) -> List[InputLine]:
    raw = payload.get("lines")
    if isinstance(raw, list):
        out = [
            InputLine(label=_payload_str(item, "label", ""), value=_payload_str(item, "value", ""))
            for item in raw
            if isinstance(item, dict)
        ]
        if out:
            return out
    # Single-line payloads from before multi-line fields existed.
    return [InputLine(label=_payload_str(payload, "label", ""), value=_payload_str(payload, "value", ""))]


def recognize_input_field(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    line = _strip(lines, index)
    if not markers.has_token(markers.INPUT, line):
        return None
    payload = markers.decode(markers.INPUT, line)
    if not isinstance(payload, dict):
        logger.warning("Input field marker on line %d could not be decoded", index + 1)
        payload = {}
    show_underline = payload.get("showUnderline")
    block = InputField(
        input_lines=_input_lines(payload),
        input_separator=_payload_str(payload, "separator", "："),
        input_show_underline=show_underline if isinstance(show_underline, bool) else True,
        input_width=_payload_str(payload, "width", "50%"),
        input_align=_payload_str(payload, "align", "center"),
        input_font_size=_payload_str(payload, "fontSize", ""),
        input_font_family=_payload_str(payload, "fontFamily", ""),
    )
    return Match(block, index + 1)


# ---------------------------------------------------------------------------
# Images and charts


def _image_from_line(line: str) -> ImageBlock:
    payload = markers.decode(markers.IMAGE, line)
    if not isinstance(payload, dict):
        payload = {}
    source = _IMAGE_CALL_RE.search(line)
    width = _WIDTH_ARG_RE.search(line)
    height = _HEIGHT_ARG_RE.search(line)
    return ImageBlock(
        content=_payload_str(payload, "src", source.group(1) if source else ""),
        width=_payload_str(payload, "width", width.group(1).strip() if width else "50%"),
        height=_payload_str(payload, "height", height.group(1).strip() if height else "auto"),
        align=_payload_str(payload, "align", _align_of(line)),
        caption=_payload_str(payload, "caption", ""),
    )


def _chart_from_line(line: str) -> ChartBlock:
    decoded = markers.decode(markers.CHART, line)
    if decoded is None:
        logger.warning("Chart marker could not be decoded; using defaults")
    chart = coerce_chart_payload(decoded)
    source = _IMAGE_CALL_RE.search(line)
    if chart.image_url is None and source:
        chart.image_url = source.group(1)
    width = _WIDTH_ARG_RE.search(line)
    return ChartBlock(
        chart=chart,
        width=width.group(1).strip() if width else "50%",
        align=_align_of(line),
    )


def _figure_image(lines: Sequence[str], index: int) -> Match | None:
    text = lines[index].strip()
    opening = len("#figure")
    j = index
    while find_closing(text, opening, "(", ")") == -1:
        j += 1
        if j >= len(lines) or j - index > LEGACY_TABLE_LOOKAHEAD:
            return None
        text = text + "\n" + lines[j].strip()
    source = _IMAGE_CALL_RE.search(text)
    if source is None:
        return None
    caption = ""
    caption_at = text.find("caption:")
    if caption_at != -1:
        bracket = text.find("[", caption_at)
        end = find_closing(text, bracket) if bracket != -1 else -1
        if end != -1:
            caption = _caption_text(text[bracket + 1 : end])
    width = _WIDTH_ARG_RE.search(text)
    block = ImageBlock(
        content=source.group(1),
        width=width.group(1).strip() if width else "50%",
        caption=caption,
    )
    if markers.has_token(markers.IMAGE, text):
        block = _image_from_line(text)
    return Match(block, j + 1)


def recognize_media(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    line = _strip(lines, index)

    if markers.has_token(markers.IMAGE, line):
        block = _image_from_line(line)
        following = _strip(lines, index + 1)
        if block.caption.strip() and _is_caption_line(following):
            return Match(block, index + 2)
        return Match(block, index + 1)

    if markers.has_token(markers.CHART, line):
        return Match(_chart_from_line(line), index + 1)

    following = _strip(lines, index + 1)
    if _is_caption_line(line) and markers.has_token(markers.IMAGE, following):
        return Match(_image_from_line(following), index + 2)

    if _FIGURE_RE.match(line):
        return _figure_image(lines, index)

    if _LEGACY_IMAGE_RE.match(line):
        source = _IMAGE_CALL_RE.search(line)
        if source is None:
            return None
        width = _WIDTH_ARG_RE.search(line)
        block = ImageBlock(
            content=source.group(1),
            width=width.group(1).strip() if width else "50%",
            align=_align_of(line),
        )
        return Match(block, index + 1)
    return None


# ---------------------------------------------------------------------------
# Paragraph


def _answer_paragraph(box_lines: Sequence[str]) -> Paragraph:
    label = ANSWER_PLACEHOLDER
    for raw in box_lines:
        match = _ANSWER_LABEL_RE.match(raw.strip())
        if match:
            label = match.group(1)
            break
    return Paragraph(content=ZERO_WIDTH_SPACE, placeholder=label)


def recognize_paragraph(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    """Catch-all: consecutive non-blank lines no other recognizer claims."""
    line = _strip(lines, index)
    if line == markers.EMPTY_PAR_MARKER:
        return Match(Paragraph(content=""), index + 1)
    if markers.ANSWER_MARKER in line:
        return Match(_answer_paragraph([line]), index + 1)
    if line.startswith("#block("):
        for j in range(index + 1, min(len(lines), index + ANSWER_LOOKAHEAD + 1)):
            if not lines[j].strip():
                break
            if markers.ANSWER_MARKER in lines[j]:
                return Match(_answer_paragraph(lines[index:j]), j + 1, ScanState.SKIPPING_UNTIL_MARKER)

    i = index
    line_spacing = None
    opened = _SET_PAR_RE.match(line)
    if opened:
        line_spacing = multiplier_from_leading(float(opened.group(1)))
        i += 1

    body: List[str] = []
    while i < len(lines) and lines[i].strip():
        current = lines[i].strip()
        if _SET_PAR_RE.match(current):
            if opened and body:
                i += 1
            break
        if i > index + (1 if opened else 0) and ctx.claims(lines, i, exclude="paragraph"):
            break
        body.append(current)
        i += 1

    if not body:
        # A stray ``#set par`` line on its own.
        return Match(None, max(i, index + 1))

    font = size = align = None
    content_lines: List[str] = []
    for raw in body:
        text, decoration = unwrap_decorators(raw)
        font = font or decoration.font
        size = size or decoration.size
        align = align or decoration.align
        if text == EMPTY_CONTENT:
            content_lines.append("")
            continue
        content_lines.extend(markup_to_paragraph_lines(text))

    block = Paragraph(
        content="\n".join(renumber_ordered(content_lines)),
        font=font,
        font_size=size,
        align=align,
        line_spacing=line_spacing,
    )
    return Match(block, i, ScanState.ACCUMULATING_PARAGRAPH)


DEFAULT_REGISTRY = Registry(
    (
        ("cover", recognize_cover),
        ("list", recognize_list),
        ("math", recognize_math),
        ("code", recognize_code),
        ("heading", recognize_heading),
        ("table", recognize_table),
        ("composite_row", recognize_composite_row),
        ("vertical_space", recognize_vertical_space),
        ("input_field", recognize_input_field),
        ("media", recognize_media),
        ("paragraph", recognize_paragraph),
    )
)
