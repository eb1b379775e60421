from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, List

from . import markers
from .containers import serialize_composite_row, serialize_cover
from .markup import (
    DEFAULT_LEADING_EM,
    BULLET_RE,
    ORDERED_RE,
    align_value,
    format_em,
    inline_to_single_line,
    leading_from_multiplier,
    paragraph_to_markup,
    snap_line_spacing,
    wrap_align,
    wrap_text,
)
from .math_convert import latex_to_typst, sanitize_math_segment
from .media_paths import is_image_placeholder, is_likely_hallucinated, placeholder_hint
from .model import (
    ANSWER_PLACEHOLDER,
    ZERO_WIDTH_SPACE,
    Block,
    ChartBlock,
    CodeBlock,
    CompositeRow,
    Cover,
    Document,
    DocumentSettings,
    Heading,
    ImageBlock,
    InputField,
    ListBlock,
    MathBlock,
    Paragraph,
    TableBlock,
    TablePayload,
    VerticalSpace,
)
from .payloads import chart_to_dict, math_to_dict, table_to_dict
from .settings import render_header

logger = logging.getLogger(__name__)

TARGETS = ("storage", "preview", "export")

IMAGE_PENDING_TEXT = "(image pending upload)"
CHART_PENDING_TEXT = "(chart not generated)"
HALLUCINATED_IMAGE_TEXT = "Image path looks invented and was not uploaded"
FIGURE_LABEL = "Figure"
TABLE_LABEL = "Table"

_ANSWER_BOX = (
    "#block(\n"
    "  width: 100%,\n"
    "  height: 6em,\n"
    '  stroke: (paint: luma(160), thickness: 0.5pt, dash: "dashed"),\n'
    "  inset: 8pt,\n"
    "  radius: 2pt,\n"
    ")[\n"
    "  #text(fill: luma(140))[{label}]\n"
    "]" + markers.ANSWER_MARKER
)
_NORMAL_STROKE = "stroke: 0.8pt"
_THREE_LINE_STROKE = (
    "stroke: (x: 0pt, y: 0pt), table.hline(y: 0, stroke: 1.6pt), "
    "table.hline(y: 1, stroke: 0.8pt), table.hline(y: {rows}, stroke: 1.6pt)"
)
_VERTICAL_PREVIEW = (
    "#block(width: 100%, above: 0pt, below: 0pt)[#v({length}) "
    "#place(top + left)[#block(width: 100%, height: {length}, fill: rgb(\"#dcfce7\"), "
    "stroke: (paint: rgb(\"#22c55e\"), thickness: 0.5pt, dash: \"dashed\"))]]"
)


@dataclass
class SerializeState:
    """Carried through one serialization pass, including into containers."""

    settings: DocumentSettings = field(default_factory=DocumentSettings)
    target: str = "storage"
    figure_counter: int = 0
    table_counter: int = 0

    def for_cover(self) -> SerializeState:
        # Cover pages are never numbered and do not advance the body counters.
        settings = replace(self.settings, table_caption_numbering=False, image_caption_numbering=False)
        return SerializeState(settings=settings, target=self.target)


def serialize(blocks: Iterable[Block], settings: DocumentSettings | None = None, target: str = "storage") -> str:
    """Render blocks as Typst markup, one block per blank-line separated chunk."""
    if target not in TARGETS:
        raise ValueError(f"Unknown serialization target: {target!r}")
    state = SerializeState(settings=settings or DocumentSettings(), target=target)
    return _serialize_blocks(list(blocks), state)


def serialize_document(doc: Document, target: str = "storage") -> str:
    body = serialize(doc.blocks, doc.settings, target=target)
    header = render_header(doc.settings)
    return f"{header}\n\n{body}" if body else header


def _serialize_blocks(blocks: List[Block], state: SerializeState) -> str:
    parts = []
    for block in blocks:
        text = _dispatch_block(block, state)
        if text:
            parts.append(text)
    return "\n\n".join(parts)


def _dispatch_block(block: Block, state: SerializeState) -> str:
    if isinstance(block, Heading):
        return _serialize_heading(block)
    if isinstance(block, Paragraph):
        return _serialize_paragraph(block)
    if isinstance(block, ListBlock):
        return _serialize_list(block)
    if isinstance(block, CodeBlock):
        return f"```{block.language}\n{block.content}\n```"
    if isinstance(block, MathBlock):
        return _serialize_math(block)
    if isinstance(block, ImageBlock):
        return _serialize_image(block, state)
    if isinstance(block, ChartBlock):
        return _serialize_chart(block)
    if isinstance(block, TableBlock):
        return _serialize_table(block, state)
    if isinstance(block, VerticalSpace):
        return _serialize_vertical_space(block, state)
    if isinstance(block, InputField):
        return _serialize_input_field(block)
    if isinstance(block, CompositeRow):
        return serialize_composite_row(block, state, _serialize_blocks)
    if isinstance(block, Cover):
        return serialize_cover(block, state, _serialize_blocks)
    logger.warning("Skipping block of unknown type %s", type(block).__name__)
    return ""


def _serialize_heading(heading: Heading) -> str:
    level = min(max(heading.level, 1), 6)
    text = " ".join(heading.content.split("\n"))
    return wrap_align(f"{'=' * level} {wrap_text(text, heading.font)}", heading.align)


def _serialize_paragraph(paragraph: Paragraph) -> str:
    if paragraph.placeholder and not paragraph.content.replace(ZERO_WIDTH_SPACE, "").strip():
        return _ANSWER_BOX.format(label=paragraph.placeholder or ANSWER_PLACEHOLDER)
    if paragraph.content == "":
        return markers.EMPTY_PAR_MARKER

    lines = [
        wrap_align(wrap_text(line, paragraph.font, paragraph.font_size), paragraph.align)
        for line in paragraph_to_markup(paragraph.content)
    ]
    multiplier = snap_line_spacing(paragraph.line_spacing)
    if multiplier is not None:
        lines.insert(0, f"#set par(leading: {format_em(leading_from_multiplier(multiplier))})")
        lines.append(f"#set par(leading: {format_em(DEFAULT_LEADING_EM)})")
    return "\n".join(lines)


def _serialize_list(block: ListBlock) -> str:
    lines = [line.strip() for line in block.content.split("\n") if line.strip()]
    first = ORDERED_RE.match(lines[0]) if lines else None
    items = []
    for line in lines:
        prefix = (ORDERED_RE if first else BULLET_RE).match(line)
        body = line[prefix.end() :] if prefix else line
        items.append(f"[{body.strip() or '#h(0pt)'}]")
    if first:
        start = int(first.group(1))
        params = "tight: true" if start == 1 else f"tight: true, start: {start}"
        macro = f"#enum({params}){''.join(items)}"
    else:
        macro = f"#list(tight: true){''.join(items)}"
    out = ["#block["]
    if block.font:
        out.append(f'#set text(font: "{block.font}")')
    out.append(macro)
    out.append("]")
    return "\n".join(out)


def _math_body(block: MathBlock) -> str:
    lines = [line for line in block.math_lines or [] if line.typst.strip() or line.latex.strip()]
    if lines:
        parts = [line.typst.strip() or latex_to_typst(line.latex) for line in lines]
        body = f"cases({', '.join(parts)})" if block.math_brace else " \\ ".join(parts)
    else:
        body = block.math_typst.strip() or block.content.strip() or latex_to_typst(block.math_latex)
    return sanitize_math_segment(" ".join(body.split()))


def _serialize_math(block: MathBlock) -> str:
    return f"$ {_math_body(block)} $" + markers.encode(markers.MATH, math_to_dict(block))


def _escape_markup(text: str) -> str:
    return "".join("\\" + ch if ch in "[]*#$\\_`<>@" else ch for ch in text)


def _caption_line(align: str, label: str, caption: str) -> str:
    return f"#align({align})[{inline_to_single_line((label + caption).strip())}]"


def _serialize_image(block: ImageBlock, state: SerializeState) -> str:
    align = align_value(block.align)
    width = block.width or "50%"
    height = block.height or "auto"
    src = block.content.strip()
    marker = markers.encode(
        markers.IMAGE,
        {"caption": block.caption, "width": block.width, "height": block.height, "align": block.align, "src": block.content},
    )

    if not src:
        text = inline_to_single_line(block.caption.strip()) or IMAGE_PENDING_TEXT
        return f"#align({align})[{text}]{marker}"
    if is_image_placeholder(src):
        hint = _escape_markup(placeholder_hint(src)) or "Image"
        box = (
            f'#block(width: {width}, height: 8em, fill: rgb("#eff6ff"), stroke: (paint: rgb("#93c5fd"), dash: "dashed"), '
            f'radius: 4pt, inset: 12pt)[#align(center + horizon)[#text(fill: rgb("#3b82f6"), size: 1.5em)[+] '
            f'#linebreak() #text(fill: rgb("#3b82f6"))[{hint}]]]'
        )
        return f"#align({align})[{box}]{marker}"
    if is_likely_hallucinated(src):
        logger.warning("Image path %r looks invented; rendering a warning box", src)
        box = (
            f'#block(width: 100%, fill: rgb("#fef2f2"), stroke: rgb("#fca5a5"), inset: 12pt, radius: 4pt)'
            f'[#align(center)[#text(fill: rgb("#dc2626"), weight: "bold")[{HALLUCINATED_IMAGE_TEXT}] '
            f'#linebreak() #text(size: 0.8em, fill: rgb("#991b1b"))[{_escape_markup(src)}]]]'
        )
        return box + marker

    quoted = src.replace("\\", "\\\\").replace('"', '\\"')
    image_line = f'#align({align}, image("{quoted}", width: {width}, height: {height})){marker}'
    caption = block.caption.strip()
    if not caption:
        return image_line
    label = ""
    if state.settings.image_caption_numbering:
        state.figure_counter += 1
        label = f"{FIGURE_LABEL} {state.figure_counter} "
    caption_line = _caption_line(align, label, caption)
    if state.settings.image_caption_position == "above":
        return f"{caption_line}\n{image_line}"
    return f"{image_line}\n{caption_line}"


def _serialize_chart(block: ChartBlock) -> str:
    align = align_value(block.align)
    marker = markers.encode(markers.CHART, chart_to_dict(block.chart))
    url = (block.chart.image_url or "").strip()
    if not url:
        return f"#align({align})[#block(width: {block.width or '50%'})[{CHART_PENDING_TEXT}]]{marker}"
    quoted = url.replace("\\", "\\\\").replace('"', '\\"')
    return f'#align({align}, image("{quoted}", width: {block.width or "50%"}, height: auto)){marker}'


def _table_cells(payload: TablePayload) -> List[str]:
    cells: List[str] = []
    for row in payload.cells:
        for cell in row:
            if cell.hidden:
                continue
            body = inline_to_single_line(cell.content)
            spans = []
            if (cell.rowspan or 1) > 1:
                spans.append(f"rowspan: {cell.rowspan}")
            if (cell.colspan or 1) > 1:
                spans.append(f"colspan: {cell.colspan}")
            if spans:
                cells.append(f"table.cell({', '.join(spans)})[{body}]")
            else:
                cells.append(f"[{body}]")
    return cells


def _serialize_table(block: TableBlock, state: SerializeState) -> str:
    payload = block.table
    columns = ", ".join("1fr" for _ in range(payload.cols))
    if payload.style == "three-line":
        stroke = _THREE_LINE_STROKE.format(rows=payload.rows)
    else:
        stroke = _NORMAL_STROKE
    body = ", ".join(_table_cells(payload))
    table = f"#table(columns: ({columns}), align: left + horizon, {stroke}, {body})"
    line = f"#align(center)[#block(width: {block.width or '50%'})[{table}]]"
    line += markers.encode(markers.TABLE, table_to_dict(payload))

    label = ""
    if state.settings.table_caption_numbering:
        state.table_counter += 1
        label = f"{TABLE_LABEL} {state.table_counter} "
    if not (label + payload.caption).strip():
        return line
    return f"{_caption_line('center', label, payload.caption)}\n{line}"


def _serialize_vertical_space(block: VerticalSpace, state: SerializeState) -> str:
    length = block.content.strip() or "5%"
    marker = markers.encode(markers.VSPACE, {"length": block.content})
    if state.target == "preview" and state.settings.vertical_space_visible:
        return _VERTICAL_PREVIEW.format(length=length) + marker
    return f"#v({length}){marker}"


def _serialize_input_field(block: InputField) -> str:
    payload = {
        "lines": [{"label": line.label, "value": line.value} for line in block.input_lines],
        "separator": block.input_separator,
        "showUnderline": block.input_show_underline,
        "width": block.input_width,
        "align": block.input_align,
        "fontSize": block.input_font_size,
        "fontFamily": block.input_font_family,
    }
    rows = []
    for line in block.input_lines or []:
        label = inline_to_single_line(line.label) + block.input_separator
        value = inline_to_single_line(line.value) or "#h(0pt)"
        if block.input_show_underline:
            cell = f"#box(width: 100%, stroke: (bottom: 0.5pt), outset: (bottom: 2pt))[{value}]"
        else:
            cell = value
        rows.append(f"#grid(columns: (auto, 1fr), column-gutter: 4pt, [{label}], [{cell}])")
    body = wrap_text(" #parbreak() ".join(rows), block.input_font_family or None, block.input_font_size or None)
    align = align_value(block.input_align)
    return f"#align({align})[#box(width: {block.input_width or '50%'})[{body}]]" + markers.encode(markers.INPUT, payload)
