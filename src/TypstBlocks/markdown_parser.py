from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from markdown_it import MarkdownIt
from mdit_py_plugins.texmath import texmath_plugin

from .math_convert import latex_to_typst
from .model import (
    Block,
    CodeBlock,
    Document,
    Heading,
    ImageBlock,
    MathBlock,
    Paragraph,
    TableBlock,
    TableCell,
    TablePayload,
)

logger = logging.getLogger(__name__)

_TYPST_SPECIAL = set("\\#*_$[]@<`")


def parse_markdown(text: str) -> Document:
    """Import Markdown as editor blocks."""
    md = MarkdownIt("commonmark").use(texmath_plugin).enable(["table"])
    tokens = md.parse(text)
    blocks, _ = _parse_blocks(tokens, 0, stop_types=set())
    return Document(blocks=blocks)


def _math_block(latex: str) -> MathBlock:
    latex = latex.strip()
    typst = latex_to_typst(latex)
    return MathBlock(content=typst, math_format="latex", math_latex=latex, math_typst=typst)


def _parse_blocks(tokens, index: int, stop_types: set[str]) -> tuple[List[Block], int]:
    blocks: List[Block] = []
    i = index
    while i < len(tokens):
        tok = tokens[i]
        if tok.type in stop_types:
            break
        if tok.type == "heading_open":
            level = int(tok.tag[1])
            inline = tokens[i + 1]
            blocks.append(Heading(content=_inline_markup(inline.children or []).strip(), level=level))
            i += 3
        elif tok.type == "paragraph_open":
            inline = tokens[i + 1]
            display_latex = _extract_display_math_inline(inline.content or "")
            if display_latex is not None:
                blocks.append(_math_block(display_latex))
                i += 3
                continue
            children = list(inline.children or [])
            images = [child for child in children if child.type == "image"]
            if len(images) == 1 and all(c.type == "image" or not (c.content or "").strip() for c in children):
                image = images[0]
                caption = image.attrGet("title") or image.content or ""
                blocks.append(ImageBlock(content=image.attrGet("src") or "", caption=caption))
            else:
                blocks.append(Paragraph(content=_inline_markup(children).strip()))
            i += 3
        elif tok.type in ("bullet_list_open", "ordered_list_open"):
            lines, i = _parse_list(tokens, i)
            blocks.append(Paragraph(content="\n".join(lines)))
        elif tok.type in ("fence", "code_block"):
            language = (tok.info or "").strip().split(" ")[0] or "python"
            blocks.append(CodeBlock(content=tok.content.rstrip("\n"), language=language))
            i += 1
        elif tok.type in ("math_block", "math_block_eqno"):
            blocks.append(_math_block(tok.content))
            i += 1
        elif tok.type == "table_open":
            table_block, i = _parse_table(tokens, i)
            blocks.append(table_block)
        else:
            if tok.type in ("hr", "html_block"):
                logger.debug("Dropping Markdown %s", tok.type)
            i += 1
    return blocks, i


def _parse_list(tokens, index: int) -> tuple[List[str], int]:
    """Flatten a (possibly nested) list into ``- item`` / ``N. item`` lines."""
    opener = tokens[index]
    ordered = opener.type == "ordered_list_open"
    closing = "ordered_list_close" if ordered else "bullet_list_close"
    number = int(opener.attrGet("start") or 1) if ordered else 0
    lines: List[str] = []
    item = -1
    i = index + 1
    while i < len(tokens) and tokens[i].type != closing:
        tok = tokens[i]
        if tok.type == "list_item_open":
            lines.append(f"{number}. " if ordered else "- ")
            number += 1
            item = len(lines) - 1
            i += 1
        elif tok.type == "inline" and item >= 0:
            text = _inline_markup(tok.children or []).strip()
            joiner = "" if lines[item].endswith(" ") else " "
            lines[item] += joiner + text
            i += 1
        elif tok.type in ("bullet_list_open", "ordered_list_open"):
            nested, i = _parse_list(tokens, i)
            lines.extend(nested)
            # Text after a nested list belongs to no visible item.
            item = -1
        else:
            i += 1
    return [line.rstrip() for line in lines], i + 1


def _parse_table(tokens, index: int) -> tuple[TableBlock, int]:
    rows: List[List[str]] = []
    i = index + 1
    while i < len(tokens):
        tok = tokens[i]
        if tok.type == "tr_open":
            row: List[str] = []
            i += 1
            while tokens[i].type != "tr_close":
                if tokens[i].type in {"td_open", "th_open"}:
                    inline = tokens[i + 1]
                    row.append(_inline_markup(inline.children or []).strip())
                    i += 3
                else:
                    i += 1
            rows.append(row)
        elif tok.type == "table_close":
            break
        i += 1
    cols = max((len(row) for row in rows), default=1)
    payload = TablePayload(
        rows=len(rows) or 1,
        cols=cols,
        cells=[[TableCell(content=text) for text in row] for row in rows],
    )
    return TableBlock(table=payload), i + 1


def _escape(text: str) -> str:
    return "".join("\\" + ch if ch in _TYPST_SPECIAL else ch for ch in text)


def _inline_markup(children: Iterable) -> str:
    """Render inline tokens as Typst markup."""
    parts: List[str] = []
    children_list = list(children)
    i = 0
    while i < len(children_list):
        tok = children_list[i]
        if tok.type == "text":
            parts.append(_escape(tok.content))
        elif tok.type == "softbreak":
            parts.append(" ")
        elif tok.type == "hardbreak":
            parts.append("\n")
        elif tok.type == "strong_open" or tok.type == "strong_close":
            parts.append("*")
        elif tok.type == "em_open" or tok.type == "em_close":
            parts.append("_")
        elif tok.type == "code_inline":
            parts.append(f"`{tok.content}`")
        elif tok.type in {"math_inline", "math_single", "math_inline_double"}:
            parts.append(f"${latex_to_typst(tok.content)}$")
        elif tok.type == "link_open":
            href = tok.attrGet("href") or ""
            link_text, consumed = _collect_text(children_list, i + 1, "link_close")
            target = href.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'#link("{target}")[{_escape(link_text or href)}]')
            i = consumed
        elif tok.type == "image":
            parts.append(_escape(tok.content or ""))
        i += 1
    return "".join(parts)


def _collect_text(tokens: Sequence, index: int, closing_type: str) -> tuple[str, int]:
    texts: List[str] = []
    i = index
    while i < len(tokens):
        tok = tokens[i]
        if tok.type == closing_type:
            break
        if tok.type in ("text", "code_inline"):
            texts.append(tok.content)
        i += 1
    return "".join(texts), i


def _extract_display_math_inline(text: str) -> str | None:
    stripped = text.strip()
    if not (stripped.startswith("$$") and stripped.endswith("$$")) or len(stripped) < 4:
        return None
    inner = stripped[2:-2].strip()
    return inner or None
