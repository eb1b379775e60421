from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Sequence, Tuple

import yaml

from .math_convert import latex_to_typst, typst_to_latex
from .media_paths import normalize_image_url
from .model import (
    ANSWER_PLACEHOLDER,
    BLOCK_TYPES,
    ZERO_WIDTH_SPACE,
    Block,
    ChartBlock,
    CompositeRow,
    Cover,
    Document,
    DocumentSettings,
    Heading,
    ImageBlock,
    InputField,
    InputLine,
    MathBlock,
    MathLine,
    Paragraph,
    TableBlock,
)
from .payloads import chart_to_dict, coerce_chart_payload, coerce_table_payload, table_to_dict
from .settings import coerce_settings, settings_to_dict

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[A-Za-z]*[ \t]*\n(.*?)```", re.S)
_ANSWER_RE = re.compile(r"^\s*\[\[\s*ANSWER\s*(?::\s*(.*?))?\s*\]\]\s*$", re.I)

# (wire key, attribute, expected type) per block type; ``content`` and the
# structured fields are handled separately.
_FIELDS: Dict[str, Tuple[Tuple[str, str, type], ...]] = {
    "heading": (("level", "level", int), ("font", "font", str), ("align", "align", str)),
    "paragraph": (
        ("font", "font", str),
        ("fontSize", "font_size", str),
        ("align", "align", str),
        ("lineSpacing", "line_spacing", float),
        ("placeholder", "placeholder", str),
    ),
    "code": (("language", "language", str),),
    "math": (
        ("mathFormat", "math_format", str),
        ("mathLatex", "math_latex", str),
        ("mathTypst", "math_typst", str),
        ("mathBrace", "math_brace", bool),
    ),
    "image": (
        ("width", "width", str),
        ("height", "height", str),
        ("align", "align", str),
        ("caption", "caption", str),
    ),
    "chart": (("width", "width", str), ("align", "align", str)),
    "list": (("font", "font", str),),
    "table": (("width", "width", str),),
    "vertical_space": (),
    "input_field": (
        ("inputSeparator", "input_separator", str),
        ("inputShowUnderline", "input_show_underline", bool),
        ("inputWidth", "input_width", str),
        ("inputAlign", "input_align", str),
        ("inputFontSize", "input_font_size", str),
        ("inputFontFamily", "input_font_family", str),
    ),
    "composite_row": (
        ("compositeJustify", "composite_justify", str),
        ("compositeGap", "composite_gap", str),
        ("compositeVerticalAlign", "composite_vertical_align", str),
    ),
    "cover": (("coverFixedOnePage", "cover_fixed_one_page", bool),),
}


class BlockValidationError(ValueError):
    """A block list that cannot be accepted; ``index`` locates the offending entry."""

    def __init__(self, message: str, index: int | str | None = None) -> None:
        super().__init__(message if index is None else f"block {index}: {message}")
        self.index = index


def load_document(text: str, project_id: str | None = None, strict: bool = True) -> Document:
    """Parse a YAML/JSON block file into a Document.

    The root is either a list of blocks or a mapping with ``blocks`` and an
    optional ``settings`` mapping. Text around a fenced or bare JSON payload,
    as language models tend to produce, is ignored.
    """
    data = _load_data(text)
    if isinstance(data, list):
        entries, settings = data, DocumentSettings()
    elif isinstance(data, dict):
        entries = data.get("blocks")
        if not isinstance(entries, list):
            raise BlockValidationError("'blocks' must be a list")
        settings = coerce_settings(data.get("settings"))
    else:
        raise BlockValidationError("root must be a list of blocks or a mapping with 'blocks'")
    blocks = blocks_from_list(entries, project_id=project_id, strict=strict)
    return Document(blocks=blocks, settings=settings)


def load_blocks(text: str, project_id: str | None = None, strict: bool = True) -> List[Block]:
    return load_document(text, project_id=project_id, strict=strict).blocks


def _load_data(text: str) -> Any:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        data = None
    if isinstance(data, (list, dict)):
        return data
    extracted = extract_payload_text(text)
    try:
        return yaml.safe_load(extracted)
    except yaml.YAMLError as exc:
        raise BlockValidationError(f"not valid YAML or JSON: {exc}") from exc


def extract_payload_text(text: str) -> str:
    """The JSON/YAML part of a chatty model answer."""
    fence = _FENCE_RE.search(text)
    if fence:
        return fence.group(1)
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text
    start = min(starts)
    end = text.rfind("}" if text[start] == "{" else "]")
    return text[start : end + 1] if end > start else text


def blocks_from_list(
    entries: Sequence[Any],
    project_id: str | None = None,
    strict: bool = True,
    prefix: str = "",
) -> List[Block]:
    blocks: List[Block] = []
    rejected = 0
    for index, entry in enumerate(entries):
        try:
            blocks.append(block_from_dict(entry, index=f"{prefix}{index}", project_id=project_id, strict=strict))
        except BlockValidationError as exc:
            if strict:
                raise
            logger.warning("Skipping invalid block: %s", exc)
            rejected += 1
    if rejected and not blocks:
        raise BlockValidationError("no valid blocks left after validation")
    return blocks


def _typed(value: Any, expected: type, key: str, index: str) -> Any:
    if expected is bool:
        if isinstance(value, bool):
            return value
    elif expected is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif expected is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif expected is str:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    raise BlockValidationError(f"field '{key}' should be {expected.__name__}, got {type(value).__name__}", index)


def block_from_dict(
    entry: Any,
    index: int | str = 0,
    project_id: str | None = None,
    strict: bool = True,
) -> Block:
    index = str(index)
    if isinstance(entry, str):
        return _normalize_paragraph(Paragraph(content=entry))
    if not isinstance(entry, dict):
        raise BlockValidationError(f"expected a mapping, got {type(entry).__name__}", index)
    block_type = entry.get("type")
    cls = BLOCK_TYPES.get(block_type) if isinstance(block_type, str) else None
    if cls is None:
        raise BlockValidationError(f"unknown block type {block_type!r}", index)

    kwargs: Dict[str, Any] = {}
    if isinstance(entry.get("id"), str):
        kwargs["id"] = entry["id"]
    if entry.get("content") is not None:
        kwargs["content"] = _typed(entry["content"], str, "content", index)
    for key, attr, expected in _FIELDS[block_type]:
        value = entry.get(key, entry.get(attr))
        if value is not None:
            kwargs[attr] = _typed(value, expected, key, index)

    if cls is MathBlock:
        kwargs["math_lines"] = _math_lines(entry.get("mathLines", entry.get("math_lines")), index)
    elif cls is ChartBlock:
        kwargs["chart"] = coerce_chart_payload(entry.get("chart", kwargs.pop("content", None)))
    elif cls is TableBlock:
        kwargs["table"] = coerce_table_payload(entry.get("table", kwargs.pop("content", None)))
    elif cls is InputField:
        lines = _input_lines(entry.get("inputLines", entry.get("input_lines")), index)
        if lines is not None:
            kwargs["input_lines"] = lines
    elif cls in (CompositeRow, Cover):
        children = entry.get("children") or []
        if not isinstance(children, list):
            raise BlockValidationError("'children' must be a list", index)
        kwargs["children"] = blocks_from_list(children, project_id, strict, prefix=f"{index}.children.")
        kwargs.pop("content", None)

    block = cls(**kwargs)
    if isinstance(block, Heading):
        block.level = min(max(block.level, 1), 6)
    elif isinstance(block, Paragraph):
        block = _normalize_paragraph(block)
    elif isinstance(block, MathBlock):
        _normalize_math(block)
    elif isinstance(block, ImageBlock):
        url = normalize_image_url(block.content, project_id)
        if url is None:
            raise BlockValidationError(f"image URL {block.content!r} rejected", index)
        block.content = url
    return block


def _math_lines(raw: Any, index: str) -> List[MathLine] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise BlockValidationError("'mathLines' must be a list", index)
    lines = []
    for item in raw:
        if not isinstance(item, dict):
            raise BlockValidationError("'mathLines' entries must be mappings", index)
        lines.append(
            MathLine(
                latex=_typed(item.get("latex", ""), str, "mathLines.latex", index),
                typst=_typed(item.get("typst", ""), str, "mathLines.typst", index),
            )
        )
    return lines


def _input_lines(raw: Any, index: str) -> List[InputLine] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise BlockValidationError("'inputLines' must be a list", index)
    lines = []
    for item in raw:
        if isinstance(item, str):
            lines.append(InputLine(label=item))
        elif isinstance(item, dict):
            lines.append(
                InputLine(
                    label=_typed(item.get("label", ""), str, "inputLines.label", index),
                    value=_typed(item.get("value", ""), str, "inputLines.value", index),
                )
            )
        else:
            raise BlockValidationError("'inputLines' entries must be mappings", index)
    return lines


def _normalize_paragraph(block: Paragraph) -> Paragraph:
    answer = _ANSWER_RE.match(block.content)
    if answer:
        block.content = ZERO_WIDTH_SPACE
        block.placeholder = answer.group(1) or block.placeholder or ANSWER_PLACEHOLDER
    return block


def _normalize_math(block: MathBlock) -> None:
    if not block.math_latex and not block.math_typst and block.content:
        if block.math_format == "typst":
            block.math_typst = block.content
        else:
            block.math_latex = block.content
    if block.math_latex and not block.math_typst:
        block.math_typst = latex_to_typst(block.math_latex)
    elif block.math_typst and not block.math_latex:
        block.math_latex = typst_to_latex(block.math_typst)
    for line in block.math_lines or []:
        if line.latex and not line.typst:
            line.typst = latex_to_typst(line.latex)
    block.content = block.math_typst


# ---------------------------------------------------------------------------
# Writing


def block_to_dict(block: Block) -> dict:
    data: Dict[str, Any] = {"type": block.type, "id": block.id}
    if not isinstance(block, (ChartBlock, TableBlock, CompositeRow, Cover)):
        data["content"] = block.content
    for key, attr, _ in _FIELDS[block.type]:
        value = getattr(block, attr)
        if value is not None:
            data[key] = value
    if isinstance(block, MathBlock) and block.math_lines is not None:
        data["mathLines"] = [{"latex": line.latex, "typst": line.typst} for line in block.math_lines]
    elif isinstance(block, ChartBlock):
        data["chart"] = chart_to_dict(block.chart)
    elif isinstance(block, TableBlock):
        data["table"] = table_to_dict(block.table)
    elif isinstance(block, InputField):
        data["inputLines"] = [{"label": line.label, "value": line.value} for line in block.input_lines]
    elif isinstance(block, (CompositeRow, Cover)):
        data["children"] = [block_to_dict(child) for child in block.children]
    return data


def dump_document(doc: Document) -> str:
    data = {
        "settings": settings_to_dict(doc.settings),
        "blocks": [block_to_dict(block) for block in doc.blocks],
    }
    return yaml.safe_dump(data, allow_unicode=True, sort_keys=False)


def dump_blocks(blocks: Sequence[Block]) -> str:
    return yaml.safe_dump([block_to_dict(block) for block in blocks], allow_unicode=True, sort_keys=False)
