from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Type


ANSWER_PLACEHOLDER = "Answer area"
ZERO_WIDTH_SPACE = "\u200b"


def new_block_id() -> str:
    return f"block-{uuid.uuid4().hex[:12]}"


@dataclass
class DocumentSettings:
    table_caption_numbering: bool = True
    image_caption_numbering: bool = True
    image_caption_position: str = "below"
    font_size: str = "10.5pt"
    # Only read by preview rendering of vertical space blocks.
    vertical_space_visible: bool = False


@dataclass
class Block:
    """Base class for block-level nodes.

    ``id`` is an opaque UI handle and never takes part in equality.
    """

    type: ClassVar[str] = ""

    id: str = field(default_factory=new_block_id, compare=False, repr=False)
    content: str = ""


@dataclass
class Document:
    blocks: List[Block]
    settings: DocumentSettings = field(default_factory=DocumentSettings)


@dataclass
class Heading(Block):
    type: ClassVar[str] = "heading"

    level: int = 1
    font: str | None = None
    align: str | None = None


@dataclass
class Paragraph(Block):
    type: ClassVar[str] = "paragraph"

    font: str | None = None
    font_size: str | None = None
    align: str | None = None
    line_spacing: float | None = None
    placeholder: str | None = None


@dataclass
class CodeBlock(Block):
    type: ClassVar[str] = "code"

    language: str = "python"


@dataclass
class MathLine:
    latex: str = ""
    typst: str = ""


@dataclass
class MathBlock(Block):
    type: ClassVar[str] = "math"

    math_format: str = "latex"
    math_latex: str = ""
    math_typst: str = ""
    math_lines: List[MathLine] | None = None
    math_brace: bool | None = None


@dataclass
class ImageBlock(Block):
    """``content`` holds the image source URL."""

    type: ClassVar[str] = "image"

    width: str = "50%"
    height: str = "auto"
    align: str = "center"
    caption: str = ""


@dataclass
class TableSelection:
    block_id: str = ""
    r1: int = 0
    c1: int = 0
    r2: int = 0
    c2: int = 0


@dataclass
class ChartPayload:
    chart_type: str = "scatter"
    title: str = ""
    x_label: str = ""
    y_label: str = ""
    legend: bool = True
    data_source: str = "manual"
    manual_text: str = ""
    table_selection: TableSelection | None = None
    image_url: str | None = None


@dataclass
class ChartBlock(Block):
    type: ClassVar[str] = "chart"

    chart: ChartPayload = field(default_factory=ChartPayload)
    width: str = "50%"
    align: str = "center"


@dataclass
class ListBlock(Block):
    """Stand-alone list; ``content`` uses ``- item`` or ``1. item`` lines."""

    type: ClassVar[str] = "list"

    font: str | None = None


@dataclass
class TableCell:
    content: str = ""
    rowspan: int | None = None
    colspan: int | None = None
    hidden: bool = False


@dataclass
class TablePayload:
    caption: str = ""
    style: str = "normal"
    rows: int = 2
    cols: int = 2
    cells: List[List[TableCell]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows = max(1, int(self.rows))
        self.cols = max(1, int(self.cols))
        grid: List[List[TableCell]] = []
        for r in range(self.rows):
            source = self.cells[r] if r < len(self.cells) else []
            row = list(source[: self.cols])
            row.extend(TableCell() for _ in range(self.cols - len(row)))
            grid.append(row)
        self.cells = grid


@dataclass
class TableBlock(Block):
    type: ClassVar[str] = "table"

    table: TablePayload = field(default_factory=TablePayload)
    width: str = "50%"


@dataclass
class VerticalSpace(Block):
    """``content`` holds the Typst length, e.g. ``5%`` or ``1em``."""

    type: ClassVar[str] = "vertical_space"

    content: str = "5%"


@dataclass
class InputLine:
    label: str = ""
    value: str = ""


@dataclass
class InputField(Block):
    type: ClassVar[str] = "input_field"

    input_lines: List[InputLine] = field(default_factory=lambda: [InputLine()])
    input_separator: str = "："
    input_show_underline: bool = True
    input_width: str = "50%"
    input_align: str = "center"
    input_font_size: str = ""
    input_font_family: str = ""


@dataclass
class CompositeRow(Block):
    type: ClassVar[str] = "composite_row"

    children: List[Block] = field(default_factory=list)
    composite_justify: str = "space-between"
    composite_gap: str = "8pt"
    composite_vertical_align: str = "top"


@dataclass
class Cover(Block):
    type: ClassVar[str] = "cover"

    children: List[Block] = field(default_factory=list)
    cover_fixed_one_page: bool = False


BLOCK_TYPES: Dict[str, Type[Block]] = {
    cls.type: cls
    for cls in (
        Heading,
        Paragraph,
        CodeBlock,
        MathBlock,
        ImageBlock,
        ChartBlock,
        ListBlock,
        TableBlock,
        VerticalSpace,
        InputField,
        CompositeRow,
        Cover,
    )
}
