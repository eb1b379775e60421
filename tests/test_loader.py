import textwrap

import pytest

from TypstBlocks import loader
from TypstBlocks.loader import BlockValidationError
from TypstBlocks.model import (
    ZERO_WIDTH_SPACE,
    ChartBlock,
    ChartPayload,
    CompositeRow,
    Cover,
    Document,
    DocumentSettings,
    Heading,
    ImageBlock,
    InputField,
    InputLine,
    ListBlock,
    MathBlock,
    MathLine,
    Paragraph,
    TableBlock,
    TableCell,
    TablePayload,
    VerticalSpace,
)


def test_load_yaml_blocks():
    yaml_text = textwrap.dedent(
        """
        - type: heading
          content: Intro
          level: 9
        - Just text
        - type: paragraph
          content: "[[ANSWER: Explain]]"
        - type: math
          content: "\\\\frac{1}{2}"
        """
    )
    blocks = loader.load_blocks(yaml_text)
    assert isinstance(blocks[0], Heading)
    assert blocks[0].level == 6
    assert blocks[1] == Paragraph(content="Just text")
    assert blocks[2] == Paragraph(content=ZERO_WIDTH_SPACE, placeholder="Explain")
    assert isinstance(blocks[3], MathBlock)
    assert blocks[3].math_latex == "\\frac{1}{2}"
    assert blocks[3].math_typst == "frac(1, 2)"
    assert blocks[3].content == "frac(1, 2)"


def test_typst_math_gets_latex():
    blocks = loader.load_blocks('[{"type": "math", "mathFormat": "typst", "content": "frac(1, 2)"}]')
    assert blocks[0].math_latex == "\\frac{1}{2}"


def test_bare_answer_tag_uses_default_label():
    blocks = loader.load_blocks('["[[ANSWER]]"]')
    assert blocks[0].placeholder == "Answer area"


def test_validation_errors_name_the_block():
    with pytest.raises(BlockValidationError) as excinfo:
        loader.load_blocks('[{"type": "paragraph", "content": "ok"}, {"type": "sidebar"}]')
    assert str(excinfo.value).startswith("block 1:")
    assert excinfo.value.index == "1"

    with pytest.raises(BlockValidationError, match="level"):
        loader.load_blocks('[{"type": "heading", "content": "x", "level": "big"}]')

    with pytest.raises(BlockValidationError):
        loader.load_blocks('{"settings": {}}')


def test_nested_errors_carry_the_path():
    text = '[{"type": "cover", "children": [{"type": "heading", "level": true}]}]'
    with pytest.raises(BlockValidationError) as excinfo:
        loader.load_blocks(text)
    assert excinfo.value.index == "0.children.0"


def test_lenient_mode_skips_invalid_blocks():
    text = '[{"type": "sidebar"}, {"type": "paragraph", "content": "kept"}]'
    assert loader.load_blocks(text, strict=False) == [Paragraph(content="kept")]
    with pytest.raises(BlockValidationError):
        loader.load_blocks('[{"type": "sidebar"}]', strict=False)


def test_payload_is_found_inside_chatter():
    text = 'Here you go:\n```json\n[{"type": "paragraph", "content": "Hi"}]\n```\nThanks!'
    assert loader.load_blocks(text) == [Paragraph(content="Hi")]
    assert loader.extract_payload_text('Sure {"a": 1} bye') == '{"a": 1}'


def test_image_urls_are_checked_against_the_project():
    text = '[{"type": "image", "content": "/static/projects/<project_id>/images/a.png"}]'
    blocks = loader.load_blocks(text, project_id="p1")
    assert blocks[0].content == "/static/projects/p1/images/a.png"

    with pytest.raises(BlockValidationError, match="rejected"):
        loader.load_blocks('[{"type": "image", "content": "/elsewhere/a.png"}]', project_id="p1")

    placeholder = '[{"type": "image", "content": "[[IMAGE_PLACEHOLDER: map]]"}]'
    assert loader.load_blocks(placeholder, project_id="p1")[0].content == "[[IMAGE_PLACEHOLDER: map]]"


def test_table_and_chart_from_content_strings():
    text = (
        '[{"type": "table", "content": "{\\"rows\\": 1, \\"cols\\": 1, \\"cells\\": [[{\\"content\\": \\"x\\"}]]}"},'
        ' {"type": "chart", "content": "{\\"chartType\\": \\"pie\\"}"}]'
    )
    table, chart = loader.load_blocks(text)
    assert table.table.cells == [[TableCell(content="x")]]
    assert chart.chart.chart_type == "pie"


def test_dump_and_load_document():
    doc = Document(
        blocks=[
            Heading(content="Title", level=2, align="center"),
            Paragraph(content="Body", font="SimSun", line_spacing=1.5),
            MathBlock(
                content="x",
                math_latex="x",
                math_typst="x",
                math_lines=[MathLine(latex="a", typst="a")],
                math_brace=False,
            ),
            ImageBlock(content="/img/a.png", caption="A"),
            ChartBlock(chart=ChartPayload(chart_type="bar", image_url="/c.png")),
            ListBlock(content="- a\n- b"),
            TableBlock(table=TablePayload(cells=[[TableCell(content="h", colspan=2), TableCell(hidden=True)]])),
            VerticalSpace(content="1em"),
            InputField(input_lines=[InputLine(label="Name", value="Ann")]),
            CompositeRow(children=[Paragraph(content="l"), Paragraph(content="r")], composite_justify="flex-end"),
            Cover(children=[Heading(content="Cover")], cover_fixed_one_page=True),
        ],
        settings=DocumentSettings(image_caption_numbering=False, font_size="12pt"),
    )
    loaded = loader.load_document(loader.dump_document(doc))
    assert loaded.settings == doc.settings
    assert loaded.blocks == doc.blocks


def test_dump_blocks_writes_a_plain_list():
    text = loader.dump_blocks([Paragraph(content="one"), VerticalSpace(content="2em")])
    assert text.startswith("- type: paragraph")
    assert loader.load_blocks(text) == [Paragraph(content="one"), VerticalSpace(content="2em")]
