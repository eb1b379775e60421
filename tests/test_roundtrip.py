import logging

from TypstBlocks import transcoder
from TypstBlocks.model import (
    ZERO_WIDTH_SPACE,
    ChartBlock,
    ChartPayload,
    CodeBlock,
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
from TypstBlocks.parser import Registry
from TypstBlocks.recognizers import recognize_heading


def _roundtrip(blocks, settings=None):
    return transcoder.parse(transcoder.serialize(blocks, settings))


def test_plain_paragraph_and_heading():
    blocks = [Heading(content="Introduction", level=2), Paragraph(content="Hello world")]
    text = transcoder.serialize(blocks)
    assert text == "== Introduction\n\nHello world"
    assert transcoder.parse(text) == blocks


def test_paragraph_with_lists_and_breaks():
    block = Paragraph(content="Intro\n- a\n- b\nOutro")
    text = transcoder.serialize([block])
    assert "#list(tight: true)[a][b]" in text
    assert _roundtrip([block]) == [block]

    ordered = Paragraph(content="1. first\n2. second")
    assert "#enum(tight: true)[first][second]" in transcoder.serialize([ordered])
    assert _roundtrip([ordered]) == [ordered]

    broken = Paragraph(content="line one\nline two")
    assert transcoder.serialize([broken]) == "line one #linebreak() line two"
    assert _roundtrip([broken]) == [broken]


def test_paragraph_style_survives():
    block = Paragraph(content="Hi", font="SimSun", font_size="12pt", align="center")
    text = transcoder.serialize([block])
    assert text == '#align(center)[#text(font: "SimSun", size: 12pt)[Hi]]'
    assert _roundtrip([block]) == [block]


def test_left_align_is_not_written():
    block = Paragraph(content="Hi", align="left")
    assert transcoder.serialize([block]) == "Hi"
    assert _roundtrip([block]) == [Paragraph(content="Hi")]


def test_line_spacing():
    for spacing in (0.8, 1.2, 1.5, 2.0):
        block = Paragraph(content="Spaced text", line_spacing=spacing)
        text = transcoder.serialize([block])
        assert text.startswith("#set par(leading: ")
        assert text.endswith("#set par(leading: 0.65em)")
        assert _roundtrip([block]) == [block]

    single = Paragraph(content="x", line_spacing=1.0)
    assert transcoder.serialize([single]) == "x"


def test_answer_area_and_empty_paragraph():
    answer = Paragraph(content=ZERO_WIDTH_SPACE, placeholder="Write your answer")
    empty = Paragraph(content="")
    text = transcoder.serialize([answer, empty])
    assert "/*ANSWER*/" in text
    assert "/*EMPTY_PAR*/" in text
    assert _roundtrip([answer, empty]) == [answer, empty]


def test_heading_with_font_and_align():
    block = Heading(content="Title", level=1, font="SimHei", align="center")
    text = transcoder.serialize([block])
    assert text == '#align(center)[= #text(font: "SimHei")[Title]]'
    assert _roundtrip([block]) == [block]


def test_code_block_keeps_blank_lines():
    block = CodeBlock(content="print('hi')\n\n\n\nx = 1", language="python")
    assert _roundtrip([block]) == [block]


def test_list_block():
    bullet = ListBlock(content="- a\n- b", font="KaiTi")
    ordered = ListBlock(content="3. c\n4. d")
    text = transcoder.serialize([bullet, ordered])
    assert "#enum(tight: true, start: 3)[c][d]" in text
    assert _roundtrip([bullet, ordered]) == [bullet, ordered]


def test_math_block_payload_is_authoritative():
    block = MathBlock(content="frac(a, b)", math_latex="\\frac{a}{b}", math_typst="frac(a, b)")
    text = transcoder.serialize([block])
    assert text.startswith("$ frac(a, b) $/*MATH:")
    assert _roundtrip([block]) == [block]


def test_math_lines_with_brace():
    block = MathBlock(
        math_lines=[MathLine(latex="x", typst="x"), MathLine(latex="y", typst="y")],
        math_brace=True,
    )
    assert transcoder.serialize([block]).startswith("$ cases(x, y) $")
    assert _roundtrip([block]) == [block]


def test_math_without_marker():
    blocks = transcoder.parse("$ x^2 + y^2 $")
    assert len(blocks) == 1
    assert isinstance(blocks[0], MathBlock)
    assert blocks[0].math_typst == "x^2 + y^2"


def test_image_caption_below_and_above():
    image = ImageBlock(content="/static/projects/p1/images/a.png", caption="Chart", width="60%")
    text = transcoder.serialize([image])
    assert text.splitlines()[1] == "#align(center)[Figure 1 Chart]"
    assert _roundtrip([image]) == [image]

    above = DocumentSettings(image_caption_position="above")
    text = transcoder.serialize([image], above)
    assert text.splitlines()[0] == "#align(center)[Figure 1 Chart]"
    assert _roundtrip([image], above) == [image]


def test_image_numbering_counts_only_captioned():
    images = [
        ImageBlock(content="/img/a.png", caption="First"),
        ImageBlock(content="/img/b.png"),
        ImageBlock(content="/img/c.png", caption="Third"),
    ]
    text = transcoder.serialize(images)
    assert "Figure 1 First" in text
    assert "Figure 2 Third" in text
    assert _roundtrip(images) == images


def test_image_variants():
    pending = ImageBlock(content="", caption="Soon")
    placeholder = ImageBlock(content="[[IMAGE_PLACEHOLDER: Upload a diagram]]")
    invented = ImageBlock(content="/images/示意图.png")
    text = transcoder.serialize([pending, placeholder, invented])
    assert "Upload a diagram" in text
    assert "Image path looks invented" in text
    assert _roundtrip([pending, placeholder, invented]) == [pending, placeholder, invented]


def test_chart_with_and_without_image():
    ready = ChartBlock(
        chart=ChartPayload(chart_type="bar", title="Sales", image_url="/charts/1.png"),
        width="40%",
        align="left",
    )
    pending = ChartBlock(chart=ChartPayload(title="Later"), width="70%")
    text = transcoder.serialize([ready, pending])
    assert "(chart not generated)" in text
    assert _roundtrip([ready, pending]) == [ready, pending]


def test_table_with_caption_and_spans():
    table = TableBlock(
        table=TablePayload(
            caption="Scores",
            style="three-line",
            rows=2,
            cols=2,
            cells=[
                [TableCell(content="merged", colspan=2), TableCell(hidden=True)],
                [TableCell(content="1"), TableCell(content="2")],
            ],
        ),
        width="80%",
    )
    text = transcoder.serialize([table])
    assert text.splitlines()[0] == "#align(center)[Table 1 Scores]"
    assert "table.cell(colspan: 2)[merged]" in text
    assert "table.hline(y: 2, stroke: 1.6pt)" in text
    assert _roundtrip([table]) == [table]


def test_table_without_numbering_or_caption_has_no_caption_line():
    table = TableBlock(table=TablePayload(cells=[[TableCell(content="a")]]))
    settings = DocumentSettings(table_caption_numbering=False)
    text = transcoder.serialize([table], settings)
    assert len(text.splitlines()) == 1
    assert _roundtrip([table], settings) == [table]


def test_corrupt_table_marker_gives_default_table():
    blocks = transcoder.parse("/*TABLE:%%%not-base64*/")
    assert blocks == [TableBlock()]


def test_vertical_space_and_input_field():
    space = VerticalSpace(content="2em")
    field = InputField(
        input_lines=[InputLine(label="Name", value=""), InputLine(label="Class", value="3B")],
        input_font_family="SimSun",
        input_font_size="12pt",
    )
    text = transcoder.serialize([space, field])
    assert text.startswith("#v(2em)/*VSPACE:")
    assert "#parbreak()" in text
    assert _roundtrip([space, field]) == [space, field]


def test_vertical_space_preview_overlay():
    space = VerticalSpace(content="3em")
    settings = DocumentSettings(vertical_space_visible=True)
    preview = transcoder.serialize([space], settings, target="preview")
    assert "#place(top + left)" in preview
    assert "#place" not in transcoder.serialize([space], settings, target="export")
    assert transcoder.parse(preview) == [space]


def test_unknown_target_is_rejected():
    try:
        transcoder.serialize([Paragraph(content="x")], target="pdf")
    except ValueError as exc:
        assert "pdf" in str(exc)
    else:
        raise AssertionError("expected ValueError")


def test_composite_row_space_mode():
    row = CompositeRow(children=[Paragraph(content="Left"), Paragraph(content="Right")])
    text = transcoder.serialize([row])
    assert text.startswith("#box(width: 100%)[#box()[Left] #h(1fr) #box()[Right]]/*COMPOSITE_ROW:")
    assert _roundtrip([row]) == [row]


def test_composite_row_grid_mode_and_nesting():
    inner = CompositeRow(
        children=[Paragraph(content="a"), Paragraph(content="b")],
        composite_justify="space-around",
    )
    row = CompositeRow(
        children=[
            ImageBlock(content="/img/logo.png", caption="Logo"),
            inner,
            Heading(content="Side", level=3),
        ],
        composite_justify="center",
        composite_gap="12pt",
        composite_vertical_align="middle",
    )
    text = transcoder.serialize([row])
    assert text.startswith("#align(center)[#grid(columns: (auto, auto, auto), column-gutter: 12pt, align: horizon,")
    assert _roundtrip([row]) == [row]


def test_cover_uses_unnumbered_captions_and_fixed_page():
    cover = Cover(
        children=[Heading(content="Report", level=1), ImageBlock(content="/img/logo.png", caption="Logo")],
        cover_fixed_one_page=True,
    )
    body_image = ImageBlock(content="/img/chart.png", caption="Results")
    text = transcoder.serialize([cover, body_image])
    assert "#align(center)[Logo]" in text
    assert "Figure 1 Results" in text
    assert "\n\n#pagebreak()" in text
    assert _roundtrip([cover, body_image]) == [cover, body_image]


def test_unclosed_cover_runs_to_end():
    text = transcoder.serialize([Cover(children=[Paragraph(content="x")])])
    text = text.replace("/*COVER_END*/", "")
    blocks = transcoder.parse(text + "\n\nmore")
    assert len(blocks) == 1
    assert blocks[0].children == [Paragraph(content="x"), Paragraph(content="more")]


def test_document_settings_header():
    settings = DocumentSettings(
        table_caption_numbering=False,
        image_caption_position="above",
        font_size="12pt",
        vertical_space_visible=True,
    )
    doc = Document(blocks=[Paragraph(content="Body")], settings=settings)
    text = transcoder.serialize_document(doc)
    assert "#set text(size: 12pt)" in text
    parsed = transcoder.parse_document(text)
    assert parsed.settings == settings
    assert parsed.blocks == doc.blocks


def test_bare_font_size_line_without_header():
    parsed = transcoder.parse_document("#set text(size: 14pt)\n\nBody")
    assert parsed.settings.font_size == "14pt"
    assert parsed.blocks == [Paragraph(content="Body")]


def test_custom_registry_skips_unknown_lines(caplog):
    registry = Registry((("heading", recognize_heading),))
    with caplog.at_level(logging.WARNING):
        blocks = transcoder.parse("= A\n\nplain text", registry)
    assert blocks == [Heading(content="A", level=1)]
    assert "Unrecognized line" in caplog.text


def test_legacy_wrapped_list_is_repaired():
    text = '#text(font: "SimSun")[#block[\n#enum(tight: true)[a][b]\n]]'
    assert transcoder.parse(text) == [Paragraph(content="1. a\n2. b")]


def test_composite_row_holding_a_table():
    table = TableBlock(table=TablePayload(cells=[[TableCell(content="a"), TableCell(content="b")]]))
    settings = DocumentSettings(table_caption_numbering=False)
    for justify in ("center", "space-between"):
        row = CompositeRow(children=[table, Paragraph(content="side")], composite_justify=justify)
        assert _roundtrip([row], settings) == [row]

    cover = Cover(children=[CompositeRow(children=[table, Paragraph(content="side")])])
    assert _roundtrip([cover]) == [cover]


def test_composite_row_children_with_unbalanced_brackets():
    row = CompositeRow(children=[Paragraph(content="f(x] = 1"), Paragraph(content="b")])
    assert _roundtrip([row]) == [row]

    grid = CompositeRow(
        children=[Paragraph(content="open [ bracket"), Paragraph(content="b")],
        composite_justify="flex-start",
    )
    after = Paragraph(content="after")
    assert _roundtrip([grid, after]) == [grid, after]


def test_math_payload_falls_back_to_content():
    blocks = _roundtrip([MathBlock(content="x^2 + 1")])
    assert len(blocks) == 1
    assert blocks[0].content == "x^2 + 1"
    assert blocks[0].math_typst == "x^2 + 1"


def test_math_latex_is_derived_when_missing():
    blocks = _roundtrip([MathBlock(content="frac(1, 2)", math_typst="frac(1, 2)")])
    assert blocks[0].math_latex == "\\frac{1}{2}"
    assert blocks[0].math_typst == "frac(1, 2)"


def test_malformed_line_spacing_is_plain_text():
    blocks = transcoder.parse("#set par(leading: 1.2.3em)\nHello")
    assert blocks
    assert all(isinstance(block, Paragraph) for block in blocks)
    assert "Hello" in blocks[-1].content
    assert transcoder.parse("#set par(leading: .em)\nHello")


def test_paragraph_lines_that_look_like_other_blocks():
    for content in ("$x^2$", "= not a heading", "+ plus", "/* remark */", "```", "#[raw]"):
        block = Paragraph(content=content)
        assert _roundtrip([block]) == [block], content

    styled = Paragraph(content="$a$ and $b$\nmore", align="center")
    assert _roundtrip([styled]) == [styled]


def test_star_lines_stay_text():
    block = Paragraph(content="* a\n* b")
    assert "#list" not in transcoder.serialize([block])
    assert _roundtrip([block]) == [block]
