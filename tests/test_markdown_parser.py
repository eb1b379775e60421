from TypstBlocks import markdown_parser, transcoder
from TypstBlocks.model import CodeBlock, Heading, ImageBlock, MathBlock, Paragraph, TableBlock


MD_TEXT = """
# 1 Introduction

Text with *emphasis*, **bold** and inline math $E=mc^2$.

- First item
- Second item

![Diagram](diagram.png "Process diagram")

$$
S = \\pi r^2
$$

| a | b |
|---|---|
| 1 | 2 |

```python
print(1)
```
"""


def test_parse_markdown_blocks():
    document = markdown_parser.parse_markdown(MD_TEXT)
    kinds = [type(block) for block in document.blocks]
    assert kinds == [Heading, Paragraph, Paragraph, ImageBlock, MathBlock, TableBlock, CodeBlock]

    heading, text, items, image, math, table, code = document.blocks
    assert heading.content == "1 Introduction"
    assert "_emphasis_" in text.content
    assert "*bold*" in text.content
    assert "$" in text.content
    assert items.content == "- First item\n- Second item"
    assert image.content == "diagram.png"
    assert image.caption == "Process diagram"
    assert math.math_latex == "S = \\pi r^2"
    assert "pi" in math.math_typst
    assert table.table.rows == 2
    assert table.table.cells[0][0].content == "a"
    assert table.table.cells[1][1].content == "2"
    assert code.language == "python"
    assert code.content == "print(1)"


def test_ordered_list_keeps_start_number():
    document = markdown_parser.parse_markdown("3. three\n4. four\n")
    assert document.blocks == [Paragraph(content="3. three\n4. four")]


def test_markdown_import_serializes():
    document = markdown_parser.parse_markdown(MD_TEXT)
    text = transcoder.serialize_document(document)
    assert "= 1 Introduction" in text
    assert "#list(tight: true)[First item][Second item]" in text
    assert transcoder.parse_document(text).blocks == document.blocks
