from TypstBlocks.markup import (
    find_closing,
    markup_to_paragraph_lines,
    multiplier_from_leading,
    paragraph_to_markup,
    segment_lines,
    snap_line_spacing,
    unwrap_decorators,
)


def test_segments():
    segments = segment_lines(["intro", "- a", "- b", "1. c", "outro"])
    assert [segment.kind for segment in segments] == ["text", "bullet", "ordered", "text"]


def test_paragraph_to_markup():
    assert paragraph_to_markup("- Item 1\n- Item 2") == ["#list(tight: true)[Item 1][Item 2]"]
    assert paragraph_to_markup("2. x\n3. y") == ["#enum(tight: true, start: 2)[x][y]"]
    assert paragraph_to_markup("a\n\nb") == ["a #linebreak() #h(0pt) #linebreak() b"]


def test_markup_to_paragraph_lines():
    assert markup_to_paragraph_lines("#list(tight: true)[a][#h(0pt)]") == ["- a", "- "]
    assert markup_to_paragraph_lines("a #linebreak() #h(0pt) #linebreak() b") == ["a", "", "b"]
    assert markup_to_paragraph_lines("+ legacy") == ["1. legacy"]


def test_unwrap_decorators():
    text, decoration = unwrap_decorators('#align(right)[#text(font: "Arial", size: 9pt)[Hi]]')
    assert text == "Hi"
    assert (decoration.align, decoration.font, decoration.size) == ("right", "Arial", "9pt")

    # Other text arguments are content, not decoration.
    text, decoration = unwrap_decorators("#text(fill: red)[Hi]")
    assert text == "#text(fill: red)[Hi]"
    assert decoration.font is None


def test_find_closing_ignores_strings_in_code_only():
    text = '[#text(font: "a]b")[x]]'
    assert find_closing(text, 0) == len(text) - 1
    quoted = '["quoted" text]'
    assert find_closing(quoted, 0) == len(quoted) - 1
    assert find_closing("[unclosed", 0) == -1


def test_line_spacing_snapping():
    assert snap_line_spacing(None) is None
    assert snap_line_spacing(1.0) is None
    assert snap_line_spacing(1.45) == 1.5
    assert snap_line_spacing(3.0) is None
    assert multiplier_from_leading(0.65) is None
    assert multiplier_from_leading(0.975) == 1.5
    assert multiplier_from_leading(1.5) == 1.5
