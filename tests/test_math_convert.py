from TypstBlocks.math_convert import (
    latex_to_typst,
    sanitize_inline_math,
    sanitize_math_segment,
    typst_to_latex,
)


def test_latex_to_typst_basics():
    assert latex_to_typst("\\frac{a}{b}") == "frac(a, b)"
    assert latex_to_typst("\\alpha + \\beta") == "alpha + beta"
    assert latex_to_typst("x^{2}") == "x^(2)"
    assert latex_to_typst("\\sqrt{x}") == "sqrt(x)"
    assert latex_to_typst("\\sqrt[3]{x}") == "root(3, x)"


def test_latex_to_typst_splits_products_and_quotes_units():
    assert latex_to_typst("E = mc^2") == "E = m c^2"
    assert latex_to_typst("5kg") == '5 "kg"'
    assert latex_to_typst("\\text{speed}") == '"speed"'


def test_latex_to_typst_strips_delimiters_and_matrices():
    assert latex_to_typst("$$\\frac{1}{2}$$") == "frac(1, 2)"
    matrix = latex_to_typst("\\begin{pmatrix} a & b \\\\ c & d \\end{pmatrix}")
    assert matrix.startswith('mat(delim: "("')
    assert "a, b; c, d" in matrix


def test_empty_input():
    assert latex_to_typst("") == ""
    assert latex_to_typst(None) == ""
    assert typst_to_latex("") == ""


def test_typst_to_latex():
    assert typst_to_latex("frac(1, 2)") == "\\frac{1}{2}"
    assert typst_to_latex("sqrt(x)") == "\\sqrt{x}"
    assert typst_to_latex("alpha + beta") == "\\alpha + \\beta"
    # The first LaTeX spelling of a shared symbol wins.
    assert typst_to_latex("x <= y") == "x \\leq y"


def test_typst_to_latex_leaves_words_containing_tokens():
    assert "\\in" not in typst_to_latex("sin(x)")


def test_sanitize_segments():
    assert sanitize_math_segment("\\frac{a}{b}") == "frac(a, b)"
    assert sanitize_math_segment("50%") == "50\\%"
    assert sanitize_inline_math("cost $speed$ only") == 'cost $"speed"$ only'
    assert sanitize_inline_math("no math here") == "no math here"
