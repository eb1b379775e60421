"""Best-effort conversion between LaTeX math and Typst math.

Conservative by intent: anything that is not understood is passed through
unchanged instead of raising.
"""

from __future__ import annotations

import re
from typing import Callable, List

MAX_PASSES = 500

LATEX_TO_TYPST_TOKENS = {
    # big operators
    r"\sum": "sum",
    r"\Sigma": "Sigma",
    r"\prod": "product",
    r"\int": "integral",
    r"\oint": "integral.cont",
    r"\iint": "integral.double",
    r"\iiint": "integral.triple",
    r"\lim": "lim",
    r"\infty": "oo",
    # functions
    r"\log": "log",
    r"\ln": "ln",
    r"\sin": "sin",
    r"\cos": "cos",
    r"\tan": "tan",
    r"\exp": "exp",
    # operators and relations
    r"\cdot": "dot",
    r"\times": "times",
    r"\pm": "plus.minus",
    r"\leq": "<=",
    r"\geq": ">=",
    r"\le": "<=",
    r"\ge": ">=",
    r"\ll": "<<",
    r"\gg": ">>",
    r"\neq": "!=",
    r"\nabla": "nabla",
    r"\partial": "diff",
    r"\approx": "approx",
    r"\equiv": "equiv",
    r"\in": "in",
    r"\subset": "subset",
    r"\supset": "supset",
    r"\cup": "union",
    r"\cap": "sect",
    r"\emptyset": "emptyset",
    r"\forall": "forall",
    r"\exists": "exists",
    # arrows
    r"\Rightarrow": "=>",
    r"\rightarrow": "->",
    r"\Leftarrow": "arrow.l.double",
    r"\leftarrow": "<-",
    r"\Leftrightarrow": "<=>",
    r"\leftrightarrow": "<->",
    r"\longrightarrow": "-->",
    r"\Longrightarrow": "==>",
    r"\mapsto": "|->",
    r"\to": "->",
    # dots
    r"\dots": "dots",
    r"\ldots": "dots",
    r"\cdots": "dots",
    r"\vdots": "dots.v",
    r"\ddots": "dots.down",
    # greek letters
    r"\alpha": "alpha",
    r"\beta": "beta",
    r"\gamma": "gamma",
    r"\Gamma": "Gamma",
    r"\delta": "delta",
    r"\Delta": "Delta",
    r"\epsilon": "epsilon",
    r"\varepsilon": "epsilon.alt",
    r"\zeta": "zeta",
    r"\eta": "eta",
    r"\theta": "theta",
    r"\Theta": "Theta",
    r"\iota": "iota",
    r"\kappa": "kappa",
    r"\lambda": "lambda",
    r"\Lambda": "Lambda",
    r"\mu": "mu",
    r"\nu": "nu",
    r"\xi": "xi",
    r"\Xi": "Xi",
    r"\pi": "pi",
    r"\Pi": "Pi",
    r"\rho": "rho",
    r"\sigma": "sigma",
    r"\tau": "tau",
    r"\upsilon": "upsilon",
    r"\Upsilon": "Upsilon",
    r"\phi": "phi",
    r"\varphi": "phi.alt",
    r"\Phi": "Phi",
    r"\chi": "chi",
    r"\psi": "psi",
    r"\Psi": "Psi",
    r"\omega": "omega",
    r"\Omega": "Omega",
}


def _build_reverse_tokens() -> dict[str, str]:
    # The first LaTeX spelling listed for a Typst token is the one emitted back.
    reverse: dict[str, str] = {}
    for latex, typst in LATEX_TO_TYPST_TOKENS.items():
        reverse.setdefault(typst, latex)
    return reverse


TYPST_TO_LATEX_TOKENS = _build_reverse_tokens()

UNIT_SUFFIXES = frozenset(
    {
        "mm", "cm", "m", "km", "um", "nm",
        "mg", "g", "kg",
        "ms", "s", "min", "h",
        "N", "kN", "Pa", "kPa", "MPa", "GPa",
        "Hz", "kHz", "MHz", "GHz",
        "V", "A", "mA", "W",
        "J", "kJ",
        "C",
    }
)

KNOWN_MATH_FUNCTIONS = frozenset(
    {
        "sin", "cos", "tan", "cot", "sec", "csc",
        "arcsin", "arccos", "arctan",
        "sinh", "cosh", "tanh", "coth",
        "ln", "log", "lg", "exp",
        "lim", "max", "min", "sup", "inf",
        "det", "trace", "tr", "dim", "ker", "deg", "gcd", "lcm",
        "mod", "sgn", "arg", "Re", "Im", "im",
        "sum", "prod", "product", "int", "integral", "oint",
        "sqrt", "root", "frac", "binom", "cases", "mat", "vec", "delim",
        "abs", "norm", "floor", "ceil", "round",
        "op", "text", "underline", "overline", "hat", "tilde", "dot", "ddot", "arrow",
        "upright", "bold", "italic", "sans", "serif", "mono",
        "alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta", "theta", "iota", "kappa",
        "lambda", "mu", "nu", "xi", "omicron", "pi", "rho", "sigma", "tau", "upsilon",
        "phi", "chi", "psi", "omega",
        "Alpha", "Beta", "Gamma", "Delta", "Epsilon", "Zeta", "Eta", "Theta", "Iota", "Kappa",
        "Lambda", "Mu", "Nu", "Xi", "Omicron", "Pi", "Rho", "Sigma", "Tau", "Upsilon",
        "Phi", "Chi", "Psi", "Omega",
        "partial", "diff", "nabla", "infty", "oo", "aleph", "beth", "ell",
        "in", "notin", "subset", "subseteq", "supset", "supseteq", "cup", "cap", "union", "sect",
        "forall", "exists", "nexists", "top", "bot", "empty", "emptyset",
        "cdot", "times", "div", "pm", "mp",
        "approx", "sim", "cong", "equiv", "neq", "leq", "geq", "ll", "gg",
        "leftarrow", "rightarrow", "leftrightarrow", "Leftarrow", "Rightarrow", "Leftrightarrow",
        "to", "maps", "mapsto",
        "plus", "minus", "eq", "lt", "gt", "star", "ast", "circle", "square", "triangle", "diamond",
        "alt", "cont", "double", "triple", "dots", "down", "display",
    }
)

# Words that survive letter splitting, plus every name the token table emits.
KNOWN_WORDS = KNOWN_MATH_FUNCTIONS | UNIT_SUFFIXES | frozenset(
    part
    for typst in LATEX_TO_TYPST_TOKENS.values()
    for part in typst.split(".")
    if part.isalpha()
)

_PROTECT_OPEN = "\ue000"
_PROTECT_CLOSE = "\ue001"
_STASH_OPEN = "\ue100"
_STASH_CLOSE = "\ue101"

_DELIMITER_RES = (
    re.compile(r"^\$\$(.*)\$\$$", re.S),
    re.compile(r"^\\\[(.*)\\\]$", re.S),
    re.compile(r"^\\\((.*)\\\)$", re.S),
    re.compile(r"^\$(.*)\$$", re.S),
)
_ESCAPED_COMMAND_RE = re.compile(r"\\\\([a-zA-Z]+)")
_TEXT_RE = re.compile(r"\\text\{([^}]*)\}")
_MATRIX_RE = re.compile(r"\\begin\{([bpvV]?)matrix\}(.*?)\\end\{\1matrix\}", re.S)
_CASES_RE = re.compile(r"\\begin\{cases\}(.*?)\\end\{cases\}", re.S)
_ENVIRONMENT_RE = re.compile(r"\\(?:begin|end)\{[^}]*\}")
_MATHBF_RE = re.compile(r"\\mathbf\{([^}]+)\}")
_MATHRM_RE = re.compile(r"\\mathrm\{([^}]+)\}")
_SIZING_RE = re.compile(r"\\(?:left|right|bigg|Bigg|big|Big|displaystyle|textstyle)(?![A-Za-z])\s*")
_COMMAND_RE = re.compile(r"\\(frac|dfrac|tfrac|sqrt)(?![A-Za-z])")
_SCRIPT_RE = re.compile(r"[_^]\{")
_TOKEN_RE = re.compile(
    "|".join(
        re.escape(key) + "(?![A-Za-z])"
        for key in sorted(LATEX_TO_TYPST_TOKENS, key=len, reverse=True)
    )
)
_UNIT_RE = re.compile(r"(?<![A-Za-z0-9.])(\d+(?:\.\d+)?)([A-Za-z]{1,4})(?![A-Za-z0-9])")
_PROTECTED_RE = re.compile(
    _PROTECT_OPEN + "[^" + _PROTECT_CLOSE + "]*" + _PROTECT_CLOSE + r'|"(?:[^"\\]|\\.)*"'
)

_MATRIX_DELIMS = {"b": '"["', "p": '"("', "v": '"|"', "V": '"||"', "": None}


def find_matching(text: str, open_index: int, opening: str = "{", closing: str = "}") -> int:
    """Index of the bracket closing the one at ``open_index``, or -1."""
    depth = 0
    i = open_index
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == opening:
            depth += 1
        elif ch == closing:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def split_top_level_args(text: str, separator: str = ",") -> List[str]:
    """Split on ``separator`` outside parentheses, braces, brackets and strings."""
    args: List[str] = []
    depth = 0
    current = ""
    in_string = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            current += ch
            if ch == "\\" and i + 1 < len(text):
                current += text[i + 1]
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
        elif ch in "({[":
            depth += 1
        elif ch in ")}]":
            depth = max(0, depth - 1)
        if ch == separator and depth == 0:
            args.append(current.strip())
            current = ""
        else:
            current += ch
        i += 1
    if current.strip():
        args.append(current.strip())
    return args


def _map_unprotected(text: str, fn: Callable[[str], str]) -> str:
    out: List[str] = []
    pos = 0
    for match in _PROTECTED_RE.finditer(text):
        out.append(fn(text[pos : match.start()]))
        out.append(match.group(0))
        pos = match.end()
    out.append(fn(text[pos:]))
    return "".join(out)


# ---------------------------------------------------------------------------
# LaTeX -> Typst


def latex_to_typst(latex: str | None) -> str:
    s = (latex or "").strip()
    if not s:
        return ""
    s = _strip_delimiters(s)
    s = _ESCAPED_COMMAND_RE.sub(lambda m: "\\" + m.group(1), s)
    s = _TEXT_RE.sub(lambda m: _PROTECT_OPEN + m.group(1) + _PROTECT_CLOSE, s)
    s = _MATRIX_RE.sub(_convert_matrix, s)
    s = _CASES_RE.sub(_convert_cases, s)
    s = _ENVIRONMENT_RE.sub("", s)
    s = s.replace("\\\\", " \\ ")
    s = _map_unprotected(s, lambda part: re.sub(r"(?<!\\)/", lambda m: " \\/ ", part))
    s = _MATHBF_RE.sub(lambda m: f"bold({m.group(1)})", s)
    s = _MATHRM_RE.sub(_convert_mathrm, s)
    s = _SIZING_RE.sub("", s)
    s = _resolve_commands(s)
    s = _resolve_scripts(s)
    s = _TOKEN_RE.sub(lambda m: f" {LATEX_TO_TYPST_TOKENS[m.group(0)]} ", s)
    s = _map_unprotected(s, _quote_units)
    s = _split_letters(s)
    s = _map_unprotected(s, _space_letters_and_digits)
    s = _map_unprotected(s, lambda part: re.sub(r"\s+", " ", part))
    s = re.sub(
        _PROTECT_OPEN + "([^" + _PROTECT_CLOSE + "]*)" + _PROTECT_CLOSE,
        lambda m: '"' + m.group(1).replace('"', '\\"') + '"',
        s,
    )
    return s.strip()


def _strip_delimiters(s: str) -> str:
    for pattern in _DELIMITER_RES:
        match = pattern.match(s)
        if match:
            return match.group(1).strip()
    return s


def _convert_rows(content: str, cell_separator: str) -> List[str]:
    rows = []
    for row in re.split(r"\\\\", content.strip()):
        cells = [latex_to_typst(cell) for cell in row.split("&")]
        if any(cells):
            rows.append(cell_separator.join(cells))
    return rows


def _convert_matrix(match: re.Match[str]) -> str:
    rows = _convert_rows(match.group(2), ", ")
    delim = _MATRIX_DELIMS.get(match.group(1))
    body = "; ".join(rows)
    if delim:
        return f"mat(delim: {delim}, {body})"
    return f"mat({body})"


def _convert_cases(match: re.Match[str]) -> str:
    return f"cases({', '.join(_convert_rows(match.group(1), ' & '))})"


def _convert_mathrm(match: re.Match[str]) -> str:
    inner = match.group(1).strip()
    if re.fullmatch(r"[A-Za-z]{1,16}", inner):
        return f'upright("{inner}")'
    return f"upright({inner})"


def _skip_spaces(s: str, index: int) -> int:
    while index < len(s) and s[index] in " \t\n":
        index += 1
    return index


def _read_argument(s: str, index: int) -> tuple[str, int] | None:
    """Read one LaTeX argument: a brace group, a command name or a single char."""
    index = _skip_spaces(s, index)
    if index >= len(s):
        return None
    ch = s[index]
    if ch == "{":
        end = find_matching(s, index)
        if end == -1:
            return None
        return s[index + 1 : end], end + 1
    if ch == "\\":
        match = re.match(r"\\[A-Za-z]+", s[index:])
        if match is None:
            return None
        return match.group(0), index + match.end()
    if ch.isalnum():
        return ch, index + 1
    return None


def _convert_fraction(s: str, index: int) -> tuple[str, int] | None:
    numerator = _read_argument(s, index)
    if numerator is None:
        return None
    denominator = _read_argument(s, numerator[1])
    if denominator is None:
        return None
    text = f"frac({latex_to_typst(numerator[0])}, {latex_to_typst(denominator[0])})"
    return text, denominator[1]


def _convert_root(s: str, index: int) -> tuple[str, int] | None:
    degree = None
    bracket = _skip_spaces(s, index)
    if bracket < len(s) and s[bracket] == "[":
        end = find_matching(s, bracket, "[", "]")
        if end == -1:
            return None
        degree = s[bracket + 1 : end]
        index = end + 1
    radicand = _read_argument(s, index)
    if radicand is None:
        return None
    if degree is not None:
        return f"root({latex_to_typst(degree)}, {latex_to_typst(radicand[0])})", radicand[1]
    return f"sqrt({latex_to_typst(radicand[0])})", radicand[1]


def _resolve_commands(s: str) -> str:
    pos = 0
    for _ in range(MAX_PASSES):
        match = _COMMAND_RE.search(s, pos)
        if match is None:
            break
        if match.group(1) == "sqrt":
            converted = _convert_root(s, match.end())
        else:
            converted = _convert_fraction(s, match.end())
        if converted is None:
            # Malformed: leave the command as written and look further on.
            pos = match.end()
            continue
        text, end = converted
        s = s[: match.start()] + text + s[end:]
        pos = match.start() + len(text)
    return s


def _resolve_scripts(s: str) -> str:
    pos = 0
    for _ in range(MAX_PASSES):
        match = _SCRIPT_RE.search(s, pos)
        if match is None:
            break
        brace = match.end() - 1
        end = find_matching(s, brace)
        if end == -1:
            pos = match.end()
            continue
        text = f"{s[match.start()]}({latex_to_typst(s[brace + 1 : end])})"
        s = s[: match.start()] + text + s[end + 1 :]
        pos = match.start() + len(text)
    return s


def _quote_units(segment: str) -> str:
    def replace(match: re.Match[str]) -> str:
        if match.group(2) in UNIT_SUFFIXES:
            return f'{match.group(1)} "{match.group(2)}"'
        return match.group(0)

    return _UNIT_RE.sub(replace, segment)


def _space_letters_and_digits(segment: str) -> str:
    segment = re.sub(r"([A-Za-z])(\d)", r"\1 \2", segment)
    return re.sub(r"(\d)([A-Za-z])", r"\1 \2", segment)


def _split_letters(text: str) -> str:
    """Split unknown multi-letter runs into single letters.

    LaTeX reads ``ab`` as a product, Typst as one identifier. Known names,
    dotted symbols, quoted strings, protected runs and untouched backslash
    commands are copied as they are.
    """
    result: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == _PROTECT_OPEN:
            end = text.find(_PROTECT_CLOSE, i + 1)
            if end != -1:
                result.append(text[i : end + 1])
                i = end + 1
                continue
        if ch == '"':
            end = text.find('"', i + 1)
            if end != -1:
                result.append(text[i : end + 1])
                i = end + 1
                continue
        if ch == "\\":
            match = re.match(r"\\(?:[A-Za-z]+|.)", text[i:], re.S)
            if match:
                result.append(match.group(0))
                i += match.end()
                continue
        if ch.isascii() and ch.isalpha():
            j = i
            while j < len(text) and text[j].isascii() and (text[j].isalpha() or text[j] == "."):
                j += 1
            word = text[i:j]
            parts = word.split(".")
            if len(word) == 1 or all(len(p) <= 1 or p in KNOWN_WORDS for p in parts):
                result.append(word)
            else:
                result.append(" ".join(word))
            i = j
            continue
        result.append(ch)
        i += 1
    return "".join(result)


# ---------------------------------------------------------------------------
# Typst -> LaTeX

_CALL_RE = re.compile(r"(?<![A-Za-z.])(frac|sqrt|root|binom|upright|bold|mat|cases|abs)\(|[_^]\(")
_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')


def _reverse_token_pattern(token: str) -> str:
    if token[0].isalpha():
        return r"(?<![\\\w.])" + re.escape(token) + r"(?![\w.])"
    return re.escape(token)


_REVERSE_TOKEN_RE = re.compile(
    "|".join(
        _reverse_token_pattern(token)
        for token in sorted(TYPST_TO_LATEX_TOKENS, key=len, reverse=True)
    )
)
_STASH_RE = re.compile(_STASH_OPEN + r"(\d+)" + _STASH_CLOSE)
_MATRIX_ENVS = {'"("': "pmatrix", '"["': "bmatrix", '"|"': "vmatrix", '"||"': "Vmatrix"}


def typst_to_latex(typst: str | None) -> str:
    s = (typst or "").strip()
    if not s:
        return ""
    stash: List[str] = []

    def keep(text: str) -> str:
        stash.append(text)
        return f"{_STASH_OPEN}{len(stash) - 1}{_STASH_CLOSE}"

    s = _unwrap_calls(s, keep)
    s = _QUOTED_RE.sub(lambda m: keep("\\text{" + m.group(1) + "}"), s)
    s = _REVERSE_TOKEN_RE.sub(_reverse_token, s)
    s = _STASH_RE.sub(lambda m: stash[int(m.group(1))], s)
    s = s.replace("\\/", "/")
    return re.sub(r"\s+", " ", s).strip()


def _reverse_token(match: re.Match[str]) -> str:
    latex = TYPST_TO_LATEX_TOKENS[match.group(0)]
    if re.fullmatch(r"\\[A-Za-z]+", latex):
        return latex + " "
    return latex


def _find_paren(text: str, open_index: int) -> int:
    depth = 0
    in_string = False
    i = open_index
    while i < len(text):
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _unquote(arg: str) -> str:
    match = _QUOTED_RE.fullmatch(arg.strip())
    return match.group(1) if match else arg


def _unwrap_calls(s: str, keep: Callable[[str], str]) -> str:
    pos = 0
    for _ in range(MAX_PASSES):
        match = _CALL_RE.search(s, pos)
        if match is None:
            break
        open_index = match.end() - 1
        close_index = _find_paren(s, open_index)
        if close_index == -1:
            pos = match.end()
            continue
        inner = s[open_index + 1 : close_index]
        latex = _call_to_latex(match.group(1), match.group(0), inner)
        if latex is None:
            pos = match.end()
            continue
        placeholder = keep(latex)
        s = s[: match.start()] + placeholder + s[close_index + 1 :]
        pos = match.start() + len(placeholder)
    return s


def _call_to_latex(name: str | None, opener: str, inner: str) -> str | None:
    if name is None:
        # Grouped sub/superscript: x_(i j) -> x_{i j}
        return f"{opener[0]}{{{typst_to_latex(inner)}}}"
    if name == "mat":
        return _matrix_to_latex(inner)
    if name == "cases":
        rows = [typst_to_latex(row) for row in split_top_level_args(inner)]
        return "\\begin{cases} " + " \\\\ ".join(rows) + " \\end{cases}"
    args = split_top_level_args(inner)
    if name in {"frac", "binom", "root"} and len(args) != 2:
        return None
    if name not in {"frac", "binom", "root"} and len(args) != 1:
        return None
    if name == "frac":
        return f"\\frac{{{typst_to_latex(args[0])}}}{{{typst_to_latex(args[1])}}}"
    if name == "binom":
        return f"\\binom{{{typst_to_latex(args[0])}}}{{{typst_to_latex(args[1])}}}"
    if name == "root":
        return f"\\sqrt[{typst_to_latex(args[0])}]{{{typst_to_latex(args[1])}}}"
    if name == "sqrt":
        return f"\\sqrt{{{typst_to_latex(args[0])}}}"
    if name == "upright":
        return f"\\mathrm{{{typst_to_latex(_unquote(args[0]))}}}"
    if name == "bold":
        return f"\\mathbf{{{typst_to_latex(args[0])}}}"
    return f"\\left| {typst_to_latex(args[0])} \\right|"


def _matrix_to_latex(inner: str) -> str:
    env = "matrix"
    rows: List[str] = []
    for row_text in split_top_level_args(inner, ";"):
        cells = split_top_level_args(row_text)
        if cells and cells[0].startswith("delim:"):
            env = _MATRIX_ENVS.get(cells[0].split(":", 1)[1].strip(), "pmatrix")
            cells = cells[1:]
        if cells:
            rows.append(" & ".join(typst_to_latex(cell) for cell in cells))
    return f"\\begin{{{env}}} " + " \\\\ ".join(rows) + f" \\end{{{env}}}"


# ---------------------------------------------------------------------------
# Inline math clean-up for visible markup


def sanitize_math_segment(segment: str) -> str:
    """Make one ``$...$`` body safe to compile as Typst math."""
    s = segment or ""
    if re.search(r"\\[A-Za-z]+|[_^]\{", s):
        s = latex_to_typst(s)
    s = re.sub(r"(^|[^\\])%", lambda m: m.group(1) + "\\%", s)
    s = re.sub(
        r"\b(upright|bold|italic)\(\s*([A-Za-z0-9]+)\s*\)",
        lambda m: f'{m.group(1)}("{m.group(2)}")',
        s,
    )
    s = _map_unprotected(s, _quote_unknown_words)
    return re.sub(
        r"(\d+(?:\.\d+)?)\s*([A-Za-z]{1,4})\b",
        lambda m: f'{m.group(1)} "{m.group(2)}"' if m.group(2) in UNIT_SUFFIXES else m.group(0),
        s,
    )


def _quote_unknown_words(segment: str) -> str:
    tokens = re.split(r"([A-Za-z]{2,})", segment)
    for idx in range(1, len(tokens), 2):
        word = tokens[idx]
        following = tokens[idx + 1].lstrip() if idx + 1 < len(tokens) else ""
        preceding = tokens[idx - 1]
        if word in KNOWN_WORDS or following.startswith("(") or preceding.endswith("."):
            continue
        tokens[idx] = f'"{word}"'
    return "".join(tokens)


def sanitize_inline_math(text: str) -> str:
    """Apply :func:`sanitize_math_segment` to every unescaped ``$...$`` span."""
    s = text or ""
    if "$" not in s:
        return s
    out: List[str] = []
    buf: List[str] = []
    in_math = False
    prev = ""
    for ch in s:
        if ch == "$" and prev != "\\":
            chunk = "".join(buf)
            out.append(sanitize_math_segment(chunk) if in_math else chunk)
            buf = []
            in_math = not in_math
            out.append("$")
        else:
            buf.append(ch)
        prev = ch
    chunk = "".join(buf)
    out.append(sanitize_math_segment(chunk) if in_math else chunk)
    return "".join(out)
