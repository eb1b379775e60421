import textwrap
from pathlib import Path

import pytest

from TypstBlocks import cli, transcoder
from TypstBlocks.model import Heading, Paragraph


def test_serialize_and_parse_commands(tmp_path: Path):
    blocks_path = tmp_path / "doc.yaml"
    blocks_path.write_text(
        textwrap.dedent(
            """
            settings:
              tableCaptionNumbering: true
            blocks:
              - type: heading
                content: Report
              - type: paragraph
                content: Hello
            """
        ),
        encoding="utf-8",
    )
    typ_path = tmp_path / "out" / "doc.typ"
    cli.main(["serialize", str(blocks_path), "-o", str(typ_path), "--no-table-numbering"])
    typst_text = typ_path.read_text(encoding="utf-8")
    assert "= Report" in typst_text
    assert transcoder.parse(typst_text) == [Heading(content="Report"), Paragraph(content="Hello")]

    cli.main(["parse", str(typ_path)])
    yaml_text = (tmp_path / "out" / "doc.yaml").read_text(encoding="utf-8")
    assert "tableCaptionNumbering: false" in yaml_text
    assert "content: Report" in yaml_text


def test_import_markdown(tmp_path: Path):
    md_path = tmp_path / "notes.md"
    md_path.write_text("# Notes\n\nSome text.\n", encoding="utf-8")
    cli.main(["import-md", str(md_path), "-o", str(tmp_path)])
    assert (tmp_path / "notes.typ").read_text(encoding="utf-8").endswith("= Notes\n\nSome text.")


def test_math_command(capsys):
    cli.main(["math", "\\frac{1}{2}"])
    assert capsys.readouterr().out.strip() == "frac(1, 2)"
    cli.main(["math", "frac(1, 2)", "--to", "latex"])
    assert capsys.readouterr().out.strip() == "\\frac{1}{2}"


def test_missing_input(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        cli.main(["parse", str(tmp_path / "missing.typ")])
