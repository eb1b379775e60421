from __future__ import annotations

import argparse
import logging
from pathlib import Path

from . import loader, markdown_parser, math_convert, serializer, transcoder
from .model import Document
from .utils import configure_logging, read_text, resolve_output_path, write_text


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-o", "--output", type=str, help="Output path")
    common.add_argument("--verbose", action="store_true", help="Enable debug logging")

    rendering = argparse.ArgumentParser(add_help=False)
    rendering.add_argument("--target", choices=serializer.TARGETS, default="storage", help="Serialization target")
    rendering.add_argument("--no-table-numbering", action="store_true", help="Do not number table captions")
    rendering.add_argument("--no-image-numbering", action="store_true", help="Do not number figure captions")

    parser = argparse.ArgumentParser(
        prog="typstblocks",
        description="Convert between editor blocks and Typst markup.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    parse_cmd = commands.add_parser("parse", parents=[common], help="Typst markup to a YAML block file")
    parse_cmd.add_argument("input", type=str, help="Path to a .typ file")

    serialize_cmd = commands.add_parser(
        "serialize", parents=[common, rendering], help="YAML/JSON block file to Typst markup"
    )
    serialize_cmd.add_argument("input", type=str, help="Path to a YAML or JSON block file")
    serialize_cmd.add_argument("--project-id", type=str, help="Require image URLs under this project's folder")
    serialize_cmd.add_argument("--lenient", action="store_true", help="Skip invalid blocks instead of failing")

    import_cmd = commands.add_parser("import-md", parents=[common, rendering], help="Markdown to Typst markup")
    import_cmd.add_argument("input", type=str, help="Path to a Markdown file")

    math_cmd = commands.add_parser("math", parents=[common], help="Convert one math expression")
    math_cmd.add_argument("expression", type=str, help="Expression to convert")
    math_cmd.add_argument("--to", choices=("typst", "latex"), default="typst", help="Output notation")
    return parser


def _input_path(raw: str) -> Path:
    input_path = Path(raw).expanduser()
    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")
    return input_path


def _apply_rendering_flags(document: Document, args: argparse.Namespace) -> None:
    if args.no_table_numbering:
        document.settings.table_caption_numbering = False
    if args.no_image_numbering:
        document.settings.image_caption_numbering = False


def _run_parse(args: argparse.Namespace) -> None:
    input_path = _input_path(args.input)
    output_path = resolve_output_path(input_path, args.output, ".yaml")
    logging.info("Reading %s", input_path)
    document = transcoder.parse_document(read_text(input_path))
    logging.info("Parsed %d blocks", len(document.blocks))
    write_text(output_path, loader.dump_document(document))
    logging.info("Done. Saved to %s", output_path)


def _run_serialize(args: argparse.Namespace) -> None:
    input_path = _input_path(args.input)
    output_path = resolve_output_path(input_path, args.output, ".typ")
    logging.info("Reading %s", input_path)
    document = loader.load_document(read_text(input_path), project_id=args.project_id, strict=not args.lenient)
    _apply_rendering_flags(document, args)
    logging.info("Serializing %d blocks to %s", len(document.blocks), output_path)
    write_text(output_path, serializer.serialize_document(document, target=args.target))
    logging.info("Done. Saved to %s", output_path)


def _run_import_md(args: argparse.Namespace) -> None:
    input_path = _input_path(args.input)
    output_path = resolve_output_path(input_path, args.output, ".typ")
    logging.info("Reading %s", input_path)
    markdown_text = read_text(input_path)
    logging.debug("Markdown length: %d chars", len(markdown_text))

    logging.info("Parsing markdown...")
    document = markdown_parser.parse_markdown(markdown_text)
    _apply_rendering_flags(document, args)

    logging.info("Writing Typst to %s", output_path)
    write_text(output_path, serializer.serialize_document(document, target=args.target))
    logging.info("Done. Saved to %s", output_path)


def _run_math(args: argparse.Namespace) -> None:
    if args.to == "typst":
        result = math_convert.latex_to_typst(args.expression)
    else:
        result = math_convert.typst_to_latex(args.expression)
    if args.output:
        write_text(Path(args.output), result + "\n")
        logging.info("Saved to %s", args.output)
    else:
        print(result)


_COMMANDS = {
    "parse": _run_parse,
    "serialize": _run_serialize,
    "import-md": _run_import_md,
    "math": _run_math,
}


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)
    _COMMANDS[args.command](args)


if __name__ == "__main__":
    main()
