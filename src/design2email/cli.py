"""Command-line interface for design2email.

Usage::

    design2email selection.json                     # writes selection.html
    design2email selection.json -o email.html       # explicit output path
    design2email selection.json --style wide        # 800px page preset
    design2email selection.json -m download         # write images/ next to the HTML
    design2email selection.json --cta 12:34         # render node 12:34 as a button
    design2email selection.json --list-candidates   # show button candidates
    design2email --list-styles                      # list available presets
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from design2email import __version__
from design2email.converter import Converter
from design2email.host import (
    AcceptAllConfirmer,
    DirectoryImageExporter,
    EmbeddedImageExporter,
    StaticConfirmer,
)
from design2email.images import ImageMode
from design2email.parser import DesignTreeError
from design2email.style_manager import StyleManager


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="design2email",
        description="Convert design-tool selections (JSON) to table-based email HTML.",
    )
    parser.add_argument(
        "input",
        nargs="?",
        help="Path to the JSON selection to convert.",
    )
    parser.add_argument(
        "-o", "--output",
        help="Output HTML file path. Defaults to <input>.html.",
    )
    parser.add_argument(
        "-s", "--style",
        default="default",
        choices=StyleManager.PRESETS,
        help="Page preset (default: %(default)s).",
    )
    parser.add_argument(
        "-m", "--mode",
        default=ImageMode.PLACEHOLDER.value,
        choices=[mode.value for mode in ImageMode],
        help="How images are emitted (default: %(default)s).",
    )
    parser.add_argument(
        "--cta",
        action="append",
        default=[],
        metavar="NODE_ID",
        help="Confirm a button candidate by node id. Repeatable.",
    )
    parser.add_argument(
        "--all-cta",
        action="store_true",
        help="Render every button candidate as a button.",
    )
    parser.add_argument(
        "--export-dir",
        help="Directory holding pre-rendered PNGs named after node ids.",
    )
    parser.add_argument(
        "--asset-dir",
        default="images",
        help="Directory (relative to the output) for downloaded images (default: %(default)s).",
    )
    parser.add_argument(
        "--document",
        action="store_true",
        help="Wrap the output in a complete HTML email document.",
    )
    parser.add_argument(
        "-e", "--encoding",
        default="utf-8",
        help="Input file encoding (default: %(default)s).",
    )
    parser.add_argument(
        "--list-styles",
        action="store_true",
        help="List available page presets and exit.",
    )
    parser.add_argument(
        "--list-candidates",
        action="store_true",
        help="List button candidates in the input and exit.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print progress information.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def _notify(message: str) -> None:
    print(f"Notice: {message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.list_styles:
        print("Available page presets:")
        for preset in StyleManager.PRESETS:
            print(f"  - {preset}")
        return 0

    if not args.input:
        parser.error("the following argument is required: input")

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Error: file not found: {input_path}", file=sys.stderr)
        return 1

    confirmer = AcceptAllConfirmer() if args.all_cta else StaticConfirmer(args.cta)
    exporter = DirectoryImageExporter(args.export_dir) if args.export_dir else EmbeddedImageExporter()
    converter = Converter(
        style_preset=args.style,
        image_mode=args.mode,
        exporter=exporter,
        confirmer=confirmer,
        notify=_notify,
        asset_dir=args.asset_dir,
        full_document=args.document,
    )

    if args.list_candidates:
        try:
            candidates = converter.list_candidates(input_path.read_text(encoding=args.encoding))
        except DesignTreeError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        if not candidates:
            print("No button candidates.")
        for node in candidates:
            print(f"{node.id}\t{node.name}")
        return 0

    # Determine output path
    if args.output:
        output_path = Path(args.output)
    else:
        output_path = input_path.with_suffix(".html")

    if args.verbose:
        print(f"Input:  {input_path}")
        print(f"Output: {output_path}")
        print(f"Style:  {args.style}")
        print(f"Images: {args.mode}")

    try:
        result = converter.convert_file(input_path, output_path, encoding=args.encoding)
    except (DesignTreeError, OSError, UnicodeDecodeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.verbose:
        print(f"Done. {output_path.stat().st_size} bytes written, {len(result.assets)} image(s).")
    else:
        print(f"Converted: {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
