"""Command line interface for the pixel sequencer."""

from __future__ import annotations

import argparse
import sys
from typing import List

from .errors import RemapError, ValidationError
from .optimizer import DEFAULT_MAX_WIDTH
from .pipeline import (
    LAYOUT_SEQUENCE,
    LAYOUTS,
    Artifact,
    PipelineOptions,
    run_decode,
    run_diffuse,
    run_encode,
    run_quantize,
    run_unquantize,
    write_artifacts,
)
from .pngio import DEFAULT_COMPRESS_LEVEL
from .remap import DEFAULT_DITHERING_LEVEL, DEFAULT_SPEED, REMAPPERS

EXIT_VALIDATION = 1
EXIT_REMAP = 3
EXIT_IO = 4


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--no-diffuse",
        action="store_true",
        help="Drop the low byte of 16-bit input instead of error-diffusing it",
    )
    common.add_argument(
        "--remapper",
        choices=sorted(REMAPPERS),
        default="imagequant",
        help="Palette generator (default: imagequant, highest quality)",
    )
    common.add_argument(
        "--dithering-level",
        type=float,
        default=DEFAULT_DITHERING_LEVEL,
        help="Remap dithering level between 0 and 1",
    )
    common.add_argument(
        "--speed",
        type=int,
        default=DEFAULT_SPEED,
        help=f"imagequant speed 1-10, 1 is slowest and best (default: {DEFAULT_SPEED})",
    )
    common.add_argument(
        "--compress-level",
        type=int,
        default=DEFAULT_COMPRESS_LEVEL,
        help="PNG zlib compression level 0-9",
    )
    common.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Overwrite existing files",
    )
    return common


def _layout_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--layout",
        choices=LAYOUTS,
        default=LAYOUT_SEQUENCE,
        help=(
            "sequence: frames interleaved per scanline into one wide image.\n"
            "stream: frames interleaved per pixel; writes <width>-<output> files"
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="pixel-sequencer",
        description=(
            "Convert a vertical strip of animation frames into a palette-indexed\n"
            "pixel sequence or pixel stream PNG, and back."
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    diffuse = commands.add_parser(
        "diffuse", parents=[common], help="Dither a 16-bit image down to 8 bits per channel"
    )
    diffuse.add_argument("input", help="Input PNG")
    diffuse.add_argument("output", help="Output PNG")

    quantize = commands.add_parser(
        "quantize", parents=[common], help="Quantize a single image (png -> 8-bit palette)"
    )
    quantize.add_argument("input", help="Input PNG")
    quantize.add_argument("output", help="Output PNG")

    unquantize = commands.add_parser(
        "unquantize", parents=[common], help="Unquantize a single image (8-bit palette -> RGBA png)"
    )
    unquantize.add_argument("input", help="Input PNG")
    unquantize.add_argument("output", help="Output PNG")

    encode = commands.add_parser(
        "encode",
        parents=[common],
        help="Encode an animation (vertical strip png -> 8-bit pixel sequence/stream)",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    _layout_option(encode)
    encode.add_argument(
        "--max-width",
        type=int,
        default=DEFAULT_MAX_WIDTH,
        help=f"Widest stream raster to try (default: {DEFAULT_MAX_WIDTH})",
    )
    encode.add_argument(
        "--zero-waste-only",
        action="store_true",
        help="Only try stream raster widths that need no padding",
    )
    encode.add_argument(
        "--best-only",
        action="store_true",
        help="Write only the smallest stream raster instead of every improvement",
    )
    encode.add_argument("input", help="Vertical frame strip PNG")
    encode.add_argument("frame_count", type=int, help="Number of frames in the strip")
    encode.add_argument("output", help="Output PNG")

    decode = commands.add_parser(
        "decode",
        parents=[common],
        help="Decode an animation (8-bit pixel sequence/stream -> vertical strip RGBA png)",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    _layout_option(decode)
    decode.add_argument(
        "--frame-count",
        type=int,
        default=None,
        help="stream: number of frames, needed for a raster written at a padded width",
    )
    decode.add_argument("input", help="Encoded PNG")
    decode.add_argument(
        "dimensions",
        nargs="+",
        type=int,
        metavar="N",
        help="sequence: FRAME_COUNT\nstream: FRAME_WIDTH FRAME_HEIGHT",
    )
    decode.add_argument("output", help="Output PNG")

    return parser


def build_options(args: argparse.Namespace) -> PipelineOptions:
    options = PipelineOptions()
    options.layout = getattr(args, "layout", LAYOUT_SEQUENCE)
    options.diffuse_wide = not args.no_diffuse
    options.remapper = args.remapper
    options.dithering_level = args.dithering_level
    options.speed = args.speed
    options.compress_level = args.compress_level
    options.force = args.force
    options.max_width = getattr(args, "max_width", DEFAULT_MAX_WIDTH)
    options.zero_waste_only = getattr(args, "zero_waste_only", False)
    options.keep_improving = not getattr(args, "best_only", False)
    options.validate()
    return options


def run_command(args: argparse.Namespace, options: PipelineOptions) -> List[Artifact]:
    if args.command == "diffuse":
        return run_diffuse(args.input, args.output, options, report=print)
    if args.command == "quantize":
        return run_quantize(args.input, args.output, options, report=print)
    if args.command == "unquantize":
        return run_unquantize(args.input, args.output, options, report=print)
    if args.command == "encode":
        return run_encode(args.input, args.frame_count, args.output, options, report=print)
    return run_decode(
        args.input, args.dimensions, args.output, options, frame_count=args.frame_count, report=print
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "decode":
        expected = 2 if args.layout != LAYOUT_SEQUENCE else 1
        if len(args.dimensions) != expected:
            parser.error(
                f"{args.layout} decode needs "
                + ("FRAME_WIDTH FRAME_HEIGHT" if expected == 2 else "FRAME_COUNT")
            )
        if args.frame_count is not None and args.layout == LAYOUT_SEQUENCE:
            parser.error("--frame-count only applies to --layout stream")

    try:
        options = build_options(args)
        artifacts = run_command(args, options)
        write_artifacts(artifacts, options.force, report=print)
        return 0
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_VALIDATION
    except RemapError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_REMAP
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_IO


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
