#!/usr/bin/env python3
"""
squeeze_pdf.py - Size-targeted PDF compression CLI.

Usage:
    python squeeze_pdf.py input.pdf -o output.pdf
    python squeeze_pdf.py input.pdf --target 100KB
    python squeeze_pdf.py photo.jpg --preset upsc_photo
    python squeeze_pdf.py *.pdf --tier high --output-dir ./compressed/
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent to path when running as script
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent))

from pdf_squeeze.config import QualityTier, format_bytes, parse_target_bytes
from pdf_squeeze.errors import CompressionError
from pdf_squeeze.pipeline import CompressionOrchestrator, CompressionRequest
from pdf_squeeze.presets import IMAGE_SUFFIXES, PRESETS, PresetAdapter

INPUT_SUFFIXES = {".pdf"} | IMAGE_SUFFIXES


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compress PDFs to a quality tier or an exact byte budget.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python squeeze_pdf.py scan.pdf -o small.pdf --target 2MB
  python squeeze_pdf.py scan.pdf --target 150000 --no-exact
  python squeeze_pdf.py sign.png --preset upsc_sign

With --target the engine tries resolutions from 220 dpi downwards and keeps
the first result that fits, then pads it to the exact size. Without
Ghostscript a basic structural rewrite is used instead.

Presets: """ + ", ".join(sorted(PRESETS)),
    )

    parser.add_argument(
        "input",
        nargs="+",
        type=Path,
        help="Input PDF file(s); images are accepted with --preset"
    )

    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "-o", "--output",
        type=Path,
        help="Output file (single input only)"
    )
    output.add_argument(
        "--output-dir",
        type=Path,
        help="Output directory (for multiple files)"
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-t", "--target",
        type=parse_target_bytes,
        help="Byte budget, e.g. 100KB, 2.5MB, 150000 (KB=1000 bytes)"
    )
    mode.add_argument(
        "-p", "--preset",
        choices=sorted(PRESETS),
        help="Portal preset (fixed budget and tier)"
    )

    parser.add_argument(
        "--tier",
        choices=[t.value for t in QualityTier],
        default=QualityTier.MEDIUM.value,
        help="Compression strength when no target is given (default: medium)"
    )

    parser.add_argument(
        "--no-exact",
        action="store_true",
        help="Do not pad the result up to the exact target size"
    )

    parser.add_argument(
        "--deadline",
        type=float,
        help="Seconds allowed for Ghostscript work before falling back"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    return parser


def output_path_for(input_path: Path, args) -> Path:
    if args.output:
        return args.output
    name = f"{input_path.stem}_compressed.pdf"
    if args.output_dir:
        return args.output_dir / name
    return input_path.with_name(name)


def process_file(input_path: Path, output_path: Path, args, orchestrator) -> bool:
    """Compress one file. Returns True on success."""
    data = input_path.read_bytes()

    try:
        if args.preset:
            result = PresetAdapter(orchestrator).run(data, args.preset, filename=input_path.name)
        else:
            request = CompressionRequest(
                document=data,
                quality_tier=args.tier,
                target_bytes=args.target,
                exact_size=not args.no_exact,
                deadline=args.deadline,
                filename=input_path.name,
            )
            result = orchestrator.run(request)
    except (CompressionError, ValueError) as e:
        print(f"Error: {input_path.name}: {e}", file=sys.stderr)
        return False

    output_path.write_bytes(result.output)
    print(f"\n{input_path.name} -> {output_path}")
    print(result.message)
    print(result.summary())
    return True


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    # Validate inputs
    valid_inputs = []
    for p in args.input:
        if not p.exists():
            print(f"Error: File not found: {p}", file=sys.stderr)
            continue
        suffix = p.suffix.lower()
        if suffix not in INPUT_SUFFIXES or (suffix != ".pdf" and not args.preset):
            print(f"Warning: Skipping unsupported input: {p}", file=sys.stderr)
            continue
        valid_inputs.append(p)

    if not valid_inputs:
        print("Error: No valid input files", file=sys.stderr)
        return 1

    if len(valid_inputs) > 1 and args.output:
        print("Error: Use --output-dir for multiple files", file=sys.stderr)
        return 1

    if args.output_dir:
        args.output_dir.mkdir(parents=True, exist_ok=True)

    orchestrator = CompressionOrchestrator()
    successes = 0
    total_in = 0
    total_out = 0

    for i, input_path in enumerate(valid_inputs):
        output_path = output_path_for(input_path, args)
        if len(valid_inputs) > 1:
            print(f"\n[{i+1}/{len(valid_inputs)}] {input_path.name}")

        if process_file(input_path, output_path, args, orchestrator):
            successes += 1
            total_in += input_path.stat().st_size
            total_out += output_path.stat().st_size

    if len(valid_inputs) > 1:
        print(f"\n{'='*50}")
        print(f"Batch complete: {successes}/{len(valid_inputs)} files")
        print(f"Total: {format_bytes(total_in)} -> {format_bytes(total_out)}")

    return 0 if successes == len(valid_inputs) else 1


if __name__ == "__main__":
    sys.exit(main())
