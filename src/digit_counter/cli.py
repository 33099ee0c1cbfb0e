"""
Command line entry point: count handwritten digits in a folder of images.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from .constants import (
    DEFAULT_K,
    DEFAULT_OUTPUT_CSV,
    DEFAULT_REFERENCE_PATH,
    DEFAULT_REFERENCE_SAMPLES,
    PIXEL_MAX,
    PipelineConfig,
)
from .dataset import load_reference
from .evaluation import evaluate_holdout
from .pipeline import DigitCountPipeline, collect_images
from .reporting import preview_lines, summary_lines, write_counts_csv

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_REFERENCE = 2
EXIT_NO_IMAGES_PROCESSED = 3

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="digit-counter",
        description="Count handwritten digits (0-9) in a folder of images",
    )
    parser.add_argument("folder", help="Folder searched recursively for images")
    parser.add_argument("--reference", default=DEFAULT_REFERENCE_PATH,
                        help="MNIST CSV or .npz reference dataset")
    parser.add_argument("--samples", type=int, default=DEFAULT_REFERENCE_SAMPLES,
                        help="Number of reference samples to use (0 = all)")
    parser.add_argument("--pixel-max", type=float, default=PIXEL_MAX,
                        help="Maximum raw intensity in the reference dataset")
    parser.add_argument("-k", "--neighbors", type=int, default=DEFAULT_K,
                        help="Number of nearest neighbours that vote")
    parser.add_argument("--workers", type=int, default=1,
                        help="Worker threads used for image processing")
    parser.add_argument("--output", default=DEFAULT_OUTPUT_CSV,
                        help="CSV file receiving the count table")
    parser.add_argument("--preview", action="store_true",
                        help="Print sample predictions")
    parser.add_argument("--evaluate", action="store_true",
                        help="Report hold-out accuracy on the reference dataset first")
    parser.add_argument("--progress", action="store_true",
                        help="Show a progress bar")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def _strip_quotes(value: str) -> str:
    for quote in ('"', "'"):
        if len(value) >= 2 and value.startswith(quote) and value.endswith(quote):
            return value[1:-1]
    return value


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT, datefmt=DATE_FORMAT)

    try:
        config = PipelineConfig(k=args.neighbors, workers=args.workers, show_progress=args.progress)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    if args.samples < 0:
        print(f"Error: --samples must be >= 0, got {args.samples}", file=sys.stderr)
        return EXIT_USAGE

    folder = os.path.abspath(_strip_quotes(args.folder))
    if not os.path.isdir(folder):
        print(f"Folder not found: {folder}", file=sys.stderr)
        return EXIT_USAGE

    files = collect_images(folder)
    if not files:
        print(f"No images found in: {folder}", file=sys.stderr)
        return EXIT_USAGE

    pipeline = DigitCountPipeline(config)
    try:
        dataset = load_reference(args.reference, max_samples=args.samples or None, pixel_max=args.pixel_max)
        if args.evaluate:
            metrics = evaluate_holdout(dataset, k=config.k)
            print(f"Hold-out accuracy: {metrics['accuracy']:.4f} "
                  f"({metrics['test_samples']} samples, k={config.k})")
        pipeline.prepare(dataset)
    except ValueError as exc:
        # ReferenceDataError, FitError and DimensionalityError are ValueErrors too
        print(f"Error preparing reference dataset: {exc}", file=sys.stderr)
        return EXIT_REFERENCE

    report = pipeline.run(files)

    if not report.succeeded:
        print(f"None of the {len(files)} images could be processed", file=sys.stderr)
        return EXIT_NO_IMAGES_PROCESSED

    print()
    for line in summary_lines(report):
        print(line)
    print()

    if args.preview:
        print("Sample predictions:")
        for line in preview_lines(report):
            print(line)

    saved = write_counts_csv(report.counts, args.output)
    print(f"Saved -> {saved}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
