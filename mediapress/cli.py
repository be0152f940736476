"""
Command-line interface for mediapress.

This module uses Python's `argparse` to define and parse the arguments that
control a compression run.
"""
import argparse
from pathlib import Path

from .config.common import DEFAULT_TASK_TITLE
from .config.image import DEFAULT_JPEG_QUALITY
from .config.video import DEFAULT_ASPECT_RATIO, DEFAULT_MAX_WIDTH
from .services.still_compressor import ImageFormat


def parse_aspect_ratio(value: str) -> tuple[float, float]:
    """Parses a "W:H" string such as "9:16" into a (width, height) tuple."""
    try:
        width_str, height_str = value.split(":")
        width, height = float(width_str), float(height_str)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Aspect ratio must look like W:H, got '{value}'")
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError(f"Aspect ratio parts must be positive, got '{value}'")
    return width, height


def parse_quality(value: str) -> float:
    try:
        quality = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"JPEG quality must be a number, got '{value}'")
    if not 0.0 <= quality <= 1.0:
        raise argparse.ArgumentTypeError(f"JPEG quality must be within [0.0, 1.0], got {quality}")
    return quality


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compress photos and videos for upload as a single task."
    )
    parser.add_argument(
        "files", nargs="+", type=Path, help="Photos and videos to compress."
    )
    parser.add_argument(
        "--max-width", type=float, default=DEFAULT_MAX_WIDTH,
        help=f"Maximum output video width before orientation (default: {DEFAULT_MAX_WIDTH})."
    )
    parser.add_argument(
        "--aspect-ratio", type=parse_aspect_ratio,
        default=DEFAULT_ASPECT_RATIO,
        help="Output video aspect ratio as W:H (default: 9:16)."
    )
    parser.add_argument(
        "--jpeg-quality", type=parse_quality, default=DEFAULT_JPEG_QUALITY,
        help=f"JPEG quality between 0.0 and 1.0 (default: {DEFAULT_JPEG_QUALITY})."
    )
    parser.add_argument(
        "--image-format", type=ImageFormat, choices=list(ImageFormat), default=ImageFormat.JPEG,
        help="Output format for photos."
    )
    parser.add_argument(
        "--no-audio", action="store_true", help="Drop the audio track of videos."
    )
    parser.add_argument(
        "--work-dir", type=Path, default=None,
        help="Scratch directory for imported videos, outputs and reports."
    )
    parser.add_argument(
        "--title", type=str, default=DEFAULT_TASK_TITLE, help="Title of the submitted task."
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level."
    )
    return parser


def get_args(argv=None) -> argparse.Namespace:
    """
    Parses command-line arguments.

    Returns:
        argparse.Namespace: The parsed arguments. `work_dir` is created if it
        does not exist yet.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.work_dir:
        try:
            args.work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            parser.error(f"The work directory '{args.work_dir}' could not be created: {e}")
        args.work_dir = args.work_dir.resolve()

    return args
