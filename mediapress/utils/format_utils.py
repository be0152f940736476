"""
Helpers that turn sizes, durations and file names into the strings used in
log messages, task reports and output paths.

Nothing here touches the file system; `contains_any_extensions` only looks at
the suffix of the path it is given.
"""

from datetime import timedelta
from pathlib import Path
from typing import Iterable

from ..config.common import PATH_SEPARATORS

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")
_SIZE_STEP = 1024


def format_timedelta(elapsed: timedelta) -> str:
    """
    Renders an elapsed time as a clock reading.

    Transcode sessions log their wall time with this, so the hours field is not
    wrapped at 24 and fractions of a second are dropped.

    Args:
        elapsed: The duration to render. Anything that is not a timedelta, and
            negative durations, render as zero.

    Returns:
        The duration as "HH:MM:SS", e.g. "00:01:05" for 65 seconds or
        "26:00:00" for a day and two hours.
    """
    if not isinstance(elapsed, timedelta) or elapsed.total_seconds() <= 0:
        return "00:00:00"
    minutes, seconds = divmod(int(elapsed.total_seconds()), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def formatted_size(size_bytes: float) -> str:
    """
    Renders a byte count with a binary unit for size and saving logs.

    The value is divided by 1024 until it fits the unit, up to petabytes.
    Bytes are shown as a whole number; larger units get two decimals, with a
    trailing ".00" removed.

    Args:
        size_bytes: The size in bytes. Zero and negative sizes render as "0 B".

    Returns:
        The size with its unit, e.g. "512 B", "1.50 KB" or "2 MB".
    """
    if size_bytes <= 0:
        return "0 B"
    value = float(size_bytes)
    unit_index = 0
    while value >= _SIZE_STEP and unit_index < len(_SIZE_UNITS) - 1:
        value /= _SIZE_STEP
        unit_index += 1
    unit = _SIZE_UNITS[unit_index]
    if unit_index == 0:
        return f"{int(value)} {unit}"
    text = f"{value:.2f}"
    if text.endswith(".00"):
        text = text[:-3]
    return f"{text} {unit}"


def compression_ratio(original_size: int, compressed_size: int) -> float:
    """
    Returns the compressed size as a fraction of the original size.

    Args:
        original_size: Size of the source in bytes.
        compressed_size: Size of the compressed payload in bytes.

    Returns:
        0.25 when the compressed payload is a quarter of the original. 0.0
        when the original size is unknown (zero or negative).
    """
    if original_size <= 0:
        return 0.0
    return compressed_size / original_size


def sanitized_file_name(media_id: str, extension: str) -> str:
    """
    Builds a flat file name from a media id.

    Media ids are library identifiers and may contain path separators; each
    separator is replaced by "-" so the file always lands directly in the
    target directory.

    Args:
        media_id: The item id, e.g. "library/IMG_0001".
        extension: Suffix to append, including the leading dot.

    Returns:
        The file name, e.g. "library-IMG_0001.mp4".
    """
    name = media_id
    for separator in PATH_SEPARATORS:
        name = name.replace(separator, "-")
    return f"{name}{extension}"


def contains_any_extensions(file_path_obj: Path, extensions_to_check: Iterable[str]) -> bool:
    """
    Checks whether a file's suffix is one of the given extensions.

    Args:
        file_path_obj: The file to check.
        extensions_to_check: Extensions with or without the leading dot,
            in any case (".MOV", "jpg").

    Returns:
        True if the suffix matches one of the extensions, ignoring case.
        An empty collection matches nothing.
    """
    suffixes = {ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions_to_check}
    return file_path_obj.suffix.lower() in suffixes
