"""Tests for the string helpers used in logs and output paths."""

from datetime import timedelta
from pathlib import Path

import pytest

from mediapress.utils.format_utils import (
    compression_ratio,
    contains_any_extensions,
    format_timedelta,
    formatted_size,
    sanitized_file_name,
)


class TestFormatTimedelta:
    @pytest.mark.parametrize(
        "elapsed, expected",
        [
            (timedelta(seconds=65), "00:01:05"),
            (timedelta(hours=2, minutes=1, seconds=1, milliseconds=900), "02:01:01"),
            (timedelta(days=1, hours=2), "26:00:00"),
            (timedelta(seconds=-5), "00:00:00"),
        ],
    )
    def test_clock_reading(self, elapsed, expected):
        assert format_timedelta(elapsed) == expected

    def test_non_timedelta_is_zero(self):
        assert format_timedelta(12) == "00:00:00"


class TestFormattedSize:
    @pytest.mark.parametrize(
        "size, expected",
        [
            (0, "0 B"),
            (-10, "0 B"),
            (512, "512 B"),
            (1536, "1.50 KB"),
            (2 * 1024 ** 2, "2 MB"),
            (3 * 1024 ** 6, "3072 PB"),
        ],
    )
    def test_units(self, size, expected):
        assert formatted_size(size) == expected


class TestNames:
    def test_compression_ratio(self):
        assert compression_ratio(400, 100) == 0.25
        assert compression_ratio(0, 100) == 0.0

    def test_separators_are_flattened(self):
        assert sanitized_file_name("library/IMG_0001", ".mp4") == "library-IMG_0001.mp4"

    def test_extension_match_ignores_case_and_dot(self):
        assert contains_any_extensions(Path("clip.MOV"), ["mov"])
        assert contains_any_extensions(Path("photo.jpg"), [".JPG", ".png"])
        assert not contains_any_extensions(Path("clip.mov"), [])
