"""Tests for target size computation and orientation handling."""

import math

import pytest
from hypothesis import given, settings, strategies as st

from mediapress.domain.source_video import IDENTITY_TRANSFORM, OrientationTransform
from mediapress.services.size_calculator import (
    TargetGeometry,
    calculate_target_size,
    corrected_natural_size,
)

dimension = st.floats(min_value=16, max_value=8192, allow_nan=False, allow_infinity=False)
ratio_part = st.integers(min_value=1, max_value=32)


class TestCalculateTargetSize:
    @given(
        source_width=dimension,
        source_height=dimension,
        max_width=dimension,
        ratio_width=ratio_part,
        ratio_height=ratio_part,
    )
    @settings(max_examples=200)
    def test_output_keeps_the_aspect_ratio(self, source_width, source_height, max_width, ratio_width, ratio_height):
        width, height = calculate_target_size(
            (source_width, source_height), False, max_width, (ratio_width, ratio_height)
        )
        assert math.isclose(width / height, ratio_width / ratio_height, rel_tol=1e-9)

    @given(
        source_width=dimension,
        source_height=dimension,
        max_width=dimension,
        ratio_width=ratio_part,
        ratio_height=ratio_part,
        is_portrait=st.booleans(),
    )
    @settings(max_examples=200)
    def test_width_side_never_exceeds_max_width(
        self, source_width, source_height, max_width, ratio_width, ratio_height, is_portrait
    ):
        width, height = calculate_target_size(
            (source_width, source_height), is_portrait, max_width, (ratio_width, ratio_height)
        )
        ratio_side = height if is_portrait else width
        assert ratio_side <= max_width * (1 + 1e-9)

    @given(
        source_width=dimension,
        source_height=dimension,
        max_width=dimension,
        ratio_width=ratio_part,
        ratio_height=ratio_part,
    )
    @settings(max_examples=200)
    def test_crop_fits_inside_the_source(self, source_width, source_height, max_width, ratio_width, ratio_height):
        width, height = calculate_target_size(
            (source_width, source_height), False, max_width, (ratio_width, ratio_height)
        )
        assert width <= source_width * (1 + 1e-9)
        assert height <= source_height * (1 + 1e-9)

    @given(source_width=dimension, source_height=dimension, max_width=dimension)
    def test_portrait_result_is_the_swapped_landscape_result(self, source_width, source_height, max_width):
        landscape = calculate_target_size((source_width, source_height), False, max_width, (9, 16))
        portrait = calculate_target_size((source_width, source_height), True, max_width, (9, 16))
        assert portrait == (landscape[1], landscape[0])

    def test_landscape_full_hd_source(self):
        assert calculate_target_size((1920, 1080), False, 1080, (9, 16)) == (607.5, 1080)

    def test_portrait_full_hd_source(self):
        assert calculate_target_size((1080, 1920), False, 1080, (9, 16)) == (1080, 1920)
        assert calculate_target_size((1080, 1920), True, 1080, (9, 16)) == (1920, 1080)

    def test_small_source_is_not_upscaled(self):
        width, height = calculate_target_size((360, 640), False, 1080, (9, 16))
        assert (width, height) == (360, 640)

    def test_zero_source_is_degenerate(self):
        assert calculate_target_size((0, 0), False, 1080, (9, 16)) == (0, 0)


class TestCorrectedNaturalSize:
    def test_identity_keeps_size(self):
        assert corrected_natural_size((1920, 1080), IDENTITY_TRANSFORM) == ((1920, 1080), False)

    @pytest.mark.parametrize("rotation", [90, 270])
    def test_quarter_turn_swaps_size(self, rotation):
        transform = OrientationTransform.from_rotation(rotation)
        assert corrected_natural_size((1920, 1080), transform) == ((1080, 1920), True)

    def test_half_turn_keeps_size(self):
        transform = OrientationTransform.from_rotation(180)
        assert corrected_natural_size((1920, 1080), transform) == ((1920, 1080), False)


class TestTargetGeometry:
    def test_landscape_source_rounds_to_even_size(self):
        geometry = TargetGeometry.from_source((1920, 1080), IDENTITY_TRANSFORM, 1080, (9, 16))
        assert geometry.output_size == (608, 1080)
        assert geometry.is_portrait is False

    def test_portrait_source_is_returned_in_stored_orientation(self):
        # A phone portrait clip: stored 1920x1080, displayed 1080x1920.
        geometry = TargetGeometry.from_source(
            (1920, 1080), OrientationTransform.from_rotation(90), 1080, (9, 16)
        )
        assert geometry.is_portrait is True
        assert geometry.output_size == (1920, 1080)
        assert geometry.display_size == (1080, 1920)

    def test_landscape_display_size_is_the_output_size(self):
        geometry = TargetGeometry.from_source((1920, 1080), OrientationTransform.from_rotation(180), 1080, (9, 16))
        assert geometry.display_size == geometry.output_size == (608, 1080)

    @given(
        width=st.integers(min_value=2, max_value=4096),
        height=st.integers(min_value=2, max_value=4096),
        rotation=st.sampled_from([0, 90, 180, 270]),
    )
    def test_dimensions_are_always_even(self, width, height, rotation):
        geometry = TargetGeometry.from_source(
            (width, height), OrientationTransform.from_rotation(rotation), 1080, (9, 16)
        )
        assert geometry.width % 2 == 0 and geometry.height % 2 == 0
        assert geometry.width >= 2 and geometry.height >= 2

    def test_zero_size_source_is_rejected(self):
        with pytest.raises(ValueError):
            TargetGeometry.from_source((0, 1080), IDENTITY_TRANSFORM, 1080, (9, 16))
