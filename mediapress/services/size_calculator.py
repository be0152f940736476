"""
Computes the output frame size of a transcoded video.

The output always has the configured aspect ratio exactly and is a crop of the
source (cover semantics, never letterboxing), capped at `max_width` on the
ratio's width side.
"""
from dataclasses import dataclass

from ..domain.source_video import OrientationTransform

Size = tuple[float, float]


def corrected_natural_size(natural_size: tuple[int, int], transform: OrientationTransform) -> tuple[tuple[int, int], bool]:
    """
    Returns the display-oriented size of a track and whether it is portrait.

    Natural size is stored pre-rotation, so a quarter-turn transform swaps it.
    """
    width, height = natural_size
    if transform.is_portrait:
        return (height, width), True
    return (width, height), False


def calculate_target_size(
    source_size: Size,
    is_portrait: bool,
    max_width: float,
    aspect_ratio: Size,
) -> Size:
    """
    Computes the largest `aspect_ratio` crop of `source_size`, capped at `max_width`.

    Args:
        source_size: Display-oriented source size (width, height).
        is_portrait: Whether the source's transform is a quarter turn. The
            result is then swapped back into stored frame orientation.
        max_width: Upper bound for the target width (before any swap).
        aspect_ratio: Target (width, height) ratio, e.g. (9, 16).

    Returns:
        Target (width, height) as floats. A zero-sized source yields a
        degenerate size; callers must guard against it.
    """
    source_width, source_height = source_size
    ratio_width, ratio_height = aspect_ratio

    if source_width * ratio_height / ratio_width > source_height:
        # Height is the limiting dimension.
        width_for_height = source_height * ratio_width / ratio_height
        if width_for_height >= max_width:
            size = (max_width, max_width * ratio_height / ratio_width)
        else:
            size = (width_for_height, source_height)
    else:
        # Width is the limiting dimension.
        if source_width >= max_width:
            size = (max_width, max_width * ratio_height / ratio_width)
        else:
            size = (source_width, source_width * ratio_height / ratio_width)

    if is_portrait:
        return size[1], size[0]
    return size


def _even(value: float) -> int:
    return max(2, int(round(value / 2)) * 2)


@dataclass(frozen=True)
class TargetGeometry:
    """
    Output frame size of one transcode.

    `output_size` is in stored (pre-rotation) frame orientation, the space the
    decoder hands frames out in. `display_size` is the same size as shown, which
    is what the encoder receives once frames have been turned upright.
    Dimensions are rounded to even integers, as 4:2:0 H.264 requires.
    """

    output_size: tuple[int, int]
    is_portrait: bool

    @classmethod
    def from_source(
        cls,
        natural_size: tuple[int, int],
        transform: OrientationTransform,
        max_width: float,
        aspect_ratio: Size,
    ) -> "TargetGeometry":
        display_size, is_portrait = corrected_natural_size(natural_size, transform)
        if display_size[0] <= 0 or display_size[1] <= 0:
            raise ValueError(f"Cannot compute a target size for source size {natural_size}")
        width, height = calculate_target_size(display_size, is_portrait, max_width, aspect_ratio)
        return cls(output_size=(_even(width), _even(height)), is_portrait=is_portrait)

    @property
    def display_size(self) -> tuple[int, int]:
        if self.is_portrait:
            return self.output_size[1], self.output_size[0]
        return self.output_size

    @property
    def width(self) -> int:
        return self.output_size[0]

    @property
    def height(self) -> int:
        return self.output_size[1]
