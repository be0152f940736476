"""
Cover-scales decoded video frames into a fixed target size.

The source is scaled by max(scaleX, scaleY) so it fills the target, then
centered so the overflow is cropped equally from both sides. Frames come out of
the decoder in stored orientation; the source's display rotation is applied to
the cropped pixels, so encoded frames are upright and the output needs no
rotation metadata.
"""
import math
from dataclasses import dataclass

import av
import av.error
import numpy as np

from ..domain.exceptions import FrameScaleFailedException

# Intermediate packed format used for cropping with numpy.
_CROP_FORMAT = "rgb24"


@dataclass(frozen=True)
class CoverPlan:
    """Scale and crop parameters that map a source frame onto a target size."""

    scale: float
    scaled_size: tuple[int, int]
    offset: tuple[int, int]


def cover_plan(source_size: tuple[int, int], target_size: tuple[int, int]) -> CoverPlan:
    """
    Computes the cover scale and the centered crop offset.

    The scaled size is never smaller than the target on either axis, and the
    offset is half of the overflow on each axis.

    Args:
        source_size: Source frame (width, height).
        target_size: Output frame (width, height).

    Returns:
        A `CoverPlan` with the uniform scale factor, the size the source is
        scaled to, and the (x, y) offset of the crop window inside it.

    Raises:
        ValueError: If any dimension is zero or negative.
    """
    source_width, source_height = source_size
    target_width, target_height = target_size
    if min(source_width, source_height, target_width, target_height) <= 0:
        raise ValueError(f"Cannot scale {source_size} to {target_size}")

    scale = max(target_width / source_width, target_height / source_height)
    scaled_width = max(target_width, math.ceil(source_width * scale - 1e-6))
    scaled_height = max(target_height, math.ceil(source_height * scale - 1e-6))
    return CoverPlan(
        scale=scale,
        scaled_size=(scaled_width, scaled_height),
        offset=((scaled_width - target_width) // 2, (scaled_height - target_height) // 2),
    )


def quarter_turns(rotation: int) -> int:
    """Returns the number of clockwise quarter turns in `rotation` degrees, in [0, 4)."""
    return round(rotation / 90) % 4


def rotated_size(size: tuple[int, int], rotation: int) -> tuple[int, int]:
    """Returns `size` after a clockwise rotation of `rotation` degrees."""
    width, height = size
    return (height, width) if quarter_turns(rotation) % 2 else (width, height)


def scale_frame(frame: av.VideoFrame, target_size: tuple[int, int], rotation: int = 0) -> av.VideoFrame:
    """
    Returns a new, upright frame in the source's pixel format.

    The frame is cover-scaled and center-cropped to `target_size` in stored
    orientation, then turned clockwise by `rotation` degrees. A quarter turn
    therefore yields a frame of `target_size` swapped. Cropping before turning
    is equivalent to the reverse order because the crop is centered.

    Args:
        frame: A decoded frame in stored (pre-rotation) orientation.
        target_size: Output (width, height) in stored orientation.
        rotation: Clockwise display rotation of the source in degrees. Only
            multiples of 90 are meaningful; others are rounded to one.

    Returns:
        The scaled frame. Presentation timestamp and time base are carried
        over unchanged.

    Raises:
        FrameScaleFailedException: If the scaled buffer cannot be produced.
    """
    target_width, target_height = target_size
    try:
        plan = cover_plan((frame.width, frame.height), target_size)
        scaled = frame.reformat(
            width=plan.scaled_size[0],
            height=plan.scaled_size[1],
            format=_CROP_FORMAT,
        )
        pixels = scaled.to_ndarray()
        offset_x, offset_y = plan.offset
        cropped = pixels[offset_y:offset_y + target_height, offset_x:offset_x + target_width]
        # np.rot90 turns counter-clockwise for positive k.
        upright = np.ascontiguousarray(np.rot90(cropped, k=-quarter_turns(rotation)))
        output = av.VideoFrame.from_ndarray(upright, format=_CROP_FORMAT)
        source_format = frame.format.name
        if source_format != _CROP_FORMAT:
            output = output.reformat(format=source_format)
    except (av.error.FFmpegError, ValueError, MemoryError) as e:
        raise FrameScaleFailedException(
            f"Could not scale {frame.width}x{frame.height} frame to {target_width}x{target_height}: {e}"
        ) from e

    output.pts = frame.pts
    if frame.time_base is not None:
        output.time_base = frame.time_base
    return output
