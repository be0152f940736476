"""
Probed metadata of a source video.

`SourceVideo.probe()` wraps `ffprobe` (via the ffmpeg-python library) and keeps
only what a transcode session needs: stored frame size, orientation, estimated
bitrate, nominal frame rate, duration and whether an audio track exists.
"""
import math
import sys
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from pprint import pformat
from typing import Optional

import ffmpeg
from loguru import logger

from ..config.common import FFPROBE_DIR
from .exceptions import NoVideoTrackException


def ffprobe_command() -> str:
    """Returns the ffprobe executable from the configured directory, or 'ffprobe' from PATH."""
    exe_name = "ffprobe.exe" if sys.platform == "win32" else "ffprobe"
    if FFPROBE_DIR and (FFPROBE_DIR / exe_name).is_file():
        return str(FFPROBE_DIR / exe_name)
    return "ffprobe"


def parse_frame_rate(rate: Optional[str]) -> float:
    """
    Parses an ffprobe rate string such as "30000/1001" or "25".

    Returns 0.0 for missing or degenerate values like "0/0".
    """
    if not rate:
        return 0.0
    try:
        value = Fraction(rate)
    except (ValueError, ZeroDivisionError):
        return 0.0
    return float(value) if value > 0 else 0.0


def _parse_number(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class OrientationTransform:
    """
    The linear part (a, b, c, d) of a track's preferred affine transform.

    A transform with a zeroed diagonal rotates by a quarter turn, which means
    the stored frames are sideways relative to how they are displayed.
    """

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0

    @classmethod
    def from_rotation(cls, degrees: float) -> "OrientationTransform":
        """Builds the transform for a clockwise display rotation in degrees."""
        radians = math.radians(degrees % 360)
        cos = round(math.cos(radians), 6) + 0.0
        sin = round(math.sin(radians), 6) + 0.0
        return cls(a=cos, b=sin, c=-sin + 0.0, d=cos)

    @property
    def is_portrait(self) -> bool:
        return abs(self.a) == 0 and abs(self.d) == 0

    @property
    def rotation(self) -> int:
        """Clockwise rotation in whole degrees, in [0, 360)."""
        return round(math.degrees(math.atan2(self.b, self.a))) % 360


IDENTITY_TRANSFORM = OrientationTransform()


@dataclass(frozen=True)
class SourceVideo:
    """
    What a transcode session needs to know about its input.

    Attributes:
        path: The source file.
        natural_size: Stored (pre-rotation) frame size as (width, height).
        transform: Orientation transform derived from the rotation metadata.
        bit_rate: Estimated video bitrate in bits per second; 0 when unknown.
        frame_rate: Nominal frames per second; 0.0 when unknown.
        duration: Duration in seconds; 0.0 when unknown.
        has_audio: True when the file contains at least one audio stream.
    """

    path: Path
    natural_size: tuple[int, int]
    transform: OrientationTransform
    bit_rate: int
    frame_rate: float
    duration: float
    has_audio: bool

    @classmethod
    def probe(cls, path: Path) -> "SourceVideo":
        """
        Probes `path` with ffprobe.

        Raises:
            NoVideoTrackException: If ffprobe fails or finds no video stream.
        """
        try:
            probe = ffmpeg.probe(str(path), cmd=ffprobe_command())
        except ffmpeg.Error as e:
            stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else e.stderr
            raise NoVideoTrackException(f"ffprobe failed for {path}: {stderr}") from e
        except FileNotFoundError as e:
            raise NoVideoTrackException(f"ffprobe executable not found while probing {path}") from e
        logger.trace(f"Probe data for {path.name}:\n{pformat(probe)}")
        return cls.from_probe(path, probe)

    @classmethod
    def from_probe(cls, path: Path, probe: dict) -> "SourceVideo":
        """
        Builds a `SourceVideo` from ffprobe's JSON output.

        Attached pictures (cover art) are not counted as video streams. Bitrate
        falls back from the stream to the container; frame rate from
        `avg_frame_rate` to `r_frame_rate`. Missing values become 0.

        Args:
            path: The probed file, kept for error messages and the result.
            probe: The parsed ffprobe output with `streams` and `format`.

        Raises:
            NoVideoTrackException: If there is no video stream with a frame size.
        """
        streams = probe.get("streams") or []
        video_streams = [
            s for s in streams
            if s.get("codec_type") == "video"
            and not (s.get("disposition") or {}).get("attached_pic")
        ]
        if not video_streams:
            raise NoVideoTrackException(f"No video track found in {path}")
        video = video_streams[0]

        width = int(video.get("width") or 0)
        height = int(video.get("height") or 0)
        if width <= 0 or height <= 0:
            raise NoVideoTrackException(f"Video track of {path} has no frame size")

        format_info = probe.get("format") or {}
        bit_rate = int(_parse_number(video.get("bit_rate")) or _parse_number(format_info.get("bit_rate")))
        frame_rate = parse_frame_rate(video.get("avg_frame_rate")) or parse_frame_rate(
            video.get("r_frame_rate")
        )
        duration = _parse_number(video.get("duration")) or _parse_number(format_info.get("duration"))

        return cls(
            path=path,
            natural_size=(width, height),
            transform=OrientationTransform.from_rotation(cls._rotation_of(video)),
            bit_rate=bit_rate,
            frame_rate=frame_rate,
            duration=duration,
            has_audio=any(s.get("codec_type") == "audio" for s in streams),
        )

    @staticmethod
    def _rotation_of(video_stream: dict) -> float:
        """
        Reads the clockwise display rotation of a video stream.

        Older muxers store it as a `rotate` tag (clockwise). Newer ffprobe
        versions report the display matrix side data, whose `rotation` is
        counter-clockwise.
        """
        rotate_tag = (video_stream.get("tags") or {}).get("rotate")
        if rotate_tag is not None:
            return _parse_number(rotate_tag) % 360
        for side_data in video_stream.get("side_data_list") or []:
            if "rotation" in side_data:
                return (-_parse_number(side_data["rotation"])) % 360
        return 0.0
