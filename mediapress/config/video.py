"""
Configuration settings related to video transcoding.

The encoding profile is process-wide: every transcode session uses the same
bitrate and frame-rate caps and the same H.264/AAC output settings.
"""
from dataclasses import dataclass

from .common import ENCODING_OVERRIDES

# --- General Video Settings ---
VIDEO_EXTENSIONS = (
    ".mp4", ".mov", ".m4v", ".avi", ".mpg", ".mpeg", ".mkv", ".3gp", ".webm", ".qt",
)
OUTPUT_EXTENSION = ".mp4"

# --- Target Geometry ---
DEFAULT_MAX_WIDTH: int = int(ENCODING_OVERRIDES.get("max_width", 1080))
DEFAULT_ASPECT_RATIO: tuple[int, int] = (9, 16)

# --- Encoder Settings ---
MAX_BITRATE = 4_000_000
MAX_FRAME_RATE = 30.0
# Tried in order; the first one the linked libav provides is used.
VIDEO_ENCODER_CANDIDATES = ("libx264", "h264", "libopenh264")
VIDEO_PIXEL_FORMAT = "yuv420p"
X264_PROFILE = "high"

AUDIO_ENCODER = "aac"
AUDIO_BIT_RATE = 128_000
AUDIO_SAMPLE_RATE = 44_100
AUDIO_LAYOUT = "stereo"

# --- Lane Scheduling ---
# A lane waits while it is this many seconds ahead of the other unfinished lane.
MAX_INTERLEAVE_SECONDS = 1.0
# Log transcode progress every N written video frames.
PROGRESS_LOG_EVERY_FRAMES = 30


@dataclass(frozen=True)
class EncodingProfile:
    """Output settings shared by every transcode session."""

    max_bitrate: int = MAX_BITRATE
    max_frame_rate: float = MAX_FRAME_RATE
    video_encoders: tuple[str, ...] = VIDEO_ENCODER_CANDIDATES
    pixel_format: str = VIDEO_PIXEL_FORMAT
    audio_codec: str = AUDIO_ENCODER
    audio_bit_rate: int = AUDIO_BIT_RATE
    audio_sample_rate: int = AUDIO_SAMPLE_RATE
    audio_layout: str = AUDIO_LAYOUT


DEFAULT_ENCODING_PROFILE = EncodingProfile(
    max_bitrate=int(ENCODING_OVERRIDES.get("max_bitrate", MAX_BITRATE)),
    max_frame_rate=float(ENCODING_OVERRIDES.get("max_frame_rate", MAX_FRAME_RATE)),
)
