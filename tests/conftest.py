"""Shared fixtures: synthetic clips built with PyAV and skip markers for native tools."""

import math
import shutil
from fractions import Fraction
from pathlib import Path

import av
import numpy as np
import pytest

from mediapress.config.video import VIDEO_ENCODER_CANDIDATES
from mediapress.domain.exceptions import WriterInitFailedException
from mediapress.services.transcode_session import select_video_encoder


def _has_h264_encoder() -> bool:
    try:
        select_video_encoder(VIDEO_ENCODER_CANDIDATES)
    except WriterInitFailedException:
        return False
    return True


requires_ffprobe = pytest.mark.skipif(shutil.which("ffprobe") is None, reason="ffprobe not installed")
requires_h264 = pytest.mark.skipif(not _has_h264_encoder(), reason="no H.264 encoder in libav")


def make_clip(
    path: Path,
    width: int = 320,
    height: int = 240,
    frame_count: int = 30,
    frame_rate: int = 30,
    with_audio: bool = True,
    with_video: bool = True,
) -> Path:
    """
    Writes a short MPEG-4 Part 2 / AAC clip.

    Frames are a moving gradient; audio is a 440 Hz stereo tone spanning the
    same duration as the video.
    """
    container = av.open(str(path), mode="w")
    video = None
    audio = None
    if with_video:
        video = container.add_stream("mpeg4", rate=frame_rate)
        video.codec_context.width = width
        video.codec_context.height = height
        video.codec_context.pix_fmt = "yuv420p"
    if with_audio:
        audio = container.add_stream("aac", rate=44_100)

    if video is not None:
        x = np.linspace(0, 255, width, dtype=np.uint8)
        for index in range(frame_count):
            pixels = np.zeros((height, width, 3), dtype=np.uint8)
            pixels[:, :, 0] = np.roll(x, index * 4)
            pixels[:, :, 1] = 128
            pixels[:, :, 2] = (index * 8) % 256
            frame = av.VideoFrame.from_ndarray(pixels, format="rgb24")
            frame.pts = index
            frame.time_base = Fraction(1, frame_rate)
            container.mux(video.encode(frame))
        container.mux(video.encode(None))

    if audio is not None:
        samples_per_frame = 1024
        total_samples = int(44_100 * frame_count / frame_rate)
        for start in range(0, total_samples, samples_per_frame):
            t = (np.arange(samples_per_frame) + start) / 44_100
            tone = (0.2 * np.sin(2 * math.pi * 440 * t)).astype(np.float32)
            frame = av.AudioFrame.from_ndarray(np.vstack([tone, tone]), format="fltp", layout="stereo")
            frame.sample_rate = 44_100
            frame.pts = start
            frame.time_base = Fraction(1, 44_100)
            container.mux(audio.encode(frame))
        container.mux(audio.encode(None))

    container.close()
    return path


def count_video_frames(path: Path) -> int:
    with av.open(str(path)) as container:
        return sum(1 for _ in container.decode(video=0))


@pytest.fixture
def clip_factory(tmp_path):
    def factory(name: str = "source.mp4", **kwargs) -> Path:
        return make_clip(tmp_path / name, **kwargs)

    return factory
