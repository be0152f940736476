"""
Media items as supplied by the selection collaborator, and their compressed forms.

A media payload is a small tagged union: a decoded still image or a local video
file. Compressed payloads mirror it: encoded image bytes or the finished MP4
file. Dispatch happens on the concrete variant type.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from PIL import Image


@dataclass(frozen=True)
class StillImage:
    """A decoded still image."""

    image: Image.Image
    # Size of the encoded source, when known, for compression statistics.
    source_size: int = 0


@dataclass(frozen=True)
class VideoFile:
    """A local video file handle."""

    path: Path


MediaPayload = Union[StillImage, VideoFile]


@dataclass(frozen=True)
class MediaItem:
    """
    One selected photo or video.

    The id is stable for the whole life of the item; every state the task
    queue moves the item through keeps referencing the same `MediaItem`.
    """

    id: str
    payload: MediaPayload


@dataclass(frozen=True)
class CompressedImage:
    """Encoded still image bytes (JPEG or PNG)."""

    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class CompressedVideo:
    """A finished H.264/AAC MP4 container on local disk."""

    path: Path

    @property
    def size(self) -> int:
        return self.path.stat().st_size if self.path.exists() else 0


CompressedMedia = Union[CompressedImage, CompressedVideo]
