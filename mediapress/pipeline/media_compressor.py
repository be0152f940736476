"""
Dispatches one media item to the still or the video compression path.
"""
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.common import OUTPUT_DIR_NAME, WORK_DIR
from ..config.image import DEFAULT_JPEG_QUALITY
from ..config.video import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_ENCODING_PROFILE,
    DEFAULT_MAX_WIDTH,
    OUTPUT_EXTENSION,
    EncodingProfile,
)
from ..domain.media import (
    CompressedImage,
    CompressedMedia,
    CompressedVideo,
    MediaItem,
    StillImage,
    VideoFile,
)
from ..services.still_compressor import ImageFormat, compress_still
from ..services.transcode_session import TranscodeSession
from ..utils.format_utils import compression_ratio, formatted_size, sanitized_file_name


class MediaCompressor:
    """
    Compresses media items for upload.

    Stills are re-encoded in memory; videos are transcoded into `output_dir`,
    one MP4 per item named after the item id.

    Attributes:
        output_dir: Directory receiving transcoded videos.
        max_width: Target width cap for videos.
        aspect_ratio: Target (width, height) ratio for videos.
        jpeg_quality: Quality in [0.0, 1.0] for JPEG stills.
        image_format: Output format for stills.
        keep_audio: Whether videos keep their audio track.
        profile: Encoding profile passed to every transcode session.
    """

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        max_width: float = DEFAULT_MAX_WIDTH,
        aspect_ratio: tuple[float, float] = DEFAULT_ASPECT_RATIO,
        jpeg_quality: float = DEFAULT_JPEG_QUALITY,
        image_format: ImageFormat = ImageFormat.JPEG,
        keep_audio: bool = True,
        profile: EncodingProfile = DEFAULT_ENCODING_PROFILE,
    ):
        self.output_dir = Path(output_dir) if output_dir else WORK_DIR / OUTPUT_DIR_NAME
        self.max_width = max_width
        self.aspect_ratio = aspect_ratio
        self.jpeg_quality = jpeg_quality
        self.image_format = image_format
        self.keep_audio = keep_audio
        self.profile = profile

    def output_path_for(self, media_id: str) -> Path:
        return self.output_dir / sanitized_file_name(media_id, OUTPUT_EXTENSION)

    def compress(self, item: MediaItem) -> CompressedMedia:
        """
        Compresses `item` according to its payload type.

        Args:
            item: A still or video media item.

        Returns:
            `CompressedImage` bytes for a still, or a `CompressedVideo` pointing
            at the transcoded MP4 in `output_dir`.

        Raises:
            StillCompressFailedException: If a still cannot be encoded.
            TranscodeException: If a video cannot be transcoded.
            TypeError: For an unknown payload type.
        """
        payload = item.payload
        if isinstance(payload, StillImage):
            return self._compress_still(item, payload)
        if isinstance(payload, VideoFile):
            return self._compress_video(item, payload)
        raise TypeError(f"Unsupported media payload for '{item.id}': {type(payload).__name__}")

    def _compress_still(self, item: MediaItem, payload: StillImage) -> CompressedImage:
        data = compress_still(payload.image, quality=self.jpeg_quality, image_format=self.image_format)
        compressed = CompressedImage(data)
        self._log_sizes(item.id, payload.source_size, compressed.size)
        return compressed

    def _compress_video(self, item: MediaItem, payload: VideoFile) -> CompressedVideo:
        session = TranscodeSession(
            input_path=payload.path,
            output_path=self.output_path_for(item.id),
            max_width=self.max_width,
            aspect_ratio=self.aspect_ratio,
            keep_audio=self.keep_audio,
            profile=self.profile,
        )
        compressed = CompressedVideo(session.run())
        original_size = payload.path.stat().st_size if payload.path.exists() else 0
        self._log_sizes(item.id, original_size, compressed.size)
        return compressed

    @staticmethod
    def _log_sizes(media_id: str, original_size: int, compressed_size: int):
        if original_size <= 0:
            logger.success(f"[{media_id}] Compressed to {formatted_size(compressed_size)}")
            return
        saved = 1.0 - compression_ratio(original_size, compressed_size)
        logger.success(
            f"[{media_id}] Original: {formatted_size(original_size)} | "
            f"Compressed: {formatted_size(compressed_size)} | Saved: {saved:.1%}"
        )
