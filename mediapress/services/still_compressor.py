"""
Encodes decoded still images to JPEG or PNG with Pillow.

JPEG is lossy with a quality on a 0.0-1.0 scale; PNG is lossless and ignores
the quality. No colour-space or EXIF handling is done beyond what the decoded
image already carries.
"""
import io
from enum import Enum

from PIL import Image, UnidentifiedImageError
from loguru import logger

from ..config.image import DEFAULT_JPEG_QUALITY, JPEG_COMPATIBLE_MODES
from ..domain.exceptions import StillCompressFailedException


class ImageFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"


def _pillow_quality(quality: float) -> int:
    if not 0.0 <= quality <= 1.0:
        raise ValueError(f"JPEG quality must be within [0.0, 1.0], got {quality}")
    return int(round(quality * 100))


def compress_still(
    image: Image.Image,
    quality: float = DEFAULT_JPEG_QUALITY,
    image_format: ImageFormat = ImageFormat.JPEG,
) -> bytes:
    """
    Encodes `image` and returns the encoded bytes.

    Args:
        image: The decoded image.
        quality: JPEG quality in [0.0, 1.0]. Ignored for PNG.
        image_format: `ImageFormat.JPEG` (default) or `ImageFormat.PNG`.

    Raises:
        ValueError: If `quality` is out of range.
        StillCompressFailedException: If encoding fails or yields no data.
    """
    buffer = io.BytesIO()
    try:
        if image_format == ImageFormat.JPEG:
            pillow_quality = _pillow_quality(quality)
            if image.mode not in JPEG_COMPATIBLE_MODES:
                image = image.convert("RGB")
            image.save(buffer, format="JPEG", quality=pillow_quality, optimize=True)
        else:
            image.save(buffer, format="PNG", optimize=True)
    except (OSError, KeyError) as e:
        raise StillCompressFailedException(
            f"Could not encode {image.width}x{image.height} {image.mode} image as {image_format.value}: {e}"
        ) from e

    data = buffer.getvalue()
    if not data:
        raise StillCompressFailedException(f"Encoding to {image_format.value} produced no data")
    logger.debug(f"Encoded {image.width}x{image.height} image as {image_format.value}: {len(data)} bytes")
    return data


def decode_still(data: bytes) -> Image.Image:
    """
    Decodes raw image bytes into a fully loaded Pillow image.

    Args:
        data: Encoded image bytes in any format Pillow can read.

    Returns:
        The decoded image, with its pixel data already loaded.

    Raises:
        StillCompressFailedException: If the bytes are not a readable image, or
            if the image is so large that Pillow treats it as a decompression bomb.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise StillCompressFailedException(f"Could not decode image data ({len(data)} bytes): {e}") from e
    return image
