"""
Configuration settings related to still images.
"""
from .common import ENCODING_OVERRIDES

IMAGE_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".gif", ".tif", ".tiff", ".bmp", ".webp", ".heic",
)

# JPEG quality on a 0.0-1.0 scale, mapped to Pillow's 0-100 scale when saving.
DEFAULT_JPEG_QUALITY: float = float(ENCODING_OVERRIDES.get("jpeg_quality", 0.7))

# Pillow rejects alpha and palette modes for JPEG output.
JPEG_COMPATIBLE_MODES = ("RGB", "L", "CMYK")
