"""
mediapress: queue selected photos and videos as tasks and compress them for upload.

Images are recompressed to JPEG or PNG. Videos are transcoded frame by frame to
H.264/AAC in MP4, clamped to a target bitrate and frame rate and cover-cropped to
a fixed aspect ratio.
"""

__version__ = "0.1.0"
