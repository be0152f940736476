"""
Configuration package for mediapress.

Static settings live here so encoding parameters can be tuned without touching
the pipeline code. Values in `common.py` may be overridden from an optional
`mediapress.user.yaml` file at the project root.

Modules:
- common.py: logging format, work directories, task statuses and user config loading.
- video.py: the video encoding profile and target geometry defaults.
- image.py: still image formats and JPEG quality.
"""
