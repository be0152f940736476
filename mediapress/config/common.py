"""
Common configuration settings used throughout mediapress.

This module contains shared constants for logging, the scratch directory layout
and task states. It also loads user overrides from a `mediapress.user.yaml`
file located at the project root, e.g.:

    paths:
      ffprobe_dir: /opt/ffmpeg/bin
      work_dir: /tmp/mediapress
    encoding:
      max_bitrate: 3000000
      max_frame_rate: 24
      max_width: 720
      jpeg_quality: 0.6
"""
import tempfile
from pathlib import Path

import yaml
from loguru import logger

# --- User-Defined Configuration ---

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = PROJECT_ROOT / "mediapress.user.yaml"


def load_user_config(path: Path = USER_CONFIG_PATH) -> dict:
    """
    Loads the optional user configuration file.

    Returns an empty dict when the file is missing or cannot be parsed, so the
    built-in defaults stay in effect.
    """
    if not path.is_file():
        logger.debug(f"User config '{path}' not found. Using built-in defaults.")
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load or parse '{path}': {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring '{path}': top level must be a mapping.")
        return {}
    return data


USER_CONFIG = load_user_config()
_PATHS_CONFIG = USER_CONFIG.get("paths") or {}
ENCODING_OVERRIDES: dict = USER_CONFIG.get("encoding") or {}

# Directory holding the ffprobe executable used by ffmpeg-python. None means PATH.
FFPROBE_DIR: Path | None = (
    Path(_PATHS_CONFIG["ffprobe_dir"]) if _PATHS_CONFIG.get("ffprobe_dir") else None
)

# --- Logging Configuration ---

LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{thread.name} - <level>{message}</level>"
)

# --- Directory and File Management ---

# Scratch directory for imported videos, transcode outputs and task reports.
WORK_DIR: Path = (
    Path(_PATHS_CONFIG["work_dir"])
    if _PATHS_CONFIG.get("work_dir")
    else Path(tempfile.gettempdir()) / "mediapress"
)
IMPORT_DIR_NAME = "imported"
OUTPUT_DIR_NAME = "compressed"
TASK_REPORT_FILE_NAME = "task_report.yaml"
ERROR_LOG_FILE_NAME = "error.txt"

# Characters in a media id that cannot appear in an output file name.
PATH_SEPARATORS = ("/", "\\")

# --- Task Defaults ---

DEFAULT_TASK_TITLE = "Add Review"

# --- Task Status Constants ---
# A task waits in the queue as pending; exactly one task at a time is processing.
TASK_STATUS_PENDING = "pending"
TASK_STATUS_PROCESSING = "processing"
