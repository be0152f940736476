"""
This module provides the Toolchain class, which checks the native media tools
mediapress depends on: the libav libraries linked into PyAV and the ffprobe
executable used by ffmpeg-python for source probing.
"""
import subprocess

import av
from loguru import logger

from ..config.common import FFPROBE_DIR
from ..domain.source_video import ffprobe_command


class Toolchain:
    """
    Startup checks for external media tooling.

    The ffprobe location comes from `paths.ffprobe_dir` in the user config,
    falling back to the system PATH.
    """

    @staticmethod
    def log_libav_versions():
        """Logs the libav library versions PyAV was built against."""
        versions = ", ".join(
            f"{name} {'.'.join(str(part) for part in version)}"
            for name, version in sorted(av.library_versions.items())
        )
        logger.info(f"PyAV {av.__version__} linked against: {versions}")

    @staticmethod
    def verify_ffprobe() -> bool:
        """
        Runs `ffprobe -version` and logs the first line of its output.

        Returns:
            True when ffprobe ran successfully, False otherwise.
        """
        if FFPROBE_DIR and ffprobe_command() == "ffprobe":
            logger.warning(f"`ffprobe_dir` is set to '{FFPROBE_DIR}', but no ffprobe was found there. Falling back to system PATH.")
        ffprobe_cmd = ffprobe_command()
        try:
            result = subprocess.run(
                [ffprobe_cmd, "-version"],
                check=True,
                capture_output=True,
                text=True,
                encoding="utf-8",
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"ffprobe version command failed (return code {e.returncode}):\n{e.stderr}")
            return False
        except FileNotFoundError:
            logger.error(
                "ffprobe command not found. Please ensure FFmpeg is installed and accessible.\n"
                "You can either add it to your system's PATH or set `paths.ffprobe_dir` in 'mediapress.user.yaml'."
            )
            return False

        first_line = result.stdout.splitlines()[0] if result.stdout else "(no output)"
        logger.info(f"ffprobe version check successful: {first_line}")
        return True

    @staticmethod
    def verify() -> bool:
        """Runs every startup check. Returns False if a required tool is missing."""
        Toolchain.log_libav_versions()
        return Toolchain.verify_ffprobe()
