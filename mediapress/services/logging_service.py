"""
File logs kept next to the compressed output.

Console logging goes through loguru. In addition, dropped items are appended to
a human-readable text log (`ErrorLog`) and every finished task is recorded in a
YAML report (`TaskReportLog`), so a batch can be audited after the fact.
"""
import threading
from pathlib import Path
from typing import List, Dict, Union

import yaml
from loguru import logger

from ..config.common import ERROR_LOG_FILE_NAME, TASK_REPORT_FILE_NAME


class Log:
    """
    Base class for file logs.

    Resolves the log directory from a base path and makes sure it exists.
    """

    linesep_marker: str = "=" * 50

    def __init__(self, log_base_path: Path):
        self.log_file_path: Path
        if log_base_path.suffix:
            self.log_dir: Path = log_base_path.parent.resolve()
        else:
            self.log_dir = log_base_path.resolve()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def write(self, log_content: Union[dict, list, str]):
        raise NotImplementedError("Subclasses must implement the write() method.")


class ErrorLog(Log):
    """Appends plain-text error records separated by a marker line."""

    def __init__(self, error_log_dir: Path, filename: str = ERROR_LOG_FILE_NAME):
        super().__init__(error_log_dir)
        self.log_file_path = self.log_dir / filename

    def write(self, *error_messages: str):
        if not error_messages:
            return

        content_to_write = "\n".join(error_messages) + "\n" + self.linesep_marker + "\n"
        try:
            with self._lock, self.log_file_path.open("a", encoding="utf-8") as f:
                f.write(content_to_write)
        except OSError as e:
            # Keep the message in the console log if the file cannot be written.
            logger.error(f"Failed to write to error log {self.log_file_path}: {e}")
            for msg in error_messages:
                logger.error(f"  - {msg}")


class TaskReportLog(Log):
    """
    Keeps a YAML list of finished task reports.

    Each `write()` reads the existing list, appends the new entry and rewrites
    the file, so the report is always a valid YAML document.
    """

    def __init__(self, report_dir: Path, filename: str = TASK_REPORT_FILE_NAME):
        super().__init__(report_dir)
        self.log_file_path = self.log_dir / filename

    def read(self) -> List[Dict]:
        if not self.log_file_path.is_file():
            return []
        try:
            with self.log_file_path.open("r", encoding="utf-8") as f:
                entries = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not read task report {self.log_file_path}: {e}. Starting a new one.")
            return []
        if not isinstance(entries, list):
            logger.warning(f"Task report {self.log_file_path} is not a list. Starting a new one.")
            return []
        return entries

    def write(self, new_log_entry: dict):
        if not isinstance(new_log_entry, dict):
            logger.error("TaskReportLog.write expects a dictionary as a log entry.")
            return

        with self._lock:
            entries = self.read()
            entries.append(new_log_entry)
            try:
                with self.log_file_path.open("w", encoding="utf-8") as f:
                    yaml.dump(entries, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            except OSError as e:
                logger.error(f"Failed to write task report {self.log_file_path}: {e}")
