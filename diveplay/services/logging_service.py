"""
This module provides the on-disk logs kept next to the console output.

`ErrorLog` appends human-readable records of media that could not be made
playable, so a user can see afterwards why a file played with its original
streams (or not at all). `TranscodeLog` keeps a machine-readable YAML list of
the transcodes that did succeed: which file, which streams were converted and
how long it took.

Both are optional; the codec pipeline only writes them when a log directory
was configured.
"""

from datetime import datetime
from pathlib import Path
from typing import Dict, List

import yaml
from loguru import logger

ERROR_LOG_FILE_NAME = "diveplay_errors.txt"
TRANSCODE_LOG_FILE_NAME = "diveplay_transcodes.yaml"


class Log:
    """
    Base class for the file logs: resolves and creates the log directory.
    """

    # Separator between records in text logs.
    linesep_marker: str = "=" * 50

    def __init__(self, log_base_path: Path):
        """
        Args:
            log_base_path: A directory to log into, or a file path whose parent
                           directory is used.
        """
        self.log_file_path: Path
        if log_base_path.is_dir() or not log_base_path.suffix:
            self.log_dir: Path = log_base_path.resolve()
        else:
            self.log_dir: Path = log_base_path.parent.resolve()
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def write(self, *args):
        raise NotImplementedError("Subclasses must implement the write() method.")


class ErrorLog(Log):
    """
    Appends error records to a plain text file.

    If the file cannot be written the messages go to the console logger instead,
    so nothing is lost silently.
    """

    def __init__(self, error_log_dir: Path, filename: str = ERROR_LOG_FILE_NAME):
        super().__init__(error_log_dir)
        self.log_file_path = self.log_dir / filename

    def write(self, *error_messages: str):
        if not error_messages:
            return

        timestamp = datetime.now().isoformat(timespec="seconds")
        content_to_write = (
            f"[{timestamp}]\n" + "\n".join(error_messages) + "\n" + self.linesep_marker + "\n"
        )
        try:
            with self.log_file_path.open("a", encoding="utf-8") as f:
                f.write(content_to_write)
        except OSError as e:
            logger.error(f"Failed to write to error log {self.log_file_path}: {e}")
            for msg in error_messages:
                logger.error(f"  - {msg}")


class TranscodeLog(Log):
    """
    Keeps a YAML list of successful transcodes.

    Each `write()` re-reads the file, appends the entry with the next index and
    writes the whole list back, so the file is always a valid YAML sequence.
    """

    def __init__(self, log_dir: Path, filename: str = TRANSCODE_LOG_FILE_NAME):
        super().__init__(log_dir)
        self.log_file_path = self.log_dir / filename

    def read_entries(self) -> List[Dict]:
        if not self.log_file_path.is_file():
            return []
        try:
            with self.log_file_path.open("r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error reading transcode log {self.log_file_path}: {e}. Starting a new log.")
            return []
        if loaded is None:
            return []
        if not isinstance(loaded, list):
            logger.warning(
                f"Transcode log {self.log_file_path} contained unexpected data. Starting a new log."
            )
            return []
        return loaded

    def write(self, entry: dict):
        if not isinstance(entry, dict):
            logger.error("TranscodeLog.write expects a dictionary as a log entry.")
            return

        entries = self.read_entries()
        last_index = max(
            (e.get("index", 0) for e in entries if isinstance(e, dict)), default=0
        )
        entry = {"index": last_index + 1, **entry}
        entries.append(entry)

        try:
            with self.log_file_path.open("w", encoding="utf-8") as f:
                yaml.dump(
                    entries,
                    f,
                    default_flow_style=False,
                    sort_keys=False,
                    allow_unicode=True,
                    indent=4,
                    width=220,
                )
        except OSError as e:
            logger.error(f"Failed to write to transcode log {self.log_file_path}: {e}")
