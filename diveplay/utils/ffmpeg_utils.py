"""
This module provides helpers for running FFmpeg as a child process and for
turning its machine-readable `-progress` output into a percentage.
"""

import os
import re
import shlex
import subprocess
import threading
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger

_PROGRESS_KV = re.compile(r"^([a-zA-Z0-9_]+)=(.*)$")
_OUT_TIME = re.compile(r"^(\d+):(\d+):(\d+(?:\.\d+)?)$")

ProgressCallback = Callable[[int], None]


def display_cmd(cmd_list: List[str]) -> str:
    """Quotes a command list for logging, using the platform's conventions."""
    if os.name == "nt":
        return subprocess.list2cmdline(cmd_list)
    return shlex.join(cmd_list)


def parse_out_time(key: str, value: str) -> Optional[float]:
    """
    Converts one `-progress` key/value pair to seconds of output written.

    FFmpeg reports `out_time_ms` in microseconds despite the name, so both
    `out_time_ms` and `out_time_us` are divided by one million.

    Returns:
        Seconds, or None when the pair is not an output-time field or is "N/A".
    """
    value = value.strip()
    if key in ("out_time_us", "out_time_ms"):
        try:
            return max(0.0, int(value) / 1_000_000)
        except ValueError:
            return None
    if key == "out_time":
        match = _OUT_TIME.match(value)
        if match:
            hours, minutes, seconds = match.groups()
            return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    return None


def progress_percent(out_seconds: float, duration: float) -> int:
    """Percent of `duration` written so far, capped at 99 until FFmpeg finishes."""
    if duration <= 0:
        return 0
    return int(min(99, max(0, round(out_seconds * 100 / duration))))


def run_ffmpeg_with_progress(
    cmd_list: List[str],
    duration: float,
    on_progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
    stderr_log_path: Optional[Path] = None,
) -> int:
    """
    Runs an FFmpeg command that writes `-progress pipe:1` to stdout.

    Args:
        cmd_list: The full command, already including the `-progress pipe:1` flags.
        duration: Input duration in seconds, used to compute percentages.
        on_progress: Called with monotonically non-decreasing percentages (0-99).
        cancel_event: When set, the child process is terminated and the function
                      returns its (non-zero) return code.
        stderr_log_path: File receiving FFmpeg's stderr. Discarded when None.

    Returns:
        The process return code.
    """
    logger.debug(f"Executing: {display_cmd(cmd_list)}")

    last_percent = -1
    stderr_target = stderr_log_path.open("w", encoding="utf-8") if stderr_log_path else subprocess.DEVNULL
    try:
        proc = subprocess.Popen(
            cmd_list,
            stdout=subprocess.PIPE,
            stderr=stderr_target,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    logger.debug("FFmpeg run cancelled, terminating child process.")
                    proc.terminate()
                    break

                line = proc.stdout.readline() if proc.stdout else ""
                if line == "":
                    # EOF; wait() below collects the exit code.
                    break

                match = _PROGRESS_KV.match(line.strip())
                if not match:
                    continue
                out_seconds = parse_out_time(match.group(1), match.group(2))
                if out_seconds is None or on_progress is None:
                    continue
                percent = progress_percent(out_seconds, duration)
                if percent > last_percent:
                    last_percent = percent
                    on_progress(percent)
            return proc.wait()
        finally:
            if proc.stdout:
                proc.stdout.close()
            if proc.poll() is None:
                proc.kill()
                proc.wait()
    finally:
        if stderr_log_path:
            stderr_target.close()


def read_tail(path: Path, max_chars: int = 2000) -> str:
    """Returns the last `max_chars` characters of a text file, or "" if unreadable."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")[-max_chars:]
    except OSError:
        return ""
