"""
This module contains helper functions for formatting data into human-readable strings
and for the small path conventions the catalog relies on.
"""

import math
from pathlib import Path, PurePath
from typing import Iterable


def format_time(seconds: float) -> str:
    """
    Formats a playback position as "m:ss", or "h:mm:ss" from one hour up.

    Args:
        seconds: The position in seconds.

    Returns:
        The formatted position, e.g. 75 becomes "1:15" and 3725 becomes "1:02:05".
        Negative, infinite or NaN input formats as "0:00".
    """
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        return "0:00"

    total_seconds = int(seconds)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02}:{secs:02}"
    return f"{minutes}:{secs:02}"


def formatted_size(size_bytes: int) -> str:
    """
    Converts a size in bytes to a human-readable string (e.g., B, KB, MB, GB, TB).

    Args:
        size_bytes: The size of the file in bytes.

    Returns:
        A formatted string with the appropriate unit.
        For example, 1536 becomes "1.50 KB", and 2097152 becomes "2 MB".
    """
    if size_bytes < 0:
        size_bytes = 0

    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    factor = 1024.0

    if size_bytes == 0:
        return "0 B"

    for unit in units:
        if size_bytes < factor:
            if unit == "B":
                return f"{size_bytes} {unit}"
            return f"{size_bytes:.2f} {unit}".replace(".00", "")
        size_bytes /= factor

    return f"{size_bytes:.2f} {units[-1]}".replace(".00", "")


def normalize_extensions(extensions: Iterable[str]) -> frozenset:
    """Lower-cases extensions and makes sure each has a leading dot."""
    return frozenset(
        ext.lower() if ext.startswith(".") else f".{ext.lower()}"
        for ext in extensions
        if ext
    )


def contains_any_extensions(file_path_obj: PurePath, extensions_to_check: Iterable[str]) -> bool:
    """
    Checks if a file's extension is present in a given collection (case-insensitive).

    Args:
        file_path_obj: A path object for the file to check.
        extensions_to_check: File extensions, with or without the leading dot.

    Returns:
        True if the file's extension is in the collection, False otherwise.
        Files without an extension never match.
    """
    file_extension = file_path_obj.suffix.lower()
    if not file_extension:
        return False
    return file_extension in normalize_extensions(extensions_to_check)


def to_relative_key(path: Path, root: Path) -> str:
    """
    Returns `path` relative to `root`, forward-slash separated.

    This string identifies a media item within a session and is what the
    progress file stores, so it must not depend on the host's path separator.
    """
    return path.relative_to(root).as_posix()
