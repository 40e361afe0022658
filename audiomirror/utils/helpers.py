"""
Utility helper functions for audiomirror
Formatting, path/key manipulation and small statistics helpers
"""

import math
import os
import threading
from pathlib import Path
from typing import Optional, Union


def format_duration(seconds: Union[int, float]) -> str:
    """
    Format duration in seconds to human-readable string

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 0:
        return "0:00"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    else:
        return f"{minutes}:{secs:02d}"


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable string

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string
    """
    if size_bytes < 0:
        return "0 B"

    units = ['B', 'KB', 'MB', 'GB', 'TB']
    size = float(size_bytes)
    unit_index = 0

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    else:
        return f"{size:.1f} {units[unit_index]}"


def format_elapsed(seconds: float) -> str:
    """Format a short elapsed time, e.g. 250ms, 1.50s, 2m03s"""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m{secs:02d}s"


def join_key(parent: str, name: str) -> str:
    """Join a library key and a child name ("" is the root key)"""
    return f"{parent}/{name}" if parent else name


def key_to_path(root: Union[str, Path], key: str) -> str:
    """
    Convert a library key to an absolute filesystem path

    Args:
        root: Library root directory
        key: "/"-separated key relative to root

    Returns:
        Absolute path string
    """
    if not key:
        return str(root)
    return os.path.join(str(root), *key.split("/"))


def replace_extension(key: str, extension: str) -> str:
    """
    Replace the extension of the last path component of a key

    Only the last "." of the basename counts. Names without an extension
    (including dot-files such as ".hidden") get the extension appended.

    Args:
        key: Library key or filename
        extension: New extension including the leading dot

    Returns:
        Key with the new extension

    Example:
        >>> replace_extension("a/b.c.flac", ".mp3")
        'a/b.c.mp3'
        >>> replace_extension("a/README", ".mp3")
        'a/README.mp3'
    """
    head, sep, name = key.rpartition("/")
    stem, _ = os.path.splitext(name)
    return f"{head}{sep}{stem}{extension}"


def strip_prefix(path: str, prefixes) -> str:
    """
    Remove the first matching prefix from a path for display

    Args:
        path: Path to shorten
        prefixes: Iterable of prefixes to try in order

    Returns:
        Shortened path, or the path unchanged when nothing matches
    """
    for prefix in prefixes:
        if prefix and path.startswith(prefix):
            return path[len(prefix):].lstrip(os.sep) or "."
    return path


class RunningStat:
    """
    Running mean and standard deviation (Welford's algorithm)

    Thread-safe; used to time gateway calls made from worker threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.n = 0
        self._mean = 0.0
        self._m2 = 0.0

    def add(self, value: float) -> None:
        with self._lock:
            self.n += 1
            delta = value - self._mean
            self._mean += delta / self.n
            self._m2 += delta * (value - self._mean)

    @property
    def mean(self) -> float:
        return self._mean

    @property
    def std(self) -> float:
        if self.n < 2:
            return 0.0
        return math.sqrt(self._m2 / (self.n - 1))

    def summary(self) -> str:
        """Render as "μ=..., σ=..., n=..." """
        return f"μ={format_elapsed(self.mean)}, σ={format_elapsed(self.std)}, n={self.n}"


def parse_bitrate(value: Union[str, int]) -> Optional[int]:
    """
    Parse a bitrate such as "96k", "128K", "192000" or 160 into Kbps

    Args:
        value: Bitrate string or integer

    Returns:
        Bitrate in Kbps, or None if the value cannot be parsed
    """
    if isinstance(value, int):
        return value if value < 10000 else value // 1000
    text = str(value).strip().lower()
    try:
        if text.endswith("k"):
            return int(float(text[:-1]))
        number = int(text)
    except ValueError:
        return None
    return number if number < 10000 else number // 1000
