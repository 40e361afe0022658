"""
Action printer for sync policies

Policies report every action as one line ("cp: path", "encode: path", ...).
A Console is handed to each policy explicitly so that tests can capture
output and several runs in one process do not share printer state.
"""

import sys
import threading
from typing import Iterable, Optional

from colorama import Fore, Style
from tqdm import tqdm

from .helpers import strip_prefix
from .logger import get_logger

logger = get_logger(__name__)


class Console:
    """
    Serialized, optionally colored line printer

    Args:
        color: Emit ANSI colors
        strip_prefixes: Shorten paths by removing one of prefixes
        prefixes: Library roots to strip from displayed paths
        stream: Output stream, defaults to sys.stdout
    """

    def __init__(
        self,
        color: bool = True,
        strip_prefixes: bool = False,
        prefixes: Iterable[str] = (),
        stream=None
    ):
        self.color = color
        self.strip_prefixes = strip_prefixes
        # Longest first so nested roots are stripped completely
        self.prefixes = sorted((p for p in prefixes if p), key=len, reverse=True)
        self.stream = stream
        self._lock = threading.Lock()

    def _paint(self, text: str, color: Optional[str]) -> str:
        if self.color and color:
            return f"{color}{Style.BRIGHT}{text}{Style.RESET_ALL}"
        return text

    def _write(self, line: str) -> None:
        with self._lock:
            tqdm.write(line, file=self.stream or sys.stdout)

    def display_path(self, path: str) -> str:
        if self.strip_prefixes:
            return strip_prefix(path, self.prefixes)
        return path

    def action(self, label: str, path: str, color: Optional[str] = None) -> None:
        """Print "label path", e.g. "cp: /music/a.mp3" """
        shown = self.display_path(path)
        logger.debug(f"{label} {path}")
        self._write(f"{self._paint(label, color)} {shown}")

    def message(self, label: str, text: str, color: Optional[str] = None) -> None:
        """Print "label text" without path handling"""
        logger.debug(f"{label} {text}")
        self._write(f"{self._paint(label, color)} {text}")

    def output(self, text: str) -> None:
        """Print captured process output under an "output:" header"""
        body = text.rstrip("\n")
        logger.debug(f"output:\n{body}")
        self._write(f"{self._paint('output:', Fore.YELLOW)}\n{body}")


class Colors:
    """Label colors used by the policies"""
    OK = Fore.GREEN
    IGNORE = Fore.BLUE
    WARN = Fore.YELLOW
    ERROR = Fore.RED
    REMOVE = Fore.RED
    CREATE = Fore.CYAN
    COPY = Fore.CYAN
    ENCODE = Fore.MAGENTA
