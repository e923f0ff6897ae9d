"""
Local display output.

The display is the only channel that carries the device password. Real
hardware provides its own DisplaySink; LoggingDisplay stands in on headless
hosts and renders everything to the log.
"""

import logging
import textwrap
from abc import ABC, abstractmethod
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_WRAP_WIDTH = 24


def wrap_text(text: str, width=DEFAULT_WRAP_WIDTH) -> List[str]:
    """
    Soft-wrap text into display lines.

    Explicit newlines are kept, long words are broken, nothing is dropped.
    """
    if width <= 0:
        raise ValueError(f"width must be positive, got {width}")

    lines = []
    for paragraph in text.split("\n"):
        wrapped = textwrap.wrap(paragraph, width=width, break_long_words=True,
                                replace_whitespace=False, drop_whitespace=True)
        lines.extend(wrapped or [""])
    return lines


class DisplaySink(ABC):
    @abstractmethod
    def show_status(self, label: str):
        """Show the current status label."""

    @abstractmethod
    def show_text(self, lines: List[str]):
        """Show the wrapped display text."""

    @abstractmethod
    def show_password(self, password: str, url: str):
        """Show the device password and its QR code URL."""

    def refresh(self):
        """Redraw pending changes. Called between listen cycles."""


class LoggingDisplay(DisplaySink):
    """Renders display updates to the log, deduplicating repeated output."""

    def __init__(self, name="display"):
        self.name = name
        self.status = None
        self.lines = []
        self._dirty = False

    def show_status(self, label):
        if label != self.status:
            self.status = label
            self._dirty = True

    def show_text(self, lines):
        if list(lines) != self.lines:
            self.lines = list(lines)
            self._dirty = True

    def show_password(self, password, url):
        logger.info(f"{self} password: {password}")
        logger.info(f"{self} scan to update: {url}")

    def refresh(self):
        if not self._dirty:
            return
        self._dirty = False
        logger.info(f"{self} [{self.status}]")
        for line in self.lines:
            logger.info(f"{self} | {line}")

    def __str__(self):
        return f"LoggingDisplay[{self.name}]"
