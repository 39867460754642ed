"""Logging utilities for statemika clients.

Provides the logger sink protocol the clients write to, plus a color-coded
console implementation so request, response and failure lines are easy to
tell apart in a terminal.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class Color(Enum):
    """ANSI color codes for terminal output."""

    BLUE = "\033[94m"      # Debug detail (payload previews, cache hits)
    YELLOW = "\033[93m"    # Warnings
    RED = "\033[91m"       # Errors and fallbacks
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


# Markers for line types (color-blind accessible)
LOG_TAG_DEBUG = "[•]"
LOG_TAG_WARN = "[?]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[✓]"
LOG_TAG_INFO = "[i]"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if STATEMIKA_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("STATEMIKA_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def truncate_preview(value: Any, *, limit: int = 500) -> str:
    """Return a compact single-string preview of a (possibly large) body."""

    if value is None:
        return "[no data]"
    text = value if isinstance(value, str) else repr(value)
    if len(text) > limit:
        return text[:limit] + f"... ({len(text)} chars)"
    return text


@runtime_checkable
class LoggerSink(Protocol):
    """Anything that accepts the four log levels the clients emit."""

    def info(self, message: str) -> None: ...

    def debug(self, message: str) -> None: ...

    def warn(self, message: str) -> None: ...

    def error(self, message: str | BaseException) -> None: ...


class ConsoleLogger:
    """Default sink: prefixed, color-coded lines on stdout.

    Debug lines are suppressed unless ``debug_enabled`` is set or the
    STATEMIKA_DEBUG environment variable is present.
    """

    def __init__(self, prefix: str = "LifeSimulator", debug_enabled: bool | None = None):
        self.prefix = prefix
        if debug_enabled is None:
            debug_enabled = bool(os.getenv("STATEMIKA_DEBUG"))
        self.debug_enabled = debug_enabled

    def _emit(self, tag: str, message: str, color: Color) -> None:
        print(colored(f"{tag} [{self.prefix}] {message}", color))

    def info(self, message: str) -> None:
        self._emit(LOG_TAG_INFO, message, Color.CYAN)

    def debug(self, message: str) -> None:
        if self.debug_enabled:
            self._emit(LOG_TAG_DEBUG, message, Color.BLUE)

    def warn(self, message: str) -> None:
        self._emit(LOG_TAG_WARN, message, Color.YELLOW)

    def error(self, message: str | BaseException) -> None:
        text = str(message) if isinstance(message, BaseException) else message
        self._emit(LOG_TAG_ERROR, text, Color.RED)

    def success(self, message: str) -> None:
        self._emit(LOG_TAG_SUCCESS, message, Color.GREEN)


class NullLogger:
    """Sink that drops everything (handy for tests and batch jobs)."""

    def info(self, message: str) -> None:
        pass

    def debug(self, message: str) -> None:
        pass

    def warn(self, message: str) -> None:
        pass

    def error(self, message: str | BaseException) -> None:
        pass


__all__ = [
    "Color",
    "colored",
    "truncate_preview",
    "LoggerSink",
    "ConsoleLogger",
    "NullLogger",
    "LOG_TAG_DEBUG",
    "LOG_TAG_WARN",
    "LOG_TAG_ERROR",
    "LOG_TAG_SUCCESS",
    "LOG_TAG_INFO",
]
