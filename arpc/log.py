"""Levelled logging with a swappable process-wide default logger."""

from __future__ import annotations

import sys
from datetime import datetime
from enum import IntEnum
from typing import IO, Optional

TIME_FORMAT = "%Y/%m/%d %H:%M:%S"

_LOGGER_METHODS = ("set_level", "debug", "info", "warn", "error")


class Level(IntEnum):
    """Logging priorities, from most to least verbose."""

    ALL = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4
    NONE = 5


def _validate(level: int) -> Level:
    try:
        return Level(level)
    except ValueError:
        raise ValueError(f"invalid log level: {level}") from None


class Logger:
    """Writes timestamped, tagged lines to a stream when the level allows."""

    def __init__(self, level: int = Level.INFO, output: Optional[IO[str]] = None):
        self.level = _validate(level)
        self.output = output

    def set_level(self, level: int) -> None:
        """Change the minimum priority that gets written."""
        self.level = _validate(level)

    def _write(self, level: Level, tag: str, fmt: str, args: tuple) -> None:
        if level < self.level:
            return
        now = datetime.now()
        stamp = f"{now.strftime(TIME_FORMAT)}.{now.microsecond // 1000:03d}"
        text = fmt % args if args else fmt
        stream = self.output if self.output is not None else sys.stdout
        stream.write(f"{stamp} [{tag}] {text}\n")

    def debug(self, fmt: str, *args) -> None:
        self._write(Level.DEBUG, "DBG", fmt, args)

    def info(self, fmt: str, *args) -> None:
        self._write(Level.INFO, "INF", fmt, args)

    def warn(self, fmt: str, *args) -> None:
        self._write(Level.WARN, "WRN", fmt, args)

    def error(self, fmt: str, *args) -> None:
        self._write(Level.ERROR, "ERR", fmt, args)


_default_logger: Optional[Logger] = Logger(Level.INFO)


def set_logger(logger: Optional[Logger]) -> Optional[Logger]:
    """Install the default logger and return the one it replaces.

    Passing None disables logging; anything else must offer the logger methods.
    """
    global _default_logger
    if logger is not None:
        missing = [name for name in _LOGGER_METHODS
                   if not callable(getattr(logger, name, None))]
        if missing:
            raise TypeError(f"logger lacks methods: {', '.join(missing)}")
    previous = _default_logger
    _default_logger = logger
    return previous


def set_level(level: int) -> None:
    """Set the default logger's priority."""
    _validate(level)
    if _default_logger is not None:
        _default_logger.set_level(level)


def debug(fmt: str, *args) -> None:
    if _default_logger is not None:
        _default_logger.debug(fmt, *args)


def info(fmt: str, *args) -> None:
    if _default_logger is not None:
        _default_logger.info(fmt, *args)


def warn(fmt: str, *args) -> None:
    if _default_logger is not None:
        _default_logger.warn(fmt, *args)


def error(fmt: str, *args) -> None:
    if _default_logger is not None:
        _default_logger.error(fmt, *args)