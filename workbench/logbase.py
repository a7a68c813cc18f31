"""Log levels, record formatting and a logger that writes to the console."""

from __future__ import annotations

import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any, Optional, TextIO, Union

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogLevel(IntEnum):
    """Severity of a record; a logger emits records at or above its level."""

    UNKNOWN = 0
    INFO = 10
    DEBUG = 20
    ERROR = 30
    WARNING = 40
    FATAL = 50

    @property
    def label(self) -> str:
        return "" if self is LogLevel.UNKNOWN else self.name


_LEVEL_NAMES = {
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "error": LogLevel.ERROR,
    "warn": LogLevel.WARNING,
    "fatal": LogLevel.FATAL,
}


def parse_log_level(value: Any) -> LogLevel:
    """Return the level named by ``value`` (case-insensitive) or ``value`` itself if it is a level."""
    if isinstance(value, LogLevel):
        return value
    if isinstance(value, str):
        level = _LEVEL_NAMES.get(value.lower())
        if level is not None:
            return level
    raise ValueError(f"invalid log level: {value!r}")


def _timestamp_text(timestamp: Union[datetime, str]) -> str:
    if isinstance(timestamp, datetime):
        return timestamp.strftime(TIMESTAMP_FORMAT)
    return timestamp


def _render(
    level: LogLevel,
    msg: str,
    timestamp: Union[datetime, str],
    func_name: str,
    file_name: str,
    lineno: int,
    with_file: bool,
) -> str:
    head = f"[{_timestamp_text(timestamp)}]-[{level.label}]"
    if with_file:
        return f"{head} [fileName:{file_name}]-[funcName:{func_name}]-[lineno:{lineno}]: {msg}"
    return f"{head} [funcName:{func_name}]-[lineno:{lineno}]: {msg}"


def format_record(
    level: LogLevel,
    msg: str,
    timestamp: Union[datetime, str],
    func_name: str,
    file_name: str,
    lineno: int,
) -> str:
    """Format one log line; records at ERROR and above also name the source file."""
    return _render(level, msg, timestamp, func_name, file_name, lineno, level >= LogLevel.ERROR)


def _caller_info(skip: int) -> tuple[str, str, int]:
    """Return function name, file base name and line of a frame up the stack.

    ``skip`` 0 names the function that calls this one.
    """
    try:
        frame = sys._getframe(skip + 1)
    except ValueError:
        return "???", "???", 0
    return frame.f_code.co_name, os.path.basename(frame.f_code.co_filename), frame.f_lineno


class ConsoleLogger:
    """Writes records at or above its level to a text stream, standard output by default."""

    def __init__(self, level: Any, stream: Optional[TextIO] = None) -> None:
        self.level = parse_log_level(level)
        self._stream = stream

    def info(self, msg: str) -> None:
        self._emit(LogLevel.INFO, msg)

    def debug(self, msg: str) -> None:
        self._emit(LogLevel.DEBUG, msg)

    def error(self, msg: str) -> None:
        self._emit(LogLevel.ERROR, msg)

    def warning(self, msg: str) -> None:
        self._emit(LogLevel.WARNING, msg)

    def fatal(self, msg: str) -> None:
        self._emit(LogLevel.FATAL, msg)

    def _emit(self, level: LogLevel, msg: str) -> None:
        if level < self.level:
            return
        func_name, file_name, lineno = _caller_info(2)
        line = format_record(level, msg, datetime.now(), func_name, file_name, lineno)
        print(line, file=self._stream if self._stream is not None else sys.stdout)