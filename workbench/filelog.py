"""Loggers writing to a log file and a separate error file, with size-based rotation."""

from __future__ import annotations

import os
import queue
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, TextIO

from workbench.logbase import (
    TIMESTAMP_FORMAT,
    LogLevel,
    _caller_info,
    _render,
    format_record,
    parse_log_level,
)

QUEUE_SIZE = 50000
_POLL_INTERVAL = 0.5
_STOP = object()


def _open_log(path: str) -> TextIO:
    return open(path, "a", encoding="utf-8")


def _rotate(handle: TextIO, path: str, max_size: int) -> TextIO:
    """Move the file aside as ``<path>.bak<stamp>`` once it reaches ``max_size`` bytes."""
    handle.flush()
    if os.fstat(handle.fileno()).st_size < max_size:
        return handle
    stamp = datetime.now().strftime("%Y%m%d%H%M%S") + "000"
    handle.close()
    os.replace(path, f"{path}.bak{stamp}")
    return _open_log(path)


def _open_pair(path: str) -> tuple[TextIO, TextIO]:
    main = _open_log(path)
    try:
        err = _open_log(path + ".err")
    except OSError:
        main.close()
        raise
    return main, err


class FileLogger:
    """Writes records to ``<directory>/<filename>``; ERROR and above go to ``<filename>.err``."""

    def __init__(self, level: Any, directory: str, filename: str, max_size: int) -> None:
        self.level = parse_log_level(level)
        self.path = os.path.join(directory, filename)
        self.max_size = max_size
        self._lock = threading.Lock()
        self._file, self._err_file = _open_pair(self.path)

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

    def close(self) -> None:
        with self._lock:
            self._file.close()
            self._err_file.close()

    def __enter__(self) -> "FileLogger":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _emit(self, level: LogLevel, msg: str) -> None:
        if level < self.level:
            return
        func_name, file_name, lineno = _caller_info(2)
        line = format_record(level, msg, datetime.now(), func_name, file_name, lineno)
        with self._lock:
            self._file = _rotate(self._file, self.path, self.max_size)
            target = self._file
            if level >= LogLevel.ERROR:
                self._err_file = _rotate(self._err_file, self.path + ".err", self.max_size)
                target = self._err_file
            print(line, file=target)
            target.flush()


@dataclass(frozen=True)
class _Record:
    level: LogLevel
    msg: str
    func_name: str
    file_name: str
    timestamp: str
    lineno: int


class AsyncFileLogger:
    """Queues records and writes them from a background thread.

    Every record goes to the log file; ERROR and above are also written,
    with the source file name, to ``<filename>.err``.  Records are dropped
    when the queue is full.
    """

    def __init__(self, level: Any, directory: str, filename: str, max_size: int) -> None:
        self.level = parse_log_level(level)
        self.path = os.path.join(directory, filename)
        self.max_size = max_size
        self._file, self._err_file = _open_pair(self.path)
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=QUEUE_SIZE)
        self._closed = False
        self._writer = threading.Thread(target=self._write_loop, daemon=True)
        self._writer.start()

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

    def flush(self) -> None:
        """Block until every queued record has been written."""
        self._queue.join()

    def close(self) -> None:
        """Write what is queued, stop the writer thread and close the files."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(_STOP)
        self._writer.join()
        self._file.close()
        self._err_file.close()

    def __enter__(self) -> "AsyncFileLogger":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _emit(self, level: LogLevel, msg: str) -> None:
        if self._closed:
            raise ValueError("logger is closed")
        func_name, file_name, lineno = _caller_info(2)
        if level < self.level:
            return
        record = _Record(
            level=level,
            msg=msg,
            func_name=func_name,
            file_name=file_name,
            timestamp=datetime.now().strftime(TIMESTAMP_FORMAT),
            lineno=lineno,
        )
        try:
            self._queue.put_nowait(record)
        except queue.Full:
            pass  # dropped rather than blocking the caller

    def _write(self, record: _Record) -> None:
        print(
            _render(record.level, record.msg, record.timestamp, record.func_name,
                    record.file_name, record.lineno, with_file=False),
            file=self._file,
        )
        self._file.flush()
        if record.level >= LogLevel.ERROR:
            self._err_file = _rotate(self._err_file, self.path + ".err", self.max_size)
            print(
                _render(record.level, record.msg, record.timestamp, record.func_name,
                        record.file_name, record.lineno, with_file=True),
                file=self._err_file,
            )
            self._err_file.flush()

    def _write_loop(self) -> None:
        while True:
            try:
                self._file = _rotate(self._file, self.path, self.max_size)
            except OSError as exc:
                print(f"rotating log file failed: {exc}", file=sys.stderr)
            try:
                item: Optional[object] = self._queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            try:
                if item is _STOP:
                    return
                assert isinstance(item, _Record)
                self._write(item)
            except OSError as exc:
                print(f"writing log record failed: {exc}", file=sys.stderr)
            finally:
                self._queue.task_done()