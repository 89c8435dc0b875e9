"""JSON structured logger carrying the request's correlation id."""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from enum import IntEnum
from types import FrameType
from typing import Any, Iterator, Mapping, TextIO

from authorizer.ports import Logger

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


class Level(IntEnum):
    """Log levels, ordered by severity."""

    DEBUG = -4
    INFO = 0
    WARN = 4
    ERROR = 8


def current_correlation_id() -> str:
    """Return the correlation id of the current context, or an empty string."""
    return _correlation_id.get()


@contextmanager
def with_correlation_id(correlation_id: str) -> Iterator[str]:
    """Make ``correlation_id`` current for the duration of the block."""
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)


class StructuredLogger(Logger):
    """Writes one JSON object per log record, with the caller's source location."""

    def __init__(self, level: Level = Level.DEBUG, stream: TextIO | None = None) -> None:
        self.level = Level(level)
        self._stream = stream

    def info(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        self._log(Level.INFO, msg, fields)

    def error(
        self, msg: str, error: BaseException, fields: Mapping[str, Any] | None = None
    ) -> None:
        merged = dict(fields or {})
        merged["error"] = str(error)
        self._log(Level.ERROR, msg, merged)

    def warn(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        self._log(Level.WARN, msg, fields)

    def debug(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        self._log(Level.DEBUG, msg, fields)

    def _log(self, level: Level, msg: str, fields: Mapping[str, Any] | None) -> None:
        if level < self.level:
            return
        record: dict[str, Any] = {
            "time": datetime.now().astimezone().isoformat(timespec="milliseconds"),
            "level": level.name,
            "source": self._caller_source(sys._getframe(2)),
            "msg": msg,
        }
        attrs = dict(fields or {})
        correlation_id = current_correlation_id()
        if correlation_id:
            attrs["correlation_id"] = correlation_id
        record.update(attrs)
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")

    @staticmethod
    def _caller_source(frame: FrameType) -> dict[str, Any]:
        code = frame.f_code
        return {"function": code.co_name, "file": code.co_filename, "line": frame.f_lineno}