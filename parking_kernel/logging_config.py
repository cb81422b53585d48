"""
One JSON object per log line for everything under ``parking_kernel``.

Services put the ids of the aggregate they are working on (operator,
session, shift) into ``LogContext`` for the duration of an operation, and
every line logged meanwhile carries them.  Money goes out as strings so
that amounts survive a round trip through a log pipeline unchanged.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import IO, Any
from uuid import UUID

ROOT_LOGGER = "parking_kernel"

_CONTEXT: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"parking_log_{name}", default=None)
    for name in ("operator_id", "session_id", "shift_id")
}


class LogContext:
    """Per-task ids copied onto every record; unknown names are ignored."""

    @staticmethod
    def set(**fields: Any) -> None:
        for name, value in fields.items():
            if value is not None and name in _CONTEXT:
                _CONTEXT[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _CONTEXT.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set ``fields`` for the block, then put the previous values back."""
        tokens = [
            (_CONTEXT[name], _CONTEXT[name].set(str(value)))
            for name, value in fields.items()
            if value is not None and name in _CONTEXT
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    # ParkingKernelError subclasses keep their details as public attributes
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name != "code" and not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                line.setdefault(name, value)
        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)
        return json.dumps(line, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.debt")`` -> ``parking_kernel.services.debt``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: IO[str] | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``parking_kernel`` logger.

    Only the first call has an effect, so library code (``init_engine``)
    can call it without clobbering what an application set up earlier.
    """
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())
        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Drop all handlers and return the logger to its defaults (tests)."""
    global _handler
    with _setup_lock:
        _handler = None
        root = logging.getLogger(ROOT_LOGGER)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
        root.propagate = True
