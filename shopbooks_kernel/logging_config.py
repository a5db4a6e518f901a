"""
Structured JSON logging for the shopbooks packages.

Every record under the ``shopbooks`` logger leaves as one JSON object per
line.  A record holds:

- ``ts`` (UTC ISO-8601), ``level``, ``logger`` and ``message``.
- Any request-scoped fields bound through ``LogContext`` (correlation id,
  actor, order being costed, storage key of the books).
- The ``extra={...}`` fields passed at the call site.
- ``exc_*`` fields when ``exc_info`` is set.  For shopbooks exceptions
  these include the error ``code`` and every public attribute of the
  exception.

Messages are event names (``purchase_recorded``, ``sale_consumed``); the
numbers travel in ``extra``.  Decimals are written as strings so no
rounding happens on the way out.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, TextIO

ROOT_LOGGER = "shopbooks"

CONTEXT_FIELDS = ("correlation_id", "actor_id", "order_id", "storage_key")

# Treated as immutable: every change installs a new dict.
_context: ContextVar[dict[str, str]] = ContextVar("shopbooks_log_context", default={})


class LogContext:
    """
    Request-scoped log fields.

    Backed by a ContextVar, so values are private to the current thread or
    asyncio task.  ``None`` values are skipped everywhere: passing
    ``order_id=None`` leaves the current order id alone.
    """

    @staticmethod
    def _present(fields: dict[str, str | None]) -> dict[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"unknown log context field(s): {sorted(unknown)}")
        return {k: v for k, v in fields.items() if v is not None}

    @classmethod
    def set(cls, **fields: str | None) -> None:
        _context.set({**_context.get(), **cls._present(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Add fields for the duration of a ``with`` block, then restore."""
        token = _context.set({**_context.get(), **cls._present(fields)})
        try:
            yield cls
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    # Decimal, UUID, Path, ...
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RESERVED and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_json_default)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        fields.update(
            (f"exc_{name}", value) for name, value in vars(exc).items()
            if not name.startswith("_")
        )
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``shopbooks.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_setup_lock = threading.Lock()
_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install one JSON handler on the ``shopbooks`` logger.

    ``level`` may be a number or a level name as written in the books
    configuration (``"DEBUG"``, ``"info"``).  Later calls change nothing and
    return the handler installed by the first one.  The logger stops
    propagating so host applications do not print every line twice.
    """
    global _installed
    with _setup_lock:
        if _installed is not None:
            return _installed
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        logger = logging.getLogger(ROOT_LOGGER)
        logger.setLevel(level.upper() if isinstance(level, str) else level)
        logger.propagate = False
        logger.addHandler(target)
        _installed = target
        return target


def reset_logging() -> None:
    """Undo ``configure_logging``.  Used by the test suite."""
    global _installed
    with _setup_lock:
        logger = logging.getLogger(ROOT_LOGGER)
        if _installed is not None:
            logger.removeHandler(_installed)
            _installed = None
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
