"""
Structured JSON logging for the statement engine.

Every record under the ``statement_kernel`` logger hierarchy is written as
one JSON object per line:

    {"ts": ..., "level": ..., "logger": ..., "message": ...,
     <request scope from LogContext>, <extra={...} fields>, <exc_* fields>}

The request scope (facility, project, reporting period, statement code and
correlation/trace ids) is held in context variables, so the statement
service binds it once per ``generate`` call and every engine log emitted
underneath carries it.
"""

__all__ = [
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
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Request scope
# ---------------------------------------------------------------------------

_SCOPE_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "facility_id",
    "project_id",
    "reporting_period_id",
    "statement_code",
    "trace_id",
)

_SCOPE: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"statement_log_{name}", default=None) for name in _SCOPE_FIELDS
}


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    FIELDS = _SCOPE_FIELDS

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set scope fields; None values are skipped.

        Raises:
            TypeError: for a field outside ``LogContext.FIELDS``.
        """
        unknown = set(fields) - set(_SCOPE)
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
        for name, value in fields.items():
            if value is not None:
                _SCOPE[name].set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name in _SCOPE_FIELDS
            if (value := _SCOPE[name].get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _SCOPE.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_ScopeBinding":
        """Set fields for the duration of a ``with`` block.

        Values are stringified (UUIDs, enums).  Unknown names are ignored so
        callers can pass a request's attributes wholesale.
        """
        return _ScopeBinding(fields)


class _ScopeBinding:

    def __init__(self, fields: dict[str, Any]):
        self._fields = {
            name: value
            for name, value in fields.items()
            if name in _SCOPE and value is not None
        }
        self._tokens: list[tuple[ContextVar, Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            var = _SCOPE[name]
            self._tokens.append((var, var.set(_scalar(value))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def _scalar(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    """Statement payload types: ids, amounts, quarters, frozen mappings."""
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, MappingProxyType):
        return dict(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON line per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """``exc_type``/``exc_message`` plus the error's code and public attributes."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in ("args", "code"):
            fields[f"exc_{name}"] = value
    return fields


# ---------------------------------------------------------------------------
# Loggers
# ---------------------------------------------------------------------------

_ROOT = "statement_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger ``statement_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one structured handler to the ``statement_kernel`` root.

    Later calls are no-ops until ``reset_logging``.  Records do not
    propagate to the Python root logger.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    root.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and allow reconfiguration (tests only)."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
