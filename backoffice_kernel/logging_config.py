"""
Structured JSON logging for the back-office kernel.

Every record is one JSON object carrying the message (an event name such
as ``lifecycle_action_committed``), the logger, the level, the fields
bound in ``LogContext`` and whatever was passed as ``extra``.  Decimal
amounts, dates, UUIDs and enums are rendered as strings.

Usage::

    logger = get_logger("services.lifecycle")
    with LogContext.bind(entity_id=str(entity.id), action="enroll"):
        logger.info("lifecycle_action_committed", extra={"version": 2})
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
from collections.abc import Mapping
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_EMPTY: Mapping[str, str] = MappingProxyType({})

_log_fields: ContextVar[Mapping[str, str]] = ContextVar("backoffice_log_fields", default=_EMPTY)


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    The bound fields live in one immutable mapping held by a ContextVar;
    every change installs a new mapping, so worker threads started with a
    copied context never see later changes made by the caller.
    """

    FIELDS = (
        "correlation_id",
        "event_id",
        "actor_id",
        "entity_id",
        "action",
        "trace_id",
    )

    @classmethod
    def _merged(cls, values: Mapping[str, Any]) -> dict[str, str]:
        merged = dict(_log_fields.get())
        for key, value in values.items():
            if key in cls.FIELDS and value is not None:
                merged[key] = str(value)
        return merged

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        event_id: str | None = None,
        actor_id: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        trace_id: str | None = None,
    ) -> None:
        """Set the given fields; None leaves a field unchanged."""
        _log_fields.set(MappingProxyType(cls._merged({
            "correlation_id": correlation_id,
            "event_id": event_id,
            "actor_id": actor_id,
            "entity_id": entity_id,
            "action": action,
            "trace_id": trace_id,
        })))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_log_fields.get())

    @classmethod
    def clear(cls) -> None:
        _log_fields.set(_EMPTY)

    @classmethod
    def bind(cls, **fields: str | None) -> "_BoundFields":
        """Bind fields for the duration of a ``with`` block.

        Unknown names and None values are ignored.  On exit the fields in
        effect before the block are restored.
        """
        return _BoundFields(fields)


class _BoundFields:
    def __init__(self, fields: Mapping[str, str | None]):
        self._fields = fields
        self._token: Token | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _log_fields.set(MappingProxyType(LogContext._merged(self._fields)))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _log_fields.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# JSON formatting
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_to_json)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # BackofficeError subclasses keep their context as attributes.
        for key, value in vars(exc).items():
            if not key.startswith("_") and key not in ("args", "code"):
                fields[f"exc_{key}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Loggers and setup
# ---------------------------------------------------------------------------

ROOT_LOGGER = "backoffice_kernel"

_setup_lock = threading.Lock()
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Logger ``backoffice_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``backoffice_kernel`` logger.

    Only the first call has an effect until ``reset_logging()``.  Records
    do not propagate to the root logger.
    """
    global _configured
    with _setup_lock:
        if _configured:
            return
        _configured = True

        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(level)
        root.propagate = False
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        root.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and forget the configuration.  For tests."""
    global _configured
    with _setup_lock:
        _configured = False
        root = logging.getLogger(ROOT_LOGGER)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
