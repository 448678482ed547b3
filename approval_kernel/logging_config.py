"""
approval_kernel.logging_config -- One JSON object per log line.

Every logger lives under the ``approval_kernel`` namespace.  Request-scoped
identifiers (workflow, actor, entity, org unit, correlation id) are held in
a context variable and stamped onto every record emitted while they are
bound, so a decision's log lines can be grepped by workflow id without each
call site repeating it.

Usage:
    logger = get_logger("services.approval")
    with LogContext.bind(workflow_id=str(wf.id), actor_id=str(user.id)):
        logger.info("approval_decision_applied", extra={"status": "approved"})
"""

from __future__ import annotations

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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from approval_kernel.exceptions import ApprovalKernelError

ROOT_LOGGER_NAME = "approval_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "workflow_id",
    "actor_id",
    "entity_id",
    "org_unit_id",
)

_bound: ContextVar[Mapping[str, str]] = ContextVar("approval_log_context", default={})


class LogContext:
    """Request-scoped fields merged into every structured log record.

    Backed by a single ``ContextVar`` holding an immutable snapshot, so
    threads and asyncio tasks each see their own bindings.
    """

    @staticmethod
    def _merged(fields: Mapping[str, str | None]) -> dict[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")
        merged = dict(_bound.get())
        merged.update({k: v for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Bind fields for the rest of the current context.  None is ignored."""
        _bound.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_bound.get())

    @classmethod
    def clear(cls) -> None:
        _bound.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type[LogContext]]:
        """Bind fields for the duration of a ``with`` block, then restore."""
        token = _bound.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _bound.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, ApprovalKernelError):
        rendered = exc.to_dict()
        fields = {"exc_type": type(exc).__name__}
        fields.update({f"exc_{key}": value for key, value in rendered.items()})
        return fields
    return {"exc_type": type(exc).__name__, "exc_message": str(exc)}


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line.

    Field precedence: the fixed header (ts, level, logger, message), then
    bound ``LogContext`` fields, then ``extra=`` fields, then ``exc_*``
    fields when an exception is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(LogContext.get_all())
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in entry
        )

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """Logger ``approval_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``approval_kernel`` logger.

    Only the first call has any effect.  Records do not propagate to the
    root logger, so a host application's own formatting is left alone.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        kernel_logger = logging.getLogger(ROOT_LOGGER_NAME)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False

        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Drop the handler installed by ``configure_logging``.  Test helper."""
    global _configured
    with _configure_lock:
        _configured = False
        kernel_logger = logging.getLogger(ROOT_LOGGER_NAME)
        kernel_logger.handlers.clear()
        kernel_logger.setLevel(logging.WARNING)
