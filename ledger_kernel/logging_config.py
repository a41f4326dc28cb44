"""
Module: ledger_kernel.logging_config
Responsibility: One JSON object per log line for everything under the
    ``ledger_kernel`` logger namespace, decorated with request-scoped
    fields (tenant, correlation, actor, entry).
Architecture position: Kernel infrastructure.  Imported by services and
    by the engine factory; has no dependency on models or the database.

Log fields are decoration only.  No service reads the tenant back out of
``LogContext``; ``tenant_id`` always travels as an explicit argument.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Iterator, Mapping
from uuid import UUID

NAMESPACE = "ledger_kernel"

_CONTEXT_FIELDS = ("tenant_id", "correlation_id", "actor_id", "entry_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})

# Holds a read-only mapping; every change installs a new one.
_bound: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_fields", default=_EMPTY)


def _merged(**values: Any) -> Mapping[str, str]:
    fields = dict(_bound.get())
    for name, value in values.items():
        if name in _CONTEXT_FIELDS and value is not None:
            fields[name] = str(value)
    return MappingProxyType(fields)


class LogContext:
    """Per-task log fields, isolated between threads and asyncio tasks."""

    @classmethod
    def set(
        cls,
        *,
        tenant_id: str | None = None,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        entry_id: str | None = None,
    ) -> None:
        """Overwrite the given fields; ``None`` leaves a field untouched."""
        _bound.set(
            _merged(
                tenant_id=tenant_id,
                correlation_id=correlation_id,
                actor_id=actor_id,
                entry_id=entry_id,
            )
        )

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_bound.get())

    @classmethod
    def clear(cls) -> None:
        _bound.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Scope fields to a ``with`` block.

        Values are stringified, ``None`` values and unknown names are
        ignored, and the enclosing fields come back on exit even if the
        block raises.
        """
        token = _bound.set(_merged(**fields))
        try:
            yield cls
        finally:
            _bound.reset(token)


# Attributes every LogRecord carries; anything else on a record came in
# through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # LedgerError subclasses keep their context as public attributes.
    fields.update(
        (f"exc_{attr}", value)
        for attr, value in vars(exc).items()
        if not attr.startswith("_") and attr not in ("args", "code")
    )
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single line of JSON."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for attr, value in vars(record).items():
            if attr not in _RECORD_ATTRS:
                payload.setdefault(attr, value)

        exc_info = record.exc_info
        if exc_info and exc_info[1] is not None:
            payload.update(_exception_fields(exc_info[1]))
            payload["traceback"] = self.formatException(exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.journal_store")`` -> ``ledger_kernel.services.journal_store``."""
    return logging.getLogger(f"{NAMESPACE}.{name}")


_state_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to the ``ledger_kernel`` logger.

    Only the first call has any effect until ``reset_logging`` runs, so
    the engine factory and test fixtures can both call it.  The namespace
    does not propagate to the root logger.
    """
    global _installed_handler
    with _state_lock:
        if _installed_handler is not None:
            return
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())

        namespace = logging.getLogger(NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        namespace.addHandler(target)
        _installed_handler = target


def reset_logging() -> None:
    """Drop every handler and return to WARNING.  Test helper."""
    global _installed_handler
    with _state_lock:
        _installed_handler = None
        namespace = logging.getLogger(NAMESPACE)
        for existing in list(namespace.handlers):
            namespace.removeHandler(existing)
        namespace.setLevel(logging.WARNING)
