"""
Module: hera_kernel.logging_config
Responsibility: One-line JSON logs for every engine event, stamped with the
    operation and tenant the event happened under.
Architecture position: Kernel root.  Imported by every layer; imports only
    hera_kernel.exceptions.

Each record renders as::

    {"ts": ..., "level": ..., "logger": ..., "message": "entity_created",
     "correlation_id": ..., "operation": "entity.upsert",
     "organization_id": ..., "actor_id": ..., <extra fields>}

Invariants enforced:
    - Context fields are written before extras and an extra never replaces
      them, so a service cannot mislabel the tenant of its own log line.
    - Context is a single immutable snapshot per task or thread; binding
      never leaks into a sibling request.
    - configure_logging() installs one handler however often it is called.
"""

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
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
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID, uuid4

from hera_kernel.exceptions import HeraEngineError

if TYPE_CHECKING:
    from hera_kernel.domain.tenant import TenantContext

_ROOT = "hera_kernel"

CONTEXT_FIELDS = ("correlation_id", "operation", "organization_id", "actor_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_current: ContextVar[Mapping[str, str]] = ContextVar("hera_log_context", default=_EMPTY)


class LogContext:
    """
    Request-scoped fields copied onto every record.

    The orchestrator opens one ``bind_operation`` per public call and a
    ``bind_tenant`` once the tenant is resolved; services never bind.
    """

    @staticmethod
    def current() -> dict[str, str]:
        return dict(_current.get())

    @staticmethod
    def clear() -> None:
        _current.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Overlay ``fields`` (None values skipped) until the block exits."""
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"not a log context field: {', '.join(sorted(unknown))}")
        merged = dict(_current.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        token = _current.set(MappingProxyType(merged))
        try:
            yield
        finally:
            _current.reset(token)

    @classmethod
    def bind_operation(cls, operation: str):
        """A fresh correlation id for one public operation."""
        return cls.bind(correlation_id=str(uuid4()), operation=operation)

    @classmethod
    def bind_tenant(cls, ctx: "TenantContext"):
        return cls.bind(organization_id=ctx.organization_id, actor_id=ctx.actor_user_id)


# LogRecord's own attributes; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


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


def _error_block(exc: BaseException) -> dict[str, Any]:
    block: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, HeraEngineError):
        block["code"] = exc.code
        details = {k: v for k, v in vars(exc).items() if not k.startswith("_")}
        if details:
            block["details"] = details
    return block


class StructuredFormatter(logging.Formatter):
    """Render a record as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_current.get())
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_block(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``hera_kernel`` namespace (``get_logger("db.engine")``)."""
    return logging.getLogger(f"{_ROOT}.{name}")


_handler: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the JSON handler to the ``hera_kernel`` logger.

    The first call wins; later calls (engine init, config bridges) are
    no-ops so a test or host application keeps its own setup.
    """
    global _handler
    with _lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())
        root = logging.getLogger(_ROOT)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Detach the handler so the next configure_logging() applies. Tests only."""
    global _handler
    with _lock:
        root = logging.getLogger(_ROOT)
        if _handler is not None:
            root.removeHandler(_handler)
            _handler = None
        root.setLevel(logging.WARNING)
