"""
BaseService -- abstract base for all engine services.

Responsibility:
    Common constructor and session-handling contract for every write
    service.  Services use ``session.flush()``, never ``session.commit()``.

Architecture position:
    Kernel > Services.  The UpsertOrchestrator (or the caller's own
    session_scope) owns commit and rollback.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back the outer transaction themselves.  Savepoints they open for
      unique-constraint races are released or rolled back before return.
    - Every write stamps the actor and the injected clock's time.
"""

from abc import ABC
from datetime import date, datetime, time, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Session

from hera_kernel.db.base import Base, TrackedBase
from hera_kernel.domain.clock import Clock, SystemClock
from hera_kernel.domain.settings import EngineSettings
from hera_kernel.domain.tenant import TenantContext
from hera_kernel.exceptions import InvalidPayloadError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all engine services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide filtered reads; those live in selectors/.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self.settings = settings or EngineSettings()

    def _now(self) -> datetime:
        return self._clock.now()

    def _stamp_new(self, row: TrackedBase, ctx: TenantContext) -> None:
        row.stamp_created(ctx.actor_user_id, self._now())

    def _stamp_change(self, row: TrackedBase, ctx: TenantContext) -> None:
        row.stamp_updated(ctx.actor_user_id, self._now())


def require_text(value: Any, field: str, max_length: int = 255) -> str:
    """
    A required, non-blank string field.

    Raises:
        InvalidPayloadError: missing, not a string, blank or too long.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidPayloadError(f"{field} is required", field=field)
    text = value.strip()
    if len(text) > max_length:
        raise InvalidPayloadError(
            f"{field} exceeds {max_length} characters", field=field
        )
    return text


def optional_text(value: Any, field: str, max_length: int = 255) -> str | None:
    if value is None:
        return None
    return require_text(value, field, max_length)


def optional_mapping(value: Any, field: str) -> dict | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidPayloadError(f"{field} must be an object", field=field)
    return value


def optional_datetime(value: Any, field: str) -> datetime | None:
    """
    A timestamp given as datetime, date or ISO-8601 string, as aware UTC.
    Naive values are taken to be UTC; a bare date means its midnight.

    Raises:
        InvalidPayloadError: not a date, datetime or parseable string.
    """
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise InvalidPayloadError(
                f"{field} must be an ISO-8601 datetime", field=field
            ) from None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise InvalidPayloadError(f"{field} must be a datetime", field=field)
