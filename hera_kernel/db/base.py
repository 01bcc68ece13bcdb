"""
Module: hera_kernel.db.base
Responsibility: Declarative base classes for the six core relations.  Provides
    the UUID primary key convention, the type annotation map, and the
    TrackedBase mixin carrying actor/audit stamps.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - UUID primary keys: every row gets a uuid4 identifier stored as a
      36-character string so the schema runs on PostgreSQL and SQLite alike.
    - Decimal precision: Decimal maps to Numeric(38, 9).  Amounts are never
      floats.
    - Audit stamps: TrackedBase carries created_at, updated_at, created_by
      and updated_by.  Services set them from the injected clock and the
      caller's actor; the server defaults only cover rows written outside
      the engine.

Failure modes:
    - IntegrityError when created_by is missing (every row needs an actor).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp normalized to UTC.

    Guarantees:
        - process_bind_param: aware values are converted to UTC; naive values
          are taken to be UTC already.
        - process_result_value: always an aware UTC datetime, including on
          SQLite, which stores timestamps without an offset.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all engine models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime (aware UTC on every backend).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with actor and timestamp stamping.

    Contract:
        Every row records who created it and who last changed it, and when.
        These are audit metadata: they may change on rows whose business
        fields are otherwise frozen (see db/immutability.py).

    Guarantees:
        - created_by is NOT NULL.  No row exists without an actor.
        - updated_by is NOT NULL and equals created_by on insert.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    created_by: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    def stamp_created(self, actor_id: PyUUID, now: datetime) -> None:
        """Set all four audit columns for a new row."""
        self.created_by = actor_id
        self.updated_by = actor_id
        self.created_at = now
        self.updated_at = now

    def stamp_updated(self, actor_id: PyUUID, now: datetime) -> None:
        """Record the actor and time of the latest change."""
        self.updated_by = actor_id
        self.updated_at = now


UUID = PyUUID
