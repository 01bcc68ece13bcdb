"""
Module: hera_kernel.models.sequence
Responsibility: Counter rows behind default transaction codes.  Infrastructure
    only; not one of the six business relations.

Invariants enforced:
    - One counter per (organization_id, name), advanced under a row lock.
"""

from uuid import UUID

from sqlalchemy import BigInteger, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hera_kernel.db.base import Base, UUIDString


class SequenceCounter(Base):
    """Current value of a named per-organization sequence."""

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_sequence_org_name"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_organizations.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
