"""
Module: hera_kernel.models.relationship
Responsibility: ORM persistence for typed, directed edges between entities
    (hierarchies, memberships, status assignments, ...).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Both endpoints live in the edge's organization (checked by the
      relationship service before insert; the FKs only prove existence).
    - Edges are never deleted by the engine; deactivation sets is_active
      False and stamps expiration_date.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from hera_kernel.db.base import TrackedBase, UTCDateTime, UUIDString


class Relationship(TrackedBase):
    """A directed edge from_entity -> to_entity of a given relationship_type."""

    __tablename__ = "core_relationships"

    __table_args__ = (
        Index("idx_relationship_from", "organization_id", "from_entity_id"),
        Index("idx_relationship_to", "organization_id", "to_entity_id"),
        Index("idx_relationship_type", "organization_id", "relationship_type"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_organizations.id"),
        nullable=False,
    )

    from_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_entities.id"),
        nullable=False,
    )

    to_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_entities.id"),
        nullable=False,
    )

    relationship_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    relationship_data: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    smart_code: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    effective_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    expiration_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Relationship {self.relationship_type} "
            f"{self.from_entity_id}->{self.to_entity_id}>"
        )
