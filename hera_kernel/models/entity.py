"""
Module: hera_kernel.models.entity
Responsibility: ORM persistence for the polymorphic entity table.  Customers,
    products, accounts, staff and every other business object are rows here,
    distinguished by entity_type and smart_code.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (organization_id, entity_type, entity_code) is unique when entity_code
      is present (uq_entity_org_type_code).  This constraint is what makes
      concurrent upserts converge on a single row.
    - Soft delete only through status; hard delete is guarded by the service.

Failure modes:
    - IntegrityError on a duplicate (org, type, code); the entity service
      catches it inside a savepoint and retries as an update.
"""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hera_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from hera_kernel.models.dynamic_data import DynamicData


class EntityStatus(str, Enum):
    """Entity lifecycle status."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class Entity(TrackedBase):
    """
    A business object of any type.

    Contract:
        Updated in place.  metadata is an opaque JSON blob passed through
        untouched.  Dynamic attributes hang off the entity and are removed
        with it on hard delete.
    """

    __tablename__ = "core_entities"

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "entity_type",
            "entity_code",
            name="uq_entity_org_type_code",
        ),
        Index("idx_entity_org_type", "organization_id", "entity_type"),
        Index("idx_entity_org_smart_code", "organization_id", "smart_code"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_organizations.id"),
        nullable=False,
    )

    entity_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    entity_name: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    entity_code: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    smart_code: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EntityStatus.ACTIVE.value,
    )

    # "metadata" is reserved on declarative classes
    entity_metadata: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    dynamic_fields: Mapped[list["DynamicData"]] = relationship(
        back_populates="entity",
        cascade="all, delete-orphan",
        order_by="DynamicData.field_name",
    )

    def __repr__(self) -> str:
        return f"<Entity {self.entity_type}:{self.entity_code or self.id}>"

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE.value
