"""
Module: hera_kernel.models.dynamic_data
Responsibility: ORM persistence for typed entity attributes (the EAV side
    table).  One row per (entity, field_name); the populated value column is
    chosen by field_type.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (entity_id, field_name) is unique (uq_dynamic_entity_field).  Last write
      wins; no history is kept.
    - Exactly one value_* column is populated, matching field_type.  The
      column choice is made by domain/field_types.py before the write.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hera_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from hera_kernel.models.entity import Entity


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"


class DynamicData(TrackedBase):
    """A single typed attribute of an entity."""

    __tablename__ = "core_dynamic_data"

    __table_args__ = (
        UniqueConstraint("entity_id", "field_name", name="uq_dynamic_entity_field"),
        Index("idx_dynamic_org_field", "organization_id", "field_name"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_organizations.id"),
        nullable=False,
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_entities.id"),
        nullable=False,
    )

    field_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    field_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    value_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    value_number: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    value_boolean: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    value_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    value_json: Mapped[Any | None] = mapped_column(JSON, nullable=True)

    smart_code: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    entity: Mapped["Entity"] = relationship(back_populates="dynamic_fields")

    def __repr__(self) -> str:
        return f"<DynamicData {self.field_name}:{self.field_type}>"

    @property
    def value(self) -> Any:
        """The populated value column for this row's field_type."""
        return {
            FieldType.TEXT.value: self.value_text,
            FieldType.NUMBER.value: self.value_number,
            FieldType.BOOLEAN.value: self.value_boolean,
            FieldType.DATE.value: self.value_date,
            FieldType.JSON.value: self.value_json,
        }[self.field_type]
