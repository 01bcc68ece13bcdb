"""
Module: hera_kernel.models.organization
Responsibility: ORM persistence for tenants.  Every other row in the engine
    carries exactly one organization_id pointing here.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - organization_code is globally unique (uq_organization_code).
    - The nil UUID is reserved for the platform organization and never holds
      business data (enforced by domain/tenant.py, not the schema).
"""

from enum import Enum

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hera_kernel.db.base import TrackedBase


class OrganizationStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class Organization(TrackedBase):
    """
    A tenant.

    Contract:
        Created or updated by organization_code.  Rows are never deleted by
        the engine.
    """

    __tablename__ = "core_organizations"

    __table_args__ = (
        UniqueConstraint("organization_code", name="uq_organization_code"),
    )

    organization_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    organization_code: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    settings: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OrganizationStatus.ACTIVE.value,
    )

    def __repr__(self) -> str:
        return f"<Organization {self.organization_code}: {self.organization_name}>"
