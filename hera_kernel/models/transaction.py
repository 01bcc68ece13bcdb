"""
Module: hera_kernel.models.transaction
Responsibility: ORM persistence for universal transaction headers and their
    lines.  Sales, payments, journal entries, appointments and every other
    business event are rows here, distinguished by transaction_type and
    smart_code.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - transaction_code is unique per organization (uq_txn_org_code).
    - idempotency_key is unique per organization when present
      (uq_txn_org_idempotency).  Concurrent duplicate emits converge here.
    - reversal_of_id is unique when present (uq_txn_reversal_of): a
      transaction has at most one reversal.
    - line_number is unique per transaction (uq_txn_line_number).
    - Lines of a posted header are immutable (db/immutability.py).

Failure modes:
    - IntegrityError on any of the constraints above.
    - ImmutabilityViolationError on UPDATE/DELETE of a posted header's
      financial fields or any of its lines.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hera_kernel.db.base import TrackedBase, UTCDateTime, UUIDString


class TransactionStatus(str, Enum):
    """Lifecycle status of a transaction header.

    Contract: DRAFT -> POSTED only.  A posted transaction is corrected by a
    reversal, never by an update.
    """

    DRAFT = "draft"
    POSTED = "posted"


class Transaction(TrackedBase):
    """
    Transaction header.

    Contract:
        Written together with its lines in one unit of work.  Once posted,
        the financial fields and all lines are frozen.  A reversal is a new
        header pointing back through reversal_of_id.

    Guarantees:
        - total_amount follows the header total rule in domain/ledger.py.
        - Ledger lines balance per currency (enforced before insert).
    """

    __tablename__ = "universal_transactions"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "transaction_code", name="uq_txn_org_code"
        ),
        UniqueConstraint(
            "organization_id", "idempotency_key", name="uq_txn_org_idempotency"
        ),
        UniqueConstraint("reversal_of_id", name="uq_txn_reversal_of"),
        Index("idx_txn_org_type", "organization_id", "transaction_type"),
        Index("idx_txn_org_date", "organization_id", "transaction_date"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_organizations.id"),
        nullable=False,
    )

    transaction_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    transaction_code: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    transaction_date: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    source_entity_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("core_entities.id"),
        nullable=True,
    )

    target_entity_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("core_entities.id"),
        nullable=True,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    currency: Mapped[str | None] = mapped_column(
        String(3),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.POSTED.value,
    )

    smart_code: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    transaction_metadata: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    idempotency_key: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # SHA-256 over the canonical emit payload, compared on idempotent retries
    payload_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("universal_transactions.id"),
        nullable=True,
    )

    lines: Mapped[list["TransactionLine"]] = relationship(
        back_populates="transaction",
        order_by="TransactionLine.line_number",
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.transaction_code} {self.status}>"

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED.value

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None


class TransactionLine(TrackedBase):
    """
    One line of a transaction.

    Contract:
        Ledger lines (smart code carries the ledger segment) hold their side
        in line_data["side"] and a non-negative line_amount.  All other
        lines are informational.  Immutable once the header is posted.
    """

    __tablename__ = "universal_transaction_lines"

    __table_args__ = (
        UniqueConstraint(
            "transaction_id", "line_number", name="uq_txn_line_number"
        ),
        Index("idx_txn_line_txn", "transaction_id"),
        Index("idx_txn_line_entity", "organization_id", "entity_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("core_organizations.id"),
        nullable=False,
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("universal_transactions.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    line_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    entity_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("core_entities.id"),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    unit_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    line_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    smart_code: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    line_data: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    transaction: Mapped["Transaction"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<TransactionLine {self.line_number} {self.line_type} {self.line_amount}>"

    @property
    def side(self) -> str | None:
        if not self.line_data:
            return None
        return self.line_data.get("side")
