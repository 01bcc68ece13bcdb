"""
ReversalService -- corrects a posted transaction with a mirror-image one.

Responsibility:
    Create a new posted transaction whose ledger lines are the original's
    ledger lines with DR and CR swapped.  Non-ledger lines are not carried.

Invariants enforced:
    - The original header and its lines are never modified.
    - A transaction has at most one reversal (uq_txn_reversal_of).
      Reversing again returns the existing reversal as a duplicate.
    - A reversal cannot itself be reversed, and only posted transactions
      can be reversed.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from hera_kernel.domain import smart_code as smart_codes
from hera_kernel.domain.clock import Clock
from hera_kernel.domain.dtos import LineSpec, TransactionInfo, TransactionSpec
from hera_kernel.domain.ledger import compute_total, parse_side, validate_balance
from hera_kernel.domain.settings import EngineSettings
from hera_kernel.domain.tenant import TenantContext, parse_uuid
from hera_kernel.exceptions import InvalidPayloadError, TransactionNotFoundError
from hera_kernel.logging_config import get_logger
from hera_kernel.models.transaction import Transaction, TransactionStatus
from hera_kernel.services.base import BaseService, require_text
from hera_kernel.services.transaction_service import EmitOutcome, TransactionService

logger = get_logger("services.reversal")

REVERSAL_SUFFIX = "-REV"


class ReversalService(BaseService[Transaction]):
    """Reverse posted transactions."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session, clock, settings)
        self._transactions = TransactionService(session, self._clock, self.settings)

    def _original(self, ctx: TenantContext, transaction_id: Any) -> Transaction:
        parsed = parse_uuid(transaction_id)
        txn = None
        if parsed is not None:
            txn = self.session.execute(
                select(Transaction)
                .options(selectinload(Transaction.lines))
                .where(Transaction.organization_id == ctx.organization_id)
                .where(Transaction.id == parsed)
                .with_for_update()
            ).scalar_one_or_none()
        if txn is None:
            raise TransactionNotFoundError(transaction_id)
        return txn

    def _existing_reversal(self, original: Transaction) -> Transaction | None:
        return self.session.execute(
            select(Transaction)
            .options(selectinload(Transaction.lines))
            .where(Transaction.organization_id == original.organization_id)
            .where(Transaction.reversal_of_id == original.id)
        ).scalar_one_or_none()

    def _mirror_lines(self, original: Transaction) -> tuple[LineSpec, ...]:
        mirrored = []
        for line in original.lines:
            if not smart_codes.is_ledger_line(line.smart_code, self.settings.ledger_segments):
                continue
            data = dict(line.line_data or {})
            side = parse_side(data.get("side"), line.line_number).opposite
            data["side"] = side.value
            mirrored.append(
                LineSpec(
                    line_number=line.line_number,
                    line_type=line.line_type,
                    smart_code=line.smart_code,
                    line_amount=line.line_amount,
                    is_ledger=True,
                    side=side,
                    currency=data.get("currency") or original.currency,
                    entity_id=line.entity_id,
                    description=line.description,
                    quantity=line.quantity,
                    unit_amount=line.unit_amount,
                    line_data=data,
                )
            )
        return tuple(mirrored)

    def _duplicate(self, original: Transaction, reversal: Transaction) -> EmitOutcome:
        logger.info(
            "duplicate_suppressed",
            extra={
                "transaction_id": str(original.id),
                "reversal_id": str(reversal.id),
            },
        )
        return EmitOutcome(TransactionInfo.from_model(reversal), duplicate_suppressed=True)

    def reverse(self, ctx: TenantContext, transaction_id: Any, reason: Any) -> EmitOutcome:
        """
        Reverse one transaction.

        Raises:
            TransactionNotFoundError: not in this organization.
            InvalidPayloadError: reason missing, the transaction is a
                reversal, or it is not posted.
        """
        reason = require_text(reason, "reason", 1000)
        original = self._original(ctx, transaction_id)

        if original.is_reversal:
            raise InvalidPayloadError(
                f"transaction {original.transaction_code} is itself a reversal",
                field="transaction_id",
            )
        if original.status != TransactionStatus.POSTED.value:
            raise InvalidPayloadError(
                "only posted transactions can be reversed", field="transaction_id"
            )

        existing = self._existing_reversal(original)
        if existing is not None:
            return self._duplicate(original, existing)

        lines = self._mirror_lines(original)
        validate_balance(lines, self.settings.balance_tolerance)
        spec = TransactionSpec(
            transaction_type=original.transaction_type,
            smart_code=original.smart_code,
            transaction_date=self._now(),
            lines=lines,
            transaction_code=f"{original.transaction_code}{REVERSAL_SUFFIX}",
            source_entity_id=original.source_entity_id,
            target_entity_id=original.target_entity_id,
            currency=original.currency,
            status=TransactionStatus.POSTED.value,
            metadata={
                "reversal_reason": reason,
                "reversed_transaction_code": original.transaction_code,
            },
            reversal_of_id=original.id,
        )

        savepoint = self.session.begin_nested()
        try:
            reversal = self._transactions.persist(
                ctx, spec, compute_total(lines, self.settings.total_excluded_line_types)
            )
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            existing = self._existing_reversal(original)
            if existing is None:
                raise InvalidPayloadError(
                    f"transaction_code {spec.transaction_code} is already in use",
                    field="transaction_code",
                ) from None
            return self._duplicate(original, existing)

        logger.info(
            "transaction_reversed",
            extra={
                "transaction_id": str(original.id),
                "reversal_id": str(reversal.id),
                "reversal_code": reversal.transaction_code,
                "line_count": len(lines),
            },
        )
        return EmitOutcome(TransactionInfo.from_model(reversal))
