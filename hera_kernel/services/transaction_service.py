"""
TransactionService -- atomic emit of a transaction header and its lines.

Responsibility:
    Turn an emit payload into a validated TransactionSpec, enforce the
    ledger balance and header total rules, and persist header and lines in
    one unit of work.

Architecture position:
    Kernel > Services.  Pure checks live in domain/ledger.py and
    domain/smart_code.py; numbering in SequenceService.  ReversalService
    reuses ``persist()``.

Invariants enforced:
    - Every header and line smart code is valid before anything is written.
    - Ledger lines balance per currency within the configured tolerance,
      or nothing is persisted (UNBALANCED_LEDGER).
    - total_amount is computed, never trusted from the caller.
    - line_number is unique within the transaction.  Omitted numbers are
      assigned after the highest given number, in input order.
    - (organization_id, idempotency_key) identifies one transaction.  A
      repeat emit returns the original unchanged, flagged as a duplicate;
      concurrent duplicates converge on the unique constraint.
    - Source, target and line entities exist in the caller's organization.

Failure modes:
    - InvalidSmartCodeError, InvalidPayloadError, InvalidCurrencyError.
    - UnbalancedLedgerError.
    - EndpointNotFoundError, CrossTenantViolationError.

Audit relevance:
    Logs balance_validated, transaction_emitted, duplicate_suppressed,
    idempotency_payload_mismatch and total_amount_replaced.
"""

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from hera_kernel.db.types import to_money, validate_currency
from hera_kernel.domain import smart_code as smart_codes
from hera_kernel.domain.clock import Clock
from hera_kernel.domain.dtos import LineSpec, TransactionInfo, TransactionSpec
from hera_kernel.domain.ledger import compute_total, parse_side, validate_balance
from hera_kernel.domain.settings import EngineSettings
from hera_kernel.domain.tenant import TenantContext, parse_uuid
from hera_kernel.exceptions import (
    EndpointNotFoundError,
    InvalidCurrencyError,
    InvalidPayloadError,
)
from hera_kernel.logging_config import get_logger
from hera_kernel.models.transaction import (
    Transaction,
    TransactionLine,
    TransactionStatus,
)
from hera_kernel.services.base import (
    BaseService,
    optional_datetime,
    optional_mapping,
    optional_text,
    require_text,
)
from hera_kernel.services.relationship_service import resolve_endpoint
from hera_kernel.services.sequence_service import SequenceService
from hera_kernel.utils.idempotency import emit_fingerprint, normalize_idempotency_key

logger = get_logger("services.transaction")

_STATUSES = {s.value for s in TransactionStatus}


@dataclass(frozen=True)
class EmitOutcome:
    """Result of an emit or reverse.  ``duplicate_suppressed`` marks a replay."""

    transaction: TransactionInfo
    duplicate_suppressed: bool = False


def _optional_uuid(value: Any, role: str):
    if value is None:
        return None
    parsed = parse_uuid(value)
    if parsed is None:
        raise EndpointNotFoundError(value, role)
    return parsed


def _line_number(value: Any, index: int) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidPayloadError(
            f"lines[{index}].line_number must be a positive integer",
            field="line_number",
        )
    return value


class TransactionService(BaseService[Transaction]):
    """
    Emit transactions.

    Contract:
        ``emit`` validates everything, then flushes header and lines inside a
        savepoint so a failed insert leaves the caller's session usable.

    Non-goals:
        - Does NOT update posted transactions; corrections are reversals.
        - Does NOT commit.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session, clock, settings)
        self._sequence = SequenceService(session)

    # -- payload parsing ---------------------------------------------------

    def parse_lines(
        self, lines: Any, header_currency: str | None
    ) -> tuple[LineSpec, ...]:
        """
        Validate raw line dicts.

        Raises:
            InvalidPayloadError: malformed line or duplicate line_number.
            InvalidSmartCodeError: bad line smart code.
            InvalidCurrencyError: ledger line with no valid currency.
            UnbalancedLedgerError: ledger line with no DR/CR side.
        """
        if lines is None:
            return ()
        if isinstance(lines, (str, bytes, Mapping)) or not isinstance(lines, Sequence):
            raise InvalidPayloadError("lines must be a list", field="lines")

        numbers: list[int | None] = []
        for index, raw in enumerate(lines):
            if not isinstance(raw, Mapping):
                raise InvalidPayloadError(
                    f"lines[{index}] must be an object", field="lines"
                )
            numbers.append(_line_number(raw.get("line_number"), index))

        given = [n for n in numbers if n is not None]
        if len(set(given)) != len(given):
            raise InvalidPayloadError("duplicate line_number in lines", field="line_number")
        next_number = max(given, default=0)

        specs = []
        for index, raw in enumerate(lines):
            number = numbers[index]
            if number is None:
                next_number += 1
                number = next_number
            specs.append(self._parse_line(raw, index, number, header_currency))
        return tuple(specs)

    def _parse_line(
        self,
        raw: Mapping[str, Any],
        index: int,
        line_number: int,
        header_currency: str | None,
    ) -> LineSpec:
        prefix = f"lines[{index}]"
        line_type = require_text(raw.get("line_type"), f"{prefix}.line_type", 100)
        code = smart_codes.validate(raw.get("smart_code"), field=f"{prefix}.smart_code")
        line_data = optional_mapping(raw.get("line_data"), f"{prefix}.line_data")
        line_data = copy.deepcopy(line_data) if line_data is not None else {}

        quantity = (
            to_money(raw["quantity"], f"{prefix}.quantity")
            if raw.get("quantity") is not None
            else None
        )
        unit_amount = (
            to_money(raw["unit_amount"], f"{prefix}.unit_amount")
            if raw.get("unit_amount") is not None
            else None
        )
        if raw.get("line_amount") is not None:
            amount = to_money(raw["line_amount"], f"{prefix}.line_amount")
        elif quantity is not None and unit_amount is not None:
            amount = quantity * unit_amount
        else:
            raise InvalidPayloadError(
                f"{prefix}.line_amount is required", field="line_amount"
            )

        is_ledger = code.is_ledger(self.settings.ledger_segments)
        side = None
        currency = None
        if is_ledger:
            raw_currency = line_data.get("currency") or header_currency
            if raw_currency is None:
                raise InvalidCurrencyError(None)
            currency = validate_currency(raw_currency)
            side = parse_side(line_data.get("side"), line_number, currency)
            line_data["side"] = side.value
            line_data["currency"] = currency

        return LineSpec(
            line_number=line_number,
            line_type=line_type,
            smart_code=code.value,
            line_amount=amount,
            is_ledger=is_ledger,
            side=side,
            currency=currency,
            entity_id=_optional_uuid(raw.get("entity_id"), "line"),
            description=optional_text(raw.get("description"), f"{prefix}.description", 1000),
            quantity=quantity,
            unit_amount=unit_amount,
            line_data=line_data,
        )

    def build_spec(self, header: Any, lines: Any) -> TransactionSpec:
        """Validate a raw header and its lines into a TransactionSpec."""
        if not isinstance(header, Mapping):
            raise InvalidPayloadError("header must be an object", field="header")

        transaction_type = require_text(header.get("transaction_type"), "transaction_type", 100)
        code = smart_codes.validate(header.get("smart_code"))
        currency = (
            validate_currency(header["currency"])
            if header.get("currency") is not None
            else None
        )
        status = header.get("status") or TransactionStatus.POSTED.value
        if status not in _STATUSES:
            raise InvalidPayloadError(
                f"status must be one of {sorted(_STATUSES)}", field="status"
            )
        declared = header.get("total_amount")

        return TransactionSpec(
            transaction_type=transaction_type,
            smart_code=code.value,
            transaction_date=(
                optional_datetime(header.get("transaction_date"), "transaction_date")
                or self._now()
            ),
            lines=self.parse_lines(lines, currency),
            transaction_code=optional_text(
                header.get("transaction_code"), "transaction_code", 100
            ),
            source_entity_id=_optional_uuid(header.get("source_entity_id"), "source"),
            target_entity_id=_optional_uuid(header.get("target_entity_id"), "target"),
            currency=currency,
            status=status,
            metadata=optional_mapping(header.get("metadata"), "metadata"),
            declared_total=(
                to_money(declared, "total_amount") if declared is not None else None
            ),
        )

    # -- persistence -------------------------------------------------------

    def find_by_idempotency_key(self, ctx: TenantContext, key: str) -> Transaction | None:
        return self.session.execute(
            select(Transaction)
            .options(selectinload(Transaction.lines))
            .where(Transaction.organization_id == ctx.organization_id)
            .where(Transaction.idempotency_key == key)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _code_taken(self, ctx: TenantContext, transaction_code: str) -> bool:
        return (
            self.session.execute(
                select(Transaction.id)
                .where(Transaction.organization_id == ctx.organization_id)
                .where(Transaction.transaction_code == transaction_code)
            ).first()
            is not None
        )

    def next_transaction_code(self, ctx: TenantContext, transaction_type: str) -> str:
        prefix = transaction_type.upper()
        value = self._sequence.next_value(ctx.organization_id, f"transaction:{prefix}")
        return f"{prefix}-{value:06d}"

    def check_parties(self, ctx: TenantContext, spec: TransactionSpec) -> None:
        """
        Raises:
            EndpointNotFoundError, CrossTenantViolationError.
        """
        if spec.source_entity_id is not None:
            resolve_endpoint(self.session, ctx, spec.source_entity_id, "source")
        if spec.target_entity_id is not None:
            resolve_endpoint(self.session, ctx, spec.target_entity_id, "target")
        for line in spec.lines:
            if line.entity_id is not None:
                resolve_endpoint(
                    self.session, ctx, line.entity_id, f"line {line.line_number}"
                )

    def persist(
        self,
        ctx: TenantContext,
        spec: TransactionSpec,
        total_amount: Decimal,
        idempotency_key: str | None = None,
        payload_hash: str | None = None,
    ) -> Transaction:
        """
        Insert header and lines.  Runs in the caller's savepoint; unique
        violations propagate as IntegrityError.
        """
        code = spec.transaction_code or self.next_transaction_code(
            ctx, spec.transaction_type
        )
        txn = Transaction(
            organization_id=ctx.organization_id,
            transaction_type=spec.transaction_type,
            transaction_code=code,
            transaction_date=spec.transaction_date,
            source_entity_id=spec.source_entity_id,
            target_entity_id=spec.target_entity_id,
            total_amount=total_amount,
            currency=spec.currency,
            status=spec.status,
            smart_code=spec.smart_code,
            transaction_metadata=spec.metadata,
            idempotency_key=idempotency_key,
            payload_hash=payload_hash,
            reversal_of_id=spec.reversal_of_id,
        )
        self._stamp_new(txn, ctx)
        for line in spec.lines:
            row = TransactionLine(
                organization_id=ctx.organization_id,
                line_number=line.line_number,
                line_type=line.line_type,
                entity_id=line.entity_id,
                description=line.description,
                quantity=line.quantity,
                unit_amount=line.unit_amount,
                line_amount=line.line_amount,
                smart_code=line.smart_code,
                line_data=line.line_data or None,
            )
            self._stamp_new(row, ctx)
            txn.lines.append(row)
        self.session.add(txn)
        self.session.flush()
        return txn

    def _replay(
        self, ctx: TenantContext, existing: Transaction, payload_hash: str
    ) -> EmitOutcome:
        if existing.payload_hash is not None and existing.payload_hash != payload_hash:
            logger.warning(
                "idempotency_payload_mismatch",
                extra={
                    "transaction_id": str(existing.id),
                    "idempotency_key": existing.idempotency_key,
                },
            )
        logger.info(
            "duplicate_suppressed",
            extra={
                "transaction_id": str(existing.id),
                "idempotency_key": existing.idempotency_key,
            },
        )
        return EmitOutcome(TransactionInfo.from_model(existing), duplicate_suppressed=True)

    def emit(
        self,
        ctx: TenantContext,
        header: Any,
        lines: Any,
        idempotency_key: Any = None,
    ) -> EmitOutcome:
        """
        Validate and persist one transaction.

        Returns:
            EmitOutcome with the stored transaction; ``duplicate_suppressed``
            is True when an earlier emit with the same key is returned.
        """
        key = normalize_idempotency_key(idempotency_key)
        spec = self.build_spec(header, lines)

        balances = validate_balance(spec.lines, self.settings.balance_tolerance)
        if balances:
            logger.info(
                "balance_validated",
                extra={
                    "currencies": [b.currency for b in balances],
                    "ledger_lines": sum(1 for line in spec.lines if line.is_ledger),
                },
            )

        total = compute_total(spec.lines, self.settings.total_excluded_line_types)
        if spec.declared_total is not None and spec.declared_total != total:
            logger.warning(
                "total_amount_replaced",
                extra={"declared": str(spec.declared_total), "computed": str(total)},
            )

        payload_hash = emit_fingerprint(dict(header), [dict(line) for line in lines or ()])
        if key is not None:
            existing = self.find_by_idempotency_key(ctx, key)
            if existing is not None:
                return self._replay(ctx, existing, payload_hash)

        self.check_parties(ctx, spec)
        if spec.transaction_code is not None and self._code_taken(ctx, spec.transaction_code):
            raise InvalidPayloadError(
                f"transaction_code '{spec.transaction_code}' already exists",
                field="transaction_code",
            )

        savepoint = self.session.begin_nested()
        try:
            txn = self.persist(ctx, spec, total, key, payload_hash)
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            if key is not None:
                existing = self.find_by_idempotency_key(ctx, key)
                if existing is not None:
                    return self._replay(ctx, existing, payload_hash)
            raise InvalidPayloadError(
                "transaction conflicts with an existing transaction",
                field="transaction_code",
            ) from None

        logger.info(
            "transaction_emitted",
            extra={
                "transaction_id": str(txn.id),
                "transaction_code": txn.transaction_code,
                "transaction_type": txn.transaction_type,
                "total_amount": str(total),
                "line_count": len(spec.lines),
            },
        )
        return EmitOutcome(TransactionInfo.from_model(txn))
