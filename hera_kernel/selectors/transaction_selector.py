"""
Module: hera_kernel.selectors.transaction_selector
Responsibility: Single-transaction and filtered transaction reads, with or
    without lines.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Tenant filter on every query.
    - Lines are returned in line_number order.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from hera_kernel.domain.dtos import Page, TransactionInfo
from hera_kernel.domain.tenant import TenantContext, parse_uuid
from hera_kernel.exceptions import InvalidPayloadError, TransactionNotFoundError
from hera_kernel.models.transaction import Transaction
from hera_kernel.selectors.base import BaseSelector


def to_utc(value: datetime) -> datetime:
    """Normalize to aware UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date_bound(
    value: Any, field: str, upper: bool
) -> tuple[datetime, bool] | None:
    """
    Turn a date filter into a datetime bound.

    A bare date covers the whole day: as a lower bound it means midnight,
    as an upper bound it means midnight of the next day.  The flag in the
    result is True when the bound is exclusive.
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        try:
            value = date.fromisoformat(text)
        except ValueError:
            try:
                value = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                raise InvalidPayloadError(
                    f"{field} must be an ISO-8601 date or datetime", field=field
                ) from None
    if isinstance(value, datetime):
        return to_utc(value), False
    if isinstance(value, date):
        start = datetime.combine(value, time.min, tzinfo=timezone.utc)
        if upper:
            return start + timedelta(days=1), True
        return start, False
    raise InvalidPayloadError(f"{field} must be a date", field=field)


class TransactionSelector(BaseSelector[Transaction]):
    """Transaction queries within one organization."""

    def get(
        self, ctx: TenantContext, transaction_id: Any, include_lines: bool = True
    ) -> TransactionInfo:
        """
        Raises:
            TransactionNotFoundError: no such transaction in this organization.
        """
        parsed = parse_uuid(transaction_id)
        txn = None
        if parsed is not None:
            txn = self.session.execute(
                select(Transaction)
                .options(selectinload(Transaction.lines))
                .where(Transaction.organization_id == ctx.organization_id)
                .where(Transaction.id == parsed)
            ).scalar_one_or_none()
        if txn is None:
            raise TransactionNotFoundError(transaction_id)
        return TransactionInfo.from_model(txn, include_lines=include_lines)

    def find(
        self,
        ctx: TenantContext,
        *,
        transaction_id: Any = None,
        transaction_type: str | None = None,
        transaction_code: str | None = None,
        status: str | None = None,
        source_entity_id: Any = None,
        target_entity_id: Any = None,
        smart_code: str | None = None,
        date_from: Any = None,
        date_to: Any = None,
        include_lines: bool = True,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> Page:
        stmt = (
            select(Transaction)
            .where(Transaction.organization_id == ctx.organization_id)
            .order_by(Transaction.transaction_date, Transaction.transaction_code)
        )
        if include_lines:
            stmt = stmt.options(selectinload(Transaction.lines))

        for raw, column in (
            (transaction_id, Transaction.id),
            (source_entity_id, Transaction.source_entity_id),
            (target_entity_id, Transaction.target_entity_id),
        ):
            if raw is None:
                continue
            parsed = parse_uuid(raw)
            if parsed is None:
                return self.nothing(limit, offset)
            stmt = stmt.where(column == parsed)

        stmt = self._match_text(stmt, (
            (transaction_type, Transaction.transaction_type),
            (transaction_code, Transaction.transaction_code),
            (status, Transaction.status),
            (smart_code, Transaction.smart_code),
        ))
        if stmt is None:
            return self.nothing(limit, offset)

        lower = parse_date_bound(date_from, "date_from", upper=False)
        if lower is not None:
            stmt = stmt.where(Transaction.transaction_date >= lower[0])
        upper = parse_date_bound(date_to, "date_to", upper=True)
        if upper is not None:
            bound, exclusive = upper
            if exclusive:
                stmt = stmt.where(Transaction.transaction_date < bound)
            else:
                stmt = stmt.where(Transaction.transaction_date <= bound)

        return self._page(
            stmt,
            limit,
            offset,
            lambda row: TransactionInfo.from_model(row, include_lines=include_lines),
        )
