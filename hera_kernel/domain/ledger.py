"""
Ledger Balance Validator and header total rule.

Responsibility:
    Pure checks applied to a transaction's lines before anything is written:

    - Ledger lines (smart code carries the ledger segment) must balance per
      currency: |sum(DR) - sum(CR)| <= tolerance.
    - The header total is the sum of line_amount over lines that are neither
      ledger lines nor of an excluded line_type (payment, commission).

Architecture position:
    Kernel > Domain.  Zero I/O.

Failure modes:
    - UnbalancedLedgerError when a currency group does not balance, or when
      a ledger line has no valid side or a negative amount.

Example (total rule)::

    service 450.00 + tax 22.50 + payment 472.50  ->  total 472.50
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Sequence

from hera_kernel.domain.dtos import LineSide, LineSpec
from hera_kernel.exceptions import UnbalancedLedgerError

DEFAULT_TOLERANCE = Decimal("0.01")
DEFAULT_EXCLUDED_LINE_TYPES: frozenset[str] = frozenset({"payment", "commission"})

ZERO = Decimal("0")


@dataclass(frozen=True)
class CurrencyBalance:
    """Debit and credit totals of the ledger lines in one currency."""

    currency: str
    debits: Decimal
    credits: Decimal

    @property
    def difference(self) -> Decimal:
        return self.debits - self.credits

    def is_balanced(self, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
        return abs(self.difference) <= tolerance


def parse_side(value: Any, line_number: int | None = None, currency: str = "") -> LineSide:
    """
    Read the ``side`` of a ledger line (``DR`` or ``CR``, any case).

    Raises:
        UnbalancedLedgerError: side missing or not DR/CR.
    """
    if isinstance(value, LineSide):
        return value
    if isinstance(value, str) and value.strip().upper() in ("DR", "CR"):
        return LineSide(value.strip().upper())
    raise UnbalancedLedgerError(
        currency,
        ZERO,
        ZERO,
        reason=(
            f"Ledger line {line_number} must carry line_data.side of DR or CR, "
            f"got {value!r}"
        ),
    )


def summarize(lines: Iterable[LineSpec]) -> tuple[CurrencyBalance, ...]:
    """Group ledger lines by currency; non-ledger lines are ignored."""
    debits: dict[str, Decimal] = {}
    credits: dict[str, Decimal] = {}
    for line in lines:
        if not line.is_ledger:
            continue
        currency = line.currency or ""
        debits.setdefault(currency, ZERO)
        credits.setdefault(currency, ZERO)
        if line.side is LineSide.DEBIT:
            debits[currency] += line.line_amount
        else:
            credits[currency] += line.line_amount
    return tuple(
        CurrencyBalance(currency=c, debits=debits[c], credits=credits[c])
        for c in sorted(debits)
    )


def validate_balance(
    lines: Sequence[LineSpec],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> tuple[CurrencyBalance, ...]:
    """
    Require every ledger currency group to balance within ``tolerance``.

    Returns:
        The per-currency balances (empty when there are no ledger lines).

    Raises:
        UnbalancedLedgerError: first unbalanced group, or a ledger line with
            no side or a negative amount.
    """
    for line in lines:
        if not line.is_ledger:
            continue
        if line.side is None:
            parse_side(None, line.line_number, line.currency or "")
        if line.line_amount < ZERO:
            raise UnbalancedLedgerError(
                line.currency or "",
                ZERO,
                ZERO,
                reason=(
                    f"Ledger line {line.line_number} has negative amount "
                    f"{line.line_amount}; use the opposite side instead"
                ),
            )

    balances = summarize(lines)
    for balance in balances:
        if not balance.is_balanced(tolerance):
            raise UnbalancedLedgerError(
                balance.currency, balance.debits, balance.credits
            )
    return balances


def compute_total(
    lines: Iterable[LineSpec],
    excluded_line_types: Iterable[str] = DEFAULT_EXCLUDED_LINE_TYPES,
) -> Decimal:
    """Header total: sum of non-ledger, non-excluded line amounts."""
    excluded = {t.lower() for t in excluded_line_types}
    return sum(
        (
            line.line_amount
            for line in lines
            if not line.is_ledger and line.line_type.lower() not in excluded
        ),
        ZERO,
    )
