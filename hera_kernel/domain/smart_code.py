"""
Smart Code Validator -- grammar for the semantic identifier on every row.

Responsibility:
    Parse and validate smart codes, and classify transaction lines as ledger
    lines by their segments.  Pure functions, no I/O.

Grammar::

    HERA . <DOMAIN> . <SEG> . <SEG> . <SEG> [. <SEG> ...] . v<N>

    DOMAIN  [A-Z0-9]{3,15}
    SEG     [A-Z0-9_]{2,30}, between 3 and 8 of them
    N       one or more digits

So the shortest valid code has six dot-separated parts, e.g.
``HERA.SALON.TXN.SALE.CREATE.v1``.

Invariants enforced:
    - Every row written by the engine carries a smart code accepted here.
    - A line is a ledger line iff one of its segments after the domain is a
      configured ledger segment (``GL`` by default).
"""

import re
from dataclasses import dataclass
from typing import Any, Iterable

from hera_kernel.exceptions import InvalidSmartCodeError

SMART_CODE_PATTERN = re.compile(
    r"^HERA\.[A-Z0-9]{3,15}(?:\.[A-Z0-9_]{2,30}){3,8}\.v[0-9]+$"
)

DEFAULT_LEDGER_SEGMENTS: frozenset[str] = frozenset({"GL"})

_DOMAIN_PATTERN = re.compile(r"^[A-Z0-9]{3,15}$")
_SEGMENT_PATTERN = re.compile(r"^[A-Z0-9_]{2,30}$")
_VERSION_PATTERN = re.compile(r"^v[0-9]+$")

MIN_SEGMENTS = 3
MAX_SEGMENTS = 8


@dataclass(frozen=True)
class SmartCode:
    """A parsed, valid smart code."""

    value: str
    domain: str
    segments: tuple[str, ...]
    version: int

    def __str__(self) -> str:
        return self.value

    def is_ledger(self, ledger_segments: Iterable[str] | None = None) -> bool:
        reserved = (
            DEFAULT_LEDGER_SEGMENTS
            if ledger_segments is None
            else frozenset(ledger_segments)
        )
        return any(segment in reserved for segment in self.segments)


def _diagnose(code: str) -> str:
    """Explain why ``code`` fails the grammar."""
    parts = code.split(".")
    if parts[0] != "HERA":
        return "must start with 'HERA.'"
    if len(parts) < 2 or not _VERSION_PATTERN.fullmatch(parts[-1]):
        return "must end with a version segment like '.v1'"
    if len(parts) < 3 or not _DOMAIN_PATTERN.fullmatch(parts[1]):
        return "domain segment must be 3-15 uppercase letters or digits"
    middle = parts[2:-1]
    if len(middle) < MIN_SEGMENTS:
        return (
            f"needs at least {MIN_SEGMENTS} segments between domain and "
            f"version, got {len(middle)}"
        )
    if len(middle) > MAX_SEGMENTS:
        return (
            f"allows at most {MAX_SEGMENTS} segments between domain and "
            f"version, got {len(middle)}"
        )
    for segment in middle:
        if not _SEGMENT_PATTERN.fullmatch(segment):
            return (
                f"segment '{segment}' must be 2-30 uppercase letters, digits "
                f"or underscores"
            )
    return "does not match the smart code grammar"


def validate(code: Any, field: str = "smart_code") -> SmartCode:
    """
    Parse a smart code.

    Raises:
        InvalidSmartCodeError: code is missing, not a string, or does not
            match the grammar.
    """
    if code is None or code == "":
        raise InvalidSmartCodeError(code, "is required", field=field)
    if not isinstance(code, str):
        raise InvalidSmartCodeError(code, "must be a string", field=field)
    if not SMART_CODE_PATTERN.fullmatch(code):
        raise InvalidSmartCodeError(code, _diagnose(code), field=field)

    parts = code.split(".")
    return SmartCode(
        value=code,
        domain=parts[1],
        segments=tuple(parts[2:-1]),
        version=int(parts[-1][1:]),
    )


def is_valid(code: Any) -> bool:
    """Non-raising form of :func:`validate`."""
    return isinstance(code, str) and SMART_CODE_PATTERN.fullmatch(code) is not None


def is_ledger_line(code: Any, ledger_segments: Iterable[str] | None = None) -> bool:
    """True when ``code`` is valid and carries a ledger segment."""
    if not is_valid(code):
        return False
    return validate(code).is_ledger(ledger_segments)
