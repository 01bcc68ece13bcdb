"""
Engine settings -- the kernel-side view of configuration.

The kernel never reads configuration files.  ``hera_config`` loads YAML and
bridges it into this frozen dataclass; tests and embedders may construct it
directly.  The defaults are the engine's behaviour with no configuration.
"""

from dataclasses import dataclass
from decimal import Decimal

from hera_kernel.domain.ledger import DEFAULT_EXCLUDED_LINE_TYPES, DEFAULT_TOLERANCE
from hera_kernel.domain.smart_code import DEFAULT_LEDGER_SEGMENTS
from hera_kernel.exceptions import InvalidPayloadError


@dataclass(frozen=True)
class EngineSettings:
    """
    Tunables consumed by services and selectors.

    Guarantees:
        - default_limit <= max_limit and both are positive.
        - balance_tolerance is a non-negative Decimal.
    """

    ledger_segments: frozenset[str] = DEFAULT_LEDGER_SEGMENTS
    balance_tolerance: Decimal = DEFAULT_TOLERANCE
    total_excluded_line_types: frozenset[str] = DEFAULT_EXCLUDED_LINE_TYPES
    default_limit: int = 50
    max_limit: int = 500
    single_active_edge_types: frozenset[str] = frozenset()

    def __post_init__(self):
        if self.default_limit <= 0 or self.max_limit <= 0:
            raise ValueError("read limits must be positive")
        if self.default_limit > self.max_limit:
            raise ValueError(
                f"default_limit {self.default_limit} exceeds max_limit {self.max_limit}"
            )
        if self.balance_tolerance < 0:
            raise ValueError("balance_tolerance must be non-negative")
        if not self.ledger_segments:
            raise ValueError("at least one ledger segment is required")

    def clamp_limit(self, limit: int | None) -> int:
        """
        Raises:
            InvalidPayloadError: limit is not an integer.
        """
        if limit is None:
            return self.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise InvalidPayloadError("limit must be an integer", field="limit")
        return max(1, min(limit, self.max_limit))
