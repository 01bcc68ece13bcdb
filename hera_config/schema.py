"""
EngineConfig schema.

The typed form of ``engine.yaml``.  The loader parses YAML into these frozen
dataclasses; bridges turn them into kernel inputs (EngineSettings, the
SQLAlchemy engine, logging).

Key distinction:
  engine.yaml   = source artifact (human-authored, versioned)
  EngineConfig  = runtime artifact (parsed, frozen, checksummed)
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection and pool parameters.  Pool sizes are ignored on SQLite."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True


@dataclass(frozen=True)
class LedgerConfig:
    """Ledger line classification, balance tolerance and the total rule."""

    ledger_segments: tuple[str, ...] = ("GL",)
    balance_tolerance: str = "0.01"  # Decimal as string
    total_excluded_line_types: tuple[str, ...] = ("payment", "commission")


@dataclass(frozen=True)
class ReadsConfig:
    default_limit: int = 50
    max_limit: int = 500


@dataclass(frozen=True)
class RelationshipsConfig:
    """Relationship types limited to one active edge per from_entity."""

    single_active_edge_types: tuple[str, ...] = ()


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """
    Complete engine configuration.

    ``checksum`` is the SHA-256 of the canonical JSON of the parsed source
    (after environment overrides), so two processes running the same
    configuration log the same fingerprint.
    """

    config_id: str
    version: int
    database: DatabaseConfig
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    reads: ReadsConfig = field(default_factory=ReadsConfig)
    relationships: RelationshipsConfig = field(default_factory=RelationshipsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
