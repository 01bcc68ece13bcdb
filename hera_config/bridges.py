"""
Config -> Kernel Bridges.

Functions that turn an EngineConfig into kernel inputs.  These live in
hera_config (the producer) because the kernel must NEVER import hera_config.

Usage:
    from hera_config import get_engine_config
    from hera_config.bridges import init_engine, to_engine_settings

    config = get_engine_config()
    engine = init_engine(config)
    orchestrator = UpsertOrchestrator(session, settings=to_engine_settings(config))
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.engine import Engine

from hera_config.schema import EngineConfig
from hera_kernel.db.engine import init_engine_from_url
from hera_kernel.domain.settings import EngineSettings
from hera_kernel.logging_config import configure_logging


def to_engine_settings(config: EngineConfig) -> EngineSettings:
    """Build the kernel's EngineSettings from a parsed configuration."""
    return EngineSettings(
        ledger_segments=frozenset(config.ledger.ledger_segments),
        balance_tolerance=Decimal(config.ledger.balance_tolerance),
        total_excluded_line_types=frozenset(
            t.lower() for t in config.ledger.total_excluded_line_types
        ),
        default_limit=config.reads.default_limit,
        max_limit=config.reads.max_limit,
        single_active_edge_types=frozenset(
            config.relationships.single_active_edge_types
        ),
    )


def init_engine(config: EngineConfig) -> Engine:
    """Initialize the kernel's global engine from the database section."""
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_pre_ping=db.pool_pre_ping,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )


def apply_logging(config: EngineConfig) -> None:
    """Configure kernel logging at the configured level (idempotent)."""
    configure_logging(level=config.logging.level)
