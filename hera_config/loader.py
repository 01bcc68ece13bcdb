"""
Configuration Loader (``hera_config.loader``).

Responsibility
--------------
Loads ``engine.yaml`` and parses it into the frozen ``hera_config.schema``
dataclasses.  The single public entry point for runtime config is
``hera_config.get_engine_config()``; this module is what it calls.

Architecture position
---------------------
**Config layer** -- no dependency on kernel services or models.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Unknown keys in a section are rejected, so a typo never silently falls
  back to a default.
* ``compute_checksum`` is deterministic for identical parsed data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError``.
* Wrong value types or unknown keys  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from hera_config.schema import (
    DatabaseConfig,
    EngineConfig,
    LedgerConfig,
    LoggingConfig,
    ReadsConfig,
    RelationshipsConfig,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, schema: type) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping")
    allowed = {f.name for f in fields(schema)}
    unknown = sorted(set(section) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {', '.join(unknown)}")
    return section


def _int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def _bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false, got {value!r}")
    return value


def _str_tuple(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings")
    return tuple(value)


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    """Parse the ``database`` section.  ``url`` is required."""
    section = _section(data, "database", DatabaseConfig)
    url = section["url"]
    if not isinstance(url, str) or not url:
        raise ValueError("database.url must be a non-empty string")
    defaults = DatabaseConfig(url=url)
    return DatabaseConfig(
        url=url,
        echo=_bool(section.get("echo", defaults.echo), "database.echo"),
        pool_size=_int(section.get("pool_size", defaults.pool_size), "database.pool_size"),
        max_overflow=_int(
            section.get("max_overflow", defaults.max_overflow), "database.max_overflow"
        ),
        pool_timeout=_int(
            section.get("pool_timeout", defaults.pool_timeout), "database.pool_timeout"
        ),
        pool_recycle=_int(
            section.get("pool_recycle", defaults.pool_recycle), "database.pool_recycle"
        ),
        pool_pre_ping=_bool(
            section.get("pool_pre_ping", defaults.pool_pre_ping), "database.pool_pre_ping"
        ),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerConfig:
    section = _section(data, "ledger", LedgerConfig)
    defaults = LedgerConfig()
    tolerance = str(section.get("balance_tolerance", defaults.balance_tolerance))
    try:
        if Decimal(tolerance) < 0:
            raise ValueError("ledger.balance_tolerance must be non-negative")
    except InvalidOperation:
        raise ValueError(
            f"ledger.balance_tolerance must be a decimal, got {tolerance!r}"
        ) from None
    segments = _str_tuple(
        section.get("ledger_segments", list(defaults.ledger_segments)),
        "ledger.ledger_segments",
    )
    if not segments:
        raise ValueError("ledger.ledger_segments must name at least one segment")
    return LedgerConfig(
        ledger_segments=segments,
        balance_tolerance=tolerance,
        total_excluded_line_types=_str_tuple(
            section.get(
                "total_excluded_line_types", list(defaults.total_excluded_line_types)
            ),
            "ledger.total_excluded_line_types",
        ),
    )


def parse_reads(data: dict[str, Any]) -> ReadsConfig:
    section = _section(data, "reads", ReadsConfig)
    defaults = ReadsConfig()
    return ReadsConfig(
        default_limit=_int(
            section.get("default_limit", defaults.default_limit), "reads.default_limit"
        ),
        max_limit=_int(section.get("max_limit", defaults.max_limit), "reads.max_limit"),
    )


def parse_relationships(data: dict[str, Any]) -> RelationshipsConfig:
    section = _section(data, "relationships", RelationshipsConfig)
    return RelationshipsConfig(
        single_active_edge_types=_str_tuple(
            section.get("single_active_edge_types"),
            "relationships.single_active_edge_types",
        ),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    section = _section(data, "logging", LoggingConfig)
    level = str(section.get("level", LoggingConfig().level)).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}")
    return LoggingConfig(level=level)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (deterministic)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse a whole configuration document.

    Raises:
        KeyError: config_id, version or database.url missing.
        ValueError: malformed values or unknown keys.
    """
    known = {"config_id", "version", "database", "ledger", "reads", "relationships", "logging"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown top-level keys: {', '.join(unknown)}")

    return EngineConfig(
        config_id=str(data["config_id"]),
        version=_int(data["version"], "version"),
        database=parse_database(data),
        ledger=parse_ledger(data),
        reads=parse_reads(data),
        relationships=parse_relationships(data),
        logging=parse_logging(data),
        checksum=compute_checksum(data),
    )


def load_engine_config(
    path: Path, database_url: str | None = None
) -> EngineConfig:
    """
    Load and parse ``path``.  ``database_url`` replaces database.url before
    parsing, so the override is part of the checksum.
    """
    data = load_yaml_file(Path(path))
    if database_url:
        database = dict(data.get("database") or {})
        database["url"] = database_url
        data = {**data, "database": database}
    return parse_engine_config(data)
