"""
hera_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_engine_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  Sits above ``hera_kernel``.  The kernel MUST NEVER
    import from ``hera_config``; ``hera_config.bridges`` translates an
    EngineConfig into kernel inputs.

Invariants enforced:
    - Single entrypoint: runtime config flows through ``get_engine_config()``.
    - Deterministic: the same YAML and overrides always produce the same
      checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configured YAML file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or malformed keys.

Audit relevance:
    Every successful call logs ``engine_config_loaded`` with the config id,
    version and checksum, tying a process's behaviour to the exact
    configuration it ran with.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from hera_config.loader import load_engine_config
from hera_config.schema import EngineConfig

_logger = logging.getLogger("hera_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "engine.yaml"

CONFIG_PATH_ENV = "HERA_ENGINE_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_engine_config(path: Path | str | None = None) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``path``, then ``$HERA_ENGINE_CONFIG``,
    then the packaged ``engine.yaml``.  ``$DATABASE_URL``, when set,
    replaces ``database.url``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value is malformed or a key is unknown.
    """
    source = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = load_engine_config(source, database_url=os.environ.get(DATABASE_URL_ENV))

    _logger.info(
        "engine_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(source),
        },
    )
    return config


__all__ = ["EngineConfig", "get_engine_config"]
