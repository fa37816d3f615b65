"""
textile_config -- single public entrypoint for kernel configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Lookup order for the YAML file:
    1. the ``path`` argument,
    2. the ``TEXTILE_CONFIG`` environment variable,
    3. ``config/textile.yaml`` next to this package, if present,
    4. built-in defaults.
Environment overrides are applied on top (see ``loader``).

Audit relevance:
    Every call emits a ``textile_config_loaded`` log entry with the
    source path, risk policy and database backend.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from textile_config.loader import load_config, parse_config
from textile_config.schema import (
    AccessConfig,
    ConcurrencyConfig,
    IdempotencyConfig,
    IntentConfig,
    KernelConfig,
    LedgerConfig,
    RiskConfig,
)

_logger = logging.getLogger("textile_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).resolve().parent.parent / "config" / "textile.yaml"


def get_active_config(path: Path | str | None = None) -> KernelConfig:
    """The ONLY public configuration entrypoint."""
    source = path or os.environ.get("TEXTILE_CONFIG")
    if source is None and _DEFAULT_CONFIG_FILE.exists():
        source = _DEFAULT_CONFIG_FILE
    config = load_config(source)
    _logger.info(
        "textile_config_loaded",
        extra={
            "source": str(source) if source else "defaults",
            "risk_policy": config.risk.policy,
            "database": config.database_url.split(":", 1)[0],
        },
    )
    return config


__all__ = [
    "AccessConfig",
    "ConcurrencyConfig",
    "IdempotencyConfig",
    "IntentConfig",
    "KernelConfig",
    "LedgerConfig",
    "RiskConfig",
    "get_active_config",
    "load_config",
    "parse_config",
]
