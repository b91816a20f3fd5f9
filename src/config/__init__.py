"""
Configuration loaders.

App config:    reads config.yaml, resolves env vars for secrets.
Field aliases: reads field_aliases.json (or override), validates against JSON Schema.
"""

from config.aliases import (
    CANONICAL_FIELDS,
    FieldAliases,
    load_field_aliases,
)
from config.loader import (
    AppConfig,
    ConfigError,
    ExchangeConfig,
    LedgerConfig,
    LoggingConfig,
    ServerConfig,
    SnapshotConfig,
    load_config,
)

__all__ = [
    # App config (YAML)
    "AppConfig",
    "ConfigError",
    "ExchangeConfig",
    "LedgerConfig",
    "LoggingConfig",
    "ServerConfig",
    "SnapshotConfig",
    "load_config",
    # Field aliases (JSON + schema)
    "CANONICAL_FIELDS",
    "FieldAliases",
    "load_field_aliases",
]
