"""
Field alias loader: JSON file -> frozen FieldAliases, validated against JSON Schema.

Default values: src/config/field_aliases.json
Schema:         src/config/field_aliases.schema.json

Each canonical fill field maps to an ordered list of dotted alias paths that the
normalizer tries after the canonical name itself, e.g. ``raw.order.total_fees``.
The optional ``embedded_fills`` block locates execution-leg arrays inside a raw
payload and names the per-leg price, size and fee keys.
An override file holds only the fields to replace; it is deep-merged on top of
the defaults before schema validation.

Usage:
    from config.aliases import load_field_aliases
    aliases = load_field_aliases()
    aliases.paths("fee_usd")  # -> ("fee", "commission", ...)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

from config.loader import ConfigError

logger = logging.getLogger("pnl.config")

DEFAULT_ALIASES_PATH = Path(__file__).resolve().parent / "field_aliases.json"
DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parent / "field_aliases.schema.json"

CANONICAL_FIELDS = (
    "timestamp",
    "side",
    "symbol",
    "price",
    "base_qty",
    "usd_notional",
    "fee_usd",
    "order_id",
)

EMBEDDED_KEYS = ("paths", "price", "base_qty", "fee_usd")


@dataclass(frozen=True)
class FieldAliases:
    """Ordered alias paths per canonical fill field.

    ``embedded`` describes execution legs nested inside a ledger row's raw
    payload: ``paths`` locates the leg array, the other keys are read from
    each leg.
    """

    version: str
    fields: dict[str, tuple[str, ...]]
    embedded: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def paths(self, name: str) -> tuple[str, ...]:
        return self.fields.get(name, ())

    def leg_paths(self, name: str) -> tuple[str, ...]:
        return self.embedded.get(name, ())


# ---------------------------------------------------------------------------
# Deep merge for overrides
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base*.

    Dict values merge recursively; anything else (alias lists included) replaces.
    """
    merged = dict(base)
    for key, val in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def _read_json(path: Path, label: str) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"{label} not found: {path}")
    try:
        with open(path) as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{label} is not valid JSON: {exc}") from exc


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    """Validate *data* against the JSON Schema at *schema_path*."""
    schema = _read_json(schema_path, "Schema file")
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise ConfigError(f"Field alias config validation failed: {exc.message}") from exc


def load_field_aliases(
    config_path: str | Path | None = None,
    schema_path: str | Path | None = None,
    overrides_path: str | Path | None = None,
) -> FieldAliases:
    """Load and validate the field alias table.

    Parameters
    ----------
    config_path:
        Alias JSON file. Defaults to the packaged ``field_aliases.json``.
    schema_path:
        JSON Schema file. Defaults to the packaged ``field_aliases.schema.json``.
    overrides_path:
        Optional partial alias file deep-merged on top of the base table.

    Raises
    ------
    ConfigError
        If a file is missing, unparseable, or fails schema validation.
    """
    cfg_path = Path(config_path) if config_path else DEFAULT_ALIASES_PATH
    sch_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    data = _read_json(cfg_path, "Field alias config")
    if overrides_path:
        data = _deep_merge(data, _read_json(Path(overrides_path), "Field alias overrides"))
        logger.info("Loaded field alias overrides: %s", Path(overrides_path).name)

    _validate_schema(data, sch_path)

    embedded = data.get("embedded_fills") or {}
    return FieldAliases(
        version=data["version"],
        fields={name: tuple(data["fields"][name]) for name in CANONICAL_FIELDS},
        embedded={key: tuple(embedded.get(key, ())) for key in EMBEDDED_KEYS},
    )
