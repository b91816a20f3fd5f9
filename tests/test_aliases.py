"""Tests for the field alias table: packaged defaults, overrides, schema validation."""

import json
from pathlib import Path

import pytest

from config import CANONICAL_FIELDS, ConfigError, load_field_aliases
from pnl_core.normalizer import FillNormalizer


def test_packaged_defaults_load() -> None:
    aliases = load_field_aliases()
    assert aliases.version == "0.1"
    assert set(aliases.fields) == set(CANONICAL_FIELDS)
    assert "raw.order.total_fees" in aliases.paths("fee_usd")
    assert aliases.paths("base_qty")[0] == "base_size"
    assert aliases.paths("unknown") == ()


def test_override_replaces_one_field(tmp_path: Path) -> None:
    override = tmp_path / "aliases.json"
    override.write_text(json.dumps({"fields": {"fee_usd": ["raw.my_fee"]}}))
    aliases = load_field_aliases(overrides_path=override)
    assert aliases.paths("fee_usd") == ("raw.my_fee",)
    assert "product_id" in aliases.paths("symbol")

    fill = FillNormalizer(aliases).normalize(
        {"created_at": "2024-01-01T00:00:00Z", "side": "BUY", "price": 1, "base_size": 1, "raw": {"my_fee": 0.3}}
    )
    assert fill.fee_usd == 0.3


@pytest.mark.parametrize(
    "override",
    [
        {"fields": {"fee_usd": "fee"}},
        {"fields": {"fee_usd": ["bad path!"]}},
        {"fields": {"fee_usd": ["fee", "fee"]}},
        {"fields": {"extra_field": ["x"]}},
        {"unexpected": True},
    ],
)
def test_schema_rejects_bad_override(tmp_path: Path, override: dict) -> None:
    path = tmp_path / "aliases.json"
    path.write_text(json.dumps(override))
    with pytest.raises(ConfigError, match="validation failed"):
        load_field_aliases(overrides_path=path)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_field_aliases(config_path=tmp_path / "nope.json")


def test_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "aliases.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError, match="not valid JSON"):
        load_field_aliases(config_path=path)


def test_embedded_leg_paths() -> None:
    aliases = load_field_aliases()
    assert "raw.success_response.order.fills" in aliases.leg_paths("paths")
    assert aliases.leg_paths("price")[0] == "price"
    assert "quantity" in aliases.leg_paths("base_qty")
    assert aliases.leg_paths("nope") == ()


def test_embedded_override_replaces_paths(tmp_path: Path) -> None:
    override = tmp_path / "aliases.json"
    override.write_text(json.dumps({"embedded_fills": {"paths": ["raw.executions"]}}))
    aliases = load_field_aliases(overrides_path=override)
    assert aliases.leg_paths("paths") == ("raw.executions",)
    assert "price" in aliases.leg_paths("price")


def test_embedded_override_rejects_unknown_key(tmp_path: Path) -> None:
    override = tmp_path / "aliases.json"
    override.write_text(json.dumps({"embedded_fills": {"notional": ["x"]}}))
    with pytest.raises(ConfigError, match="validation failed"):
        load_field_aliases(overrides_path=override)
