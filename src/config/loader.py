"""
Config loader: YAML file -> frozen dataclass tree.

Secrets resolved from environment variables (COINBASE_API_KEY_NAME,
COINBASE_PRIVATE_KEY, COINBASE_KEY_ALG, PNL_ADMIN_SECRET).
Config file holds only non-secret values.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

MAX_SNAPSHOT_LIMIT = 10_000


class ConfigError(Exception):
    """Raised when a config file cannot be loaded or validated."""


@dataclass(frozen=True)
class ExchangeConfig:
    base_url: str = "https://api.coinbase.com"
    host: str = "api.coinbase.com"
    timeout_seconds: float = 10.0
    batch_size: int = 25
    max_workers: int = 4
    max_pages: int = 20
    api_key_name: str = ""
    private_key: str = ""
    key_alg: str = "ES256"

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key_name and self.private_key)


@dataclass(frozen=True)
class LedgerConfig:
    path: str = "data/ledger.db"


@dataclass(frozen=True)
class SnapshotConfig:
    lookback_days: int = 30
    default_limit: int = 5_000
    max_limit: int = MAX_SNAPSHOT_LIMIT
    baseline_equity: float = 0.0
    aliases_override_path: str = ""


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    admin_secret: str = ""


@dataclass(frozen=True)
class LoggingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    symbol: str
    exchange: ExchangeConfig
    ledger: LedgerConfig
    snapshot: SnapshotConfig
    server: ServerConfig
    logging: LoggingConfig = LoggingConfig()


def _admin_secret_from_env() -> str:
    for name in ("PNL_ADMIN_SECRET", "ADMIN_SECRET", "CRON_SECRET"):
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return ""


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file.

    Secrets are resolved from environment variables:
      - COINBASE_API_KEY_NAME, COINBASE_PRIVATE_KEY, COINBASE_KEY_ALG
      - PNL_ADMIN_SECRET (falls back to ADMIN_SECRET, then CRON_SECRET)
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    ex_raw = raw.get("exchange") or {}
    ex_cfg = ExchangeConfig(
        base_url=str(ex_raw.get("base_url", "https://api.coinbase.com")).rstrip("/"),
        host=str(ex_raw.get("host", "api.coinbase.com")),
        timeout_seconds=float(ex_raw.get("timeout_seconds", 10.0)),
        batch_size=int(ex_raw.get("batch_size", 25)),
        max_workers=int(ex_raw.get("max_workers", 4)),
        max_pages=int(ex_raw.get("max_pages", 20)),
        api_key_name=os.environ.get("COINBASE_API_KEY_NAME", "").strip(),
        private_key=os.environ.get("COINBASE_PRIVATE_KEY", ""),
        key_alg=os.environ.get("COINBASE_KEY_ALG", "").strip() or str(ex_raw.get("key_alg", "ES256")),
    )
    if ex_cfg.batch_size < 1:
        raise ConfigError(f"exchange.batch_size must be >= 1, got {ex_cfg.batch_size}")

    l_raw = raw.get("ledger") or {}
    l_cfg = LedgerConfig(path=str(l_raw.get("path", "data/ledger.db")))

    s_raw = raw.get("snapshot") or {}
    s_cfg = SnapshotConfig(
        lookback_days=int(s_raw.get("lookback_days", 30)),
        default_limit=int(s_raw.get("default_limit", 5_000)),
        max_limit=min(int(s_raw.get("max_limit", MAX_SNAPSHOT_LIMIT)), MAX_SNAPSHOT_LIMIT),
        baseline_equity=float(s_raw.get("baseline_equity", 0.0)),
        aliases_override_path=str(s_raw.get("aliases_override_path", "")),
    )

    srv_raw = raw.get("server") or {}
    srv_cfg = ServerConfig(
        host=str(srv_raw.get("host", "127.0.0.1")),
        port=int(srv_raw.get("port", 8080)),
        admin_secret=_admin_secret_from_env(),
    )

    log_raw = raw.get("logging") or {}
    log_cfg = LoggingConfig(
        structured_logs=bool(log_raw.get("structured_logs", True)),
        webhook_url=str(log_raw.get("webhook_url", "")),
    )

    return AppConfig(
        symbol=str(raw.get("symbol", "BTC-USD")),
        exchange=ex_cfg,
        ledger=l_cfg,
        snapshot=s_cfg,
        server=srv_cfg,
        logging=log_cfg,
    )
