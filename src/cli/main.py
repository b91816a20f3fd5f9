"""
CLI entry point: pnl snapshot | record | serve | token | accounts | health.

Every command loads config from --config (default config.yaml). Secrets come
from the environment (a .env file is honoured).
"""

import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import click
from dotenv import load_dotenv

from config import load_config

load_dotenv()

logger = logging.getLogger("pnl")


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _events(cfg, symbol: str | None = None):
    from cli.structured_log import StructuredEventLogger

    return StructuredEventLogger(
        symbol or cfg.symbol,
        enabled=cfg.logging.structured_logs,
        webhook_url=cfg.logging.webhook_url,
    )


def _signer(cfg):
    from exchange.auth import AuthTokenSigner
    from exchange.errors import InvalidKeyMaterial

    if not cfg.exchange.has_credentials:
        raise click.ClickException("COINBASE_API_KEY_NAME and COINBASE_PRIVATE_KEY must be set.")
    try:
        return AuthTokenSigner(
            cfg.exchange.api_key_name,
            cfg.exchange.private_key,
            cfg.exchange.key_alg,
            host=cfg.exchange.host,
        )
    except InvalidKeyMaterial as exc:
        raise click.ClickException(f"Unusable exchange credentials: {exc}") from exc


def _read_rows(path: Path) -> list[dict]:
    """JSON array, single JSON object, or JSON lines."""
    text = path.read_text()
    stripped = text.strip()
    if not stripped:
        return []
    if stripped[0] in "[{":
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
    rows = []
    for n, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            rows.append(json.loads(line))
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"{path}:{n}: not valid JSON ({exc.msg})") from exc
    return rows


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """pnl-engine: FIFO trade-ledger reconciliation and PnL snapshots."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- pnl snapshot ----------


@cli.command()
@click.option("--since", "since_str", default=None, help="Start of the ledger window (ISO). Default: lookback_days ago.")
@click.option("--limit", default=None, type=int, help="Max ledger rows (clamped to 1..snapshot.max_limit).")
@click.option("--user-id", default=None, help="Only rows for this user.")
@click.option("--symbol", default=None, help="Instrument (default: config symbol).")
@click.option("--trades", "show_trades", default=0, help="Also list the last N closed trades.")
@click.option("--json", "as_json", is_flag=True, help="Print the JSON response instead of text.")
@click.pass_context
def snapshot(
    ctx: click.Context,
    since_str: str | None,
    limit: int | None,
    user_id: str | None,
    symbol: str | None,
    show_trades: int,
    as_json: bool,
) -> None:
    """Compute a PnL snapshot from the ledger (confirmed by exchange fills when configured)."""
    cfg = load_config(ctx.obj["config_path"])
    from api.server import parse_since
    from cli.output import format_snapshot
    from snapshot import SnapshotRequest, build_service, clamp_limit, to_response_dict

    sym = (symbol or cfg.symbol).upper()
    try:
        since = parse_since(since_str, datetime.now(timezone.utc), cfg.snapshot.lookback_days)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--since") from exc

    service = build_service(cfg, events=_events(cfg, sym))
    req = SnapshotRequest(
        since=since,
        limit=clamp_limit(
            limit if limit is not None else cfg.snapshot.default_limit,
            maximum=cfg.snapshot.max_limit,
        ),
        user_id=user_id,
        symbol=sym,
    )
    result = service.compute(req)
    if as_json:
        click.echo(json.dumps(to_response_dict(result), indent=2))
    else:
        click.echo(format_snapshot(result, show_trades=show_trades))


# ---------- pnl record ----------


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def record(ctx: click.Context, path: Path) -> None:
    """Append trade rows (JSON array or JSON lines) to the ledger."""
    cfg = load_config(ctx.obj["config_path"])
    from ledger.store import LedgerStore

    rows = _read_rows(path)
    bad = [i for i, r in enumerate(rows) if not isinstance(r, dict)]
    if bad:
        raise click.ClickException(f"Rows must be JSON objects; bad entries at index {bad[:5]}")

    store = LedgerStore(cfg.ledger.path)
    try:
        store.append_many(rows)
    except ValueError as exc:
        raise click.ClickException(f"Could not append rows: {exc}") from exc
    click.echo(f"Appended {len(rows)} rows to {cfg.ledger.path} (total {store.count()})")


# ---------- pnl serve ----------


@cli.command()
@click.option("--host", default=None, help="Bind address (default: server.host).")
@click.option("--port", default=None, type=int, help="Port (default: server.port).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Serve GET /pnl/snapshot and /health over HTTP."""
    cfg = load_config(ctx.obj["config_path"])
    from api.server import create_app
    from snapshot import build_service

    if not cfg.server.admin_secret:
        click.echo("Warning: no PNL_ADMIN_SECRET set; /pnl/snapshot will reject every request.", err=True)

    events = _events(cfg)
    app = create_app(
        lambda: build_service(cfg, events=events),
        cfg.server.admin_secret,
        default_symbol=cfg.symbol,
        lookback_days=cfg.snapshot.lookback_days,
        default_limit=cfg.snapshot.default_limit,
        max_limit=cfg.snapshot.max_limit,
        events=events,
    )
    app.run(host=host or cfg.server.host, port=port or cfg.server.port)


# ---------- pnl token ----------


@cli.command()
@click.argument("method")
@click.argument("path")
@click.pass_context
def token(ctx: click.Context, method: str, path: str) -> None:
    """Mint one bearer token for METHOD PATH (debugging auth failures)."""
    cfg = load_config(ctx.obj["config_path"])
    signer = _signer(cfg)
    click.echo(f"uri: {signer.build_uri(method, path)}", err=True)
    click.echo(signer.build_token(method, path))


# ---------- pnl accounts ----------


@cli.command()
@click.pass_context
def accounts(ctx: click.Context) -> None:
    """List exchange accounts; a quick check that credentials authenticate."""
    cfg = load_config(ctx.obj["config_path"])
    from exchange.client import ExchangeClient
    from exchange.errors import ExchangeRequestFailed

    client = ExchangeClient(_signer(cfg), base_url=cfg.exchange.base_url, timeout=cfg.exchange.timeout_seconds)
    try:
        rows = client.fetch_accounts()
    except ExchangeRequestFailed as exc:
        hint = " (check key name, key material and clock)" if exc.is_auth_failure else ""
        raise click.ClickException(f"{exc}{hint}") from exc

    click.echo(f"{len(rows)} account(s)")
    for acct in rows:
        bal = acct.get("available_balance") or {}
        click.echo(f"  {acct.get('currency', '?'):8s} {bal.get('value', '?'):>20s}  {acct.get('name', '')}")


# ---------- pnl health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check config, field aliases, ledger access and credentials.

    Exit code 0 = healthy, 1 = unhealthy.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded ({cfg.symbol})"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        from config.aliases import load_field_aliases
        aliases = load_field_aliases(overrides_path=cfg.snapshot.aliases_override_path)
        checks.append(("aliases", True, f"validated (version {aliases.version})"))
    except Exception as e:
        checks.append(("aliases", False, str(e)))

    try:
        from ledger.store import LedgerStore
        store = LedgerStore(cfg.ledger.path)
        checks.append(("ledger", True, f"{store.count()} rows in {cfg.ledger.path}"))
    except Exception as e:
        checks.append(("ledger", False, str(e)))

    if cfg.exchange.has_credentials:
        try:
            signer = _signer(cfg)
            checks.append(("credentials", True, f"{signer.algorithm} key loaded"))
        except click.ClickException as e:
            checks.append(("credentials", False, e.message))
    else:
        checks.append(("credentials", True, "not configured (ledger-only)"))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
