"""
PnL snapshot REST API.

Endpoints:
    /health         - Liveness, unauthenticated
    /pnl/snapshot   - Admin-gated snapshot (?since=ISO&limit=N&user_id=..&symbol=..)

The admin secret may arrive as ``X-Admin-Secret``, ``X-Cron-Secret``,
``Authorization: Bearer <secret>`` or ``?secret=``. It is checked before any
data is read.

Usage:
    from api.server import create_app
    app = create_app(lambda: build_service(cfg), cfg.server.admin_secret)
    app.run(host="127.0.0.1", port=8080)
"""

import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from flask import Flask, jsonify, request

from snapshot.report import to_response_dict
from snapshot.service import DEFAULT_LIMIT, MAX_LIMIT, SnapshotRequest, SnapshotService, clamp_limit

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}


class Unauthorized(Exception):
    """Missing or wrong admin secret (or none configured server-side)."""


def _presented_secret(headers: Any, args: Any) -> str:
    for name in ("x-admin-secret", "x-cron-secret"):
        value = (headers.get(name) or "").strip()
        if value:
            return value
    auth = (headers.get("authorization") or "").strip()
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return (args.get("secret") or "").strip()


def check_admin_secret(expected: str, headers: Any, args: Any) -> None:
    """Raise ``Unauthorized`` unless the request carries ``expected``."""
    if not expected:
        raise Unauthorized("admin secret not configured")
    presented = _presented_secret(headers, args)
    if not presented or not hmac.compare_digest(presented.encode(), expected.encode()):
        raise Unauthorized("bad admin secret")


def parse_since(value: str | None, now: datetime, lookback_days: int) -> datetime:
    """ISO-8601 text -> aware UTC datetime; empty means ``now - lookback_days``."""
    if not value:
        return now - timedelta(days=lookback_days)
    ts = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def create_app(
    service_factory: Callable[[], SnapshotService],
    admin_secret: str,
    *,
    default_symbol: str = "BTC-USD",
    lookback_days: int = 30,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
    events: Any = None,
) -> Flask:
    """Build the Flask app. ``service_factory`` is called once per snapshot request."""
    app = Flask(__name__)

    @app.errorhandler(Unauthorized)
    def unauthorized(exc):
        logger.warning("Rejected %s %s: %s", request.method, request.path, exc)
        if events:
            events.unauthorized(remote=request.remote_addr or "", reason=str(exc))
        return jsonify({"ok": False, "error": "unauthorized"}), 401, NO_STORE

    @app.errorhandler(500)
    def internal_error(exc):
        if events:
            events.error("snapshot_failed", str(getattr(exc, "original_exception", exc)))
        return jsonify({"ok": False, "error": "internal error"}), 500, NO_STORE

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.route("/pnl/snapshot")
    def pnl_snapshot():
        check_admin_secret(admin_secret, request.headers, request.args)

        now = datetime.now(timezone.utc)
        try:
            since = parse_since(request.args.get("since"), now, lookback_days)
        except ValueError:
            return jsonify({"ok": False, "error": "since must be an ISO-8601 timestamp"}), 400, NO_STORE

        req = SnapshotRequest(
            since=since,
            limit=clamp_limit(request.args.get("limit"), default_limit, max_limit),
            user_id=request.args.get("user_id") or None,
            symbol=(request.args.get("symbol") or default_symbol).upper(),
        )
        snapshot = service_factory().compute(req)
        return jsonify(to_response_dict(snapshot)), 200, NO_STORE

    return app
