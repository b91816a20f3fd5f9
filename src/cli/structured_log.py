"""
Structured JSON event logger for snapshot runs.

Emits one JSON object per line to stderr so log aggregators can parse
snapshot outcomes without scraping human-readable output.

Optional webhook: when configured, alert events (exchange_fallback,
oversell_detected, unauthorized, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("pnl.events")

ALERT_EVENTS = frozenset({"exchange_fallback", "oversell_detected", "unauthorized", "error"})


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        symbol: str,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._symbol = symbol
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "symbol": fields.pop("symbol", None) or self._symbol,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record, default=str) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record, default=str).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except (OSError, ValueError) as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def snapshot_start(self, since: str, limit: int, user_id: str | None = None, symbol: str | None = None) -> dict:
        return self._emit("snapshot_start", since=since, limit=limit, user_id=user_id, symbol=symbol)

    def records_dropped(self, count: int, reasons: dict[str, int], source: str = "ledger") -> dict:
        return self._emit("records_dropped", count=count, reasons=reasons, source=source)

    def exchange_fallback(self, reason: str, status: int | None = None, partial: bool = False) -> dict:
        return self._emit("exchange_fallback", reason=reason, status=status, partial=partial)

    def oversell_detected(self, qty: float, sells: int) -> dict:
        return self._emit("oversell_detected", qty=qty, sells=sells)

    def snapshot_complete(
        self,
        rows: int,
        fills: int,
        trades: int,
        source_used: str,
        net_pnl_usd: float,
    ) -> dict:
        return self._emit(
            "snapshot_complete",
            rows=rows,
            fills=fills,
            trades=trades,
            source_used=source_used,
            net_pnl_usd=round(net_pnl_usd, 6),
        )

    def unauthorized(self, remote: str = "", reason: str = "") -> dict:
        return self._emit("unauthorized", remote=remote, reason=reason)

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)
