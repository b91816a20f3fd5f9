"""
Snapshot -> JSON response dict (camelCase keys, rounded numbers).

Rounding: USD 2 dp, PnL 6 dp, quantities 8 dp, bps 2 dp, drawdown 3 dp.
Unknown values stay ``None`` (JSON ``null``); they are never reported as zero.
"""

from __future__ import annotations

from datetime import datetime

from pnl_core.contracts import WindowStats
from snapshot.service import Snapshot


def _round(value: float | None, places: int) -> float | None:
    if value is None:
        return None
    return round(float(value), places)


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


def _window(stats: WindowStats) -> dict:
    return {
        "totalTrades": stats.count,
        "wins": stats.wins,
        "losses": stats.losses,
        "winRate": _round(stats.win_rate, 2),
        "avgWinBps": _round(stats.avg_win_bps, 2),
        "avgLossBps": _round(stats.avg_loss_bps, 2),
        "netRealizedPnlUsd": _round(stats.net_pnl_usd, 6),
        "feesPaidUsd": _round(stats.fees_paid_usd, 2),
    }


def to_response_dict(snapshot: Snapshot) -> dict:
    req = snapshot.request
    pos = snapshot.position
    diag = snapshot.diagnostics
    return {
        "ok": True,
        "generatedAt": _iso(snapshot.generated_at),
        "since": _iso(req.since),
        "symbol": req.symbol,
        "userId": req.user_id,
        "limit": req.limit,
        "rowsScanned": snapshot.rows_scanned,
        "fillsUsed": snapshot.fills_used,
        **_window(snapshot.all_time),
        "openPosition": {
            "baseQty": _round(pos.base_qty, 8),
            "costUsd": _round(pos.cost_usd, 2),
            "avgPrice": _round(pos.avg_price, 2),
            "spotPrice": _round(pos.spot_price, 2),
            "unrealizedPnlUsd": _round(pos.unrealized_pnl_usd, 6),
        },
        "equity": {
            "running": _round(snapshot.equity.running, 6),
            "peak": _round(snapshot.equity.peak, 6),
            "maxDrawdownPct": _round(snapshot.equity.max_drawdown_pct, 3),
        },
        "last24h": {"since": _iso(snapshot.last_24h.since), **_window(snapshot.last_24h)},
        "diagnostics": {
            "sourceUsed": diag.source_used,
            "partialFailures": diag.partial_failures,
            "droppedRecords": diag.dropped_records,
            "droppedReasons": diag.dropped_reasons,
            "oversoldQty": _round(diag.oversold_qty, 8),
            "exchangeError": diag.exchange_error,
            "spotSource": diag.spot_source,
        },
    }
