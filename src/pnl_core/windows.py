"""
Windowed aggregates over closed trades: win/loss counts, win rate, average
win/loss in basis points, net realized PnL and fees paid.

A trade belongs to a window when it closed at or after the cutoff. Matching is
always done over the full history first, so a trade closed in the window
keeps the entry price of a lot opened before it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from pnl_core.contracts import ClosedTrade, Fill, WindowStats


def _mean(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def aggregate(
    closed_trades: Sequence[ClosedTrade],
    since: datetime | None = None,
    *,
    fills: Sequence[Fill] | None = None,
) -> WindowStats:
    """Aggregate trades closed at or after ``since`` (all trades when None).

    Parameters
    ----------
    closed_trades:
        Output of the FIFO matcher.
    since:
        Window cutoff (inclusive).
    fills:
        When given, ``fees_paid_usd`` sums the fee of every fill in the window,
        including BUYs that are still open. Otherwise it sums the fees
        allocated to the window's closed trades.
    """
    trades = [t for t in closed_trades if since is None or t.closed_at >= since]
    wins = [t for t in trades if t.pnl_usd > 0]
    losses = [t for t in trades if t.pnl_usd < 0]

    if fills is not None:
        fees = sum(f.fee_usd for f in fills if since is None or f.timestamp >= since)
    else:
        fees = sum(t.fees_usd for t in trades)

    return WindowStats(
        since=since,
        count=len(trades),
        wins=len(wins),
        losses=len(losses),
        win_rate=len(wins) / len(trades) * 100 if trades else None,
        avg_win_bps=_mean([t.pnl_bps for t in wins if t.pnl_bps is not None]),
        avg_loss_bps=_mean([t.pnl_bps for t in losses if t.pnl_bps is not None]),
        net_pnl_usd=sum(t.pnl_usd for t in trades),
        fees_paid_usd=fees,
    )
