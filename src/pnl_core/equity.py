"""
Realized equity curve and maximum drawdown.

Equity starts at a baseline and accumulates each closed trade's pnl_usd in
close-time order. Drawdown is measured from the running peak, and only while
that peak is positive. Unrealized swings are not part of the curve.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from itertools import accumulate
from typing import Sequence

from pnl_core.contracts import ClosedTrade, EquityCurve, EquityPoint


@dataclass(frozen=True)
class _EquityState:
    equity: float
    peak: float
    drawdown_pct: float
    max_drawdown_pct: float
    at: datetime | None = None


def drawdown_pct(peak: float, equity: float) -> float:
    if peak <= 0:
        return 0.0
    return (peak - equity) / peak * 100


def _step(state: _EquityState, trade: ClosedTrade) -> _EquityState:
    equity = state.equity + trade.pnl_usd
    peak = max(state.peak, equity)
    dd = drawdown_pct(peak, equity)
    return _EquityState(
        equity=equity,
        peak=peak,
        drawdown_pct=dd,
        max_drawdown_pct=max(state.max_drawdown_pct, dd),
        at=trade.closed_at,
    )


def build(closed_trades: Sequence[ClosedTrade], baseline: float = 0.0) -> EquityCurve:
    """Build the curve from closed trades (stably re-sorted by close time)."""
    ordered = sorted(closed_trades, key=lambda t: t.closed_at)
    start = _EquityState(equity=baseline, peak=baseline, drawdown_pct=0.0, max_drawdown_pct=0.0)
    states = list(accumulate(ordered, _step, initial=start))
    final = states[-1]
    return EquityCurve(
        points=[EquityPoint(s.at, s.equity, s.drawdown_pct) for s in states[1:]],
        running=final.equity,
        peak=final.peak,
        max_drawdown_pct=final.max_drawdown_pct,
    )
