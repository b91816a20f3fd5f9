"""
FIFO lot matching: time-ordered fills -> closed trades + remaining open lots.

One deque of lots per symbol. A BUY appends a lot; a SELL consumes lots from
the head, emitting one ClosedTrade per match step with both fees prorated.
Selling more than the available inventory never raises: the excess is left
unmatched and reported as an Oversell.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import replace
from typing import Iterable, Sequence

from pnl_core.contracts import ClosedTrade, Fill, Lot, MatchResult, Oversell, Side

logger = logging.getLogger(__name__)

# Float dust left over from repeated proration
QTY_EPSILON = 1e-12


def sort_fills(fills: Iterable[Fill]) -> list[Fill]:
    """Stable sort by timestamp only; equal timestamps keep input order."""
    return sorted(fills, key=lambda f: f.timestamp)


def pnl_bps(entry_price: float, exit_price: float) -> float | None:
    if entry_price <= 0:
        return None
    return (exit_price - entry_price) / entry_price * 10_000


def _close(lot: Lot, sell: Fill, qty: float) -> tuple[ClosedTrade, float]:
    """Match ``qty`` of ``lot`` against ``sell``. Returns the trade and the lot fee used."""
    lot_fee = lot.fee_usd * (qty / lot.qty)
    sell_fee = sell.fee_usd * (qty / sell.base_qty)
    fees = lot_fee + sell_fee
    trade = ClosedTrade(
        opened_at=lot.opened_at,
        closed_at=sell.timestamp,
        symbol=sell.symbol,
        qty=qty,
        entry_price=lot.unit_cost,
        exit_price=sell.price,
        fees_usd=fees,
        pnl_usd=(sell.price - lot.unit_cost) * qty - fees,
        pnl_bps=pnl_bps(lot.unit_cost, sell.price),
    )
    return trade, lot_fee


def match(fills: Sequence[Fill]) -> MatchResult:
    """Run FIFO matching over fills already ordered by timestamp (ascending).

    Parameters
    ----------
    fills:
        Canonical fills, stably sorted by timestamp. Use ``sort_fills`` after
        merging sources; this function does not re-sort.
    """
    queues: dict[str, deque[Lot]] = defaultdict(deque)
    closed: list[ClosedTrade] = []
    oversold: list[Oversell] = []

    for fill in fills:
        queue = queues[fill.symbol]

        if fill.side is Side.BUY:
            queue.append(
                Lot(
                    symbol=fill.symbol,
                    qty=fill.base_qty,
                    unit_cost=fill.price,
                    fee_usd=fill.fee_usd,
                    opened_at=fill.timestamp,
                    order_id=fill.order_id,
                )
            )
            continue

        remaining = fill.base_qty
        while remaining > QTY_EPSILON and queue:
            lot = queue[0]
            matched = min(lot.qty, remaining)
            trade, lot_fee = _close(lot, fill, matched)
            closed.append(trade)

            left = lot.qty - matched
            if left <= QTY_EPSILON:
                queue.popleft()
            else:
                queue[0] = replace(lot, qty=left, fee_usd=lot.fee_usd - lot_fee)
            remaining -= matched

        if remaining > QTY_EPSILON:
            logger.warning(
                "Oversell on %s: %.8f of SELL %s had no open inventory",
                fill.symbol,
                remaining,
                fill.order_id or fill.timestamp.isoformat(),
            )
            oversold.append(
                Oversell(
                    symbol=fill.symbol,
                    qty=remaining,
                    closed_at=fill.timestamp,
                    order_id=fill.order_id,
                )
            )

    open_lots = [lot for queue in queues.values() for lot in queue]
    return MatchResult(closed_trades=closed, open_lots=open_lots, oversold=oversold)
