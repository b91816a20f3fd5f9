"""
Fill source reconciliation: exchange fills override ledger fills per order id.

Ledger rows are written at request time and can miss later fee or settlement
corrections; exchange fills are authoritative after the fact. Pure merge; the
caller sorts the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from pnl_core.contracts import Fill

SOURCE_EXCHANGE = "exchange"
SOURCE_LEDGER = "ledger"
SOURCE_MIXED = "mixed"


@dataclass(frozen=True)
class ReconcileResult:
    fills: list[Fill]
    source_used: str
    overridden_orders: int = 0


def reconcile(
    local_fills: Sequence[Fill],
    exchange_fills_by_order: Mapping[str, Sequence[Fill]] | None,
    *,
    exchange_failed: bool = False,
) -> ReconcileResult:
    """Pick the fill list to feed the matcher.

    Exchange fills win for every order id they cover. Ledger fills are kept for
    order ids the exchange did not return and for rows without an order id.
    When the exchange call failed outright or returned nothing, the ledger is
    used as-is.
    """
    covered = {
        order_id: list(fills)
        for order_id, fills in (exchange_fills_by_order or {}).items()
        if fills
    }
    if exchange_failed or not covered:
        return ReconcileResult(fills=list(local_fills), source_used=SOURCE_LEDGER)

    kept = [f for f in local_fills if f.order_id is None or f.order_id not in covered]
    overridden = {f.order_id for f in local_fills if f.order_id in covered}

    merged: list[Fill] = list(kept)
    for fills in covered.values():
        merged.extend(fills)

    return ReconcileResult(
        fills=merged,
        source_used=SOURCE_MIXED if kept else SOURCE_EXCHANGE,
        overridden_orders=len(overridden),
    )
