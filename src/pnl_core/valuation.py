"""Mark remaining open lots to a spot price."""

from __future__ import annotations

import math
from typing import Sequence

from pnl_core.contracts import Lot, OpenPosition


def value(open_lots: Sequence[Lot], spot_price: float | None) -> OpenPosition:
    """Quantity, fee-inclusive cost basis and unrealized PnL of the open lots.

    A missing or non-positive spot price yields ``unrealized_pnl_usd=None`` so
    "price unknown" stays distinguishable from "no open position".
    """
    qty = sum(lot.qty for lot in open_lots)
    cost = sum(lot.cost_usd for lot in open_lots)
    avg_price = cost / qty if qty > 0 else None

    if spot_price is None or not math.isfinite(spot_price) or spot_price <= 0:
        return OpenPosition(
            base_qty=qty,
            cost_usd=cost,
            avg_price=avg_price,
            spot_price=None,
            unrealized_pnl_usd=None,
        )

    return OpenPosition(
        base_qty=qty,
        cost_usd=cost,
        avg_price=avg_price,
        spot_price=spot_price,
        unrealized_pnl_usd=qty * spot_price - cost,
    )
