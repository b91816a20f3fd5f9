"""
Data contracts for pnl-core: Fill, Lot, ClosedTrade and the result records.

pnl-core consumes Fill sequences and produces ClosedTrade / OpenPosition / EquityCurve.
No I/O; these are plain frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Side(str, Enum):
    """Trade direction of a single fill."""

    BUY = "BUY"
    SELL = "SELL"


class FillSource(str, Enum):
    """Where a fill came from."""

    LEDGER = "ledger"
    EXCHANGE = "exchange"


@dataclass(frozen=True)
class Fill:
    """One executed trade leg. Only built when price and base_qty are both known."""

    timestamp: datetime
    side: Side
    symbol: str
    price: float
    base_qty: float
    usd_notional: float
    fee_usd: float = 0.0
    order_id: str | None = None
    source: FillSource = FillSource.LEDGER

    def __post_init__(self) -> None:
        if self.price <= 0 or self.base_qty <= 0 or self.usd_notional <= 0:
            raise ValueError(
                f"Fill requires positive price/base_qty/usd_notional, got "
                f"{self.price}/{self.base_qty}/{self.usd_notional}"
            )
        if self.fee_usd < 0:
            raise ValueError(f"Fill fee must be non-negative, got {self.fee_usd}")


@dataclass(frozen=True)
class Lot:
    """Open BUY inventory awaiting a SELL.

    ``fee_usd`` is the part of the BUY fee not yet allocated to a closed trade.
    Lots are replaced, never mutated, when a SELL consumes part of them.
    """

    symbol: str
    qty: float
    unit_cost: float
    fee_usd: float
    opened_at: datetime
    order_id: str | None = None

    @property
    def cost_usd(self) -> float:
        """Fee-inclusive cost of the remaining quantity."""
        return self.qty * self.unit_cost + self.fee_usd


@dataclass(frozen=True)
class ClosedTrade:
    """Result of one FIFO match step between a lot and a SELL fill."""

    opened_at: datetime
    closed_at: datetime
    symbol: str
    qty: float
    entry_price: float
    exit_price: float
    fees_usd: float
    pnl_usd: float
    pnl_bps: float | None


@dataclass(frozen=True)
class Oversell:
    """SELL quantity that found no inventory to close against."""

    symbol: str
    qty: float
    closed_at: datetime
    order_id: str | None = None


@dataclass(frozen=True)
class MatchResult:
    """Output of the FIFO matcher."""

    closed_trades: list[ClosedTrade] = field(default_factory=list)
    open_lots: list[Lot] = field(default_factory=list)
    oversold: list[Oversell] = field(default_factory=list)

    @property
    def oversold_qty(self) -> float:
        return sum(o.qty for o in self.oversold)


@dataclass(frozen=True)
class OpenPosition:
    """Remaining inventory marked to a spot price. ``None`` means unknown, not zero."""

    base_qty: float
    cost_usd: float
    avg_price: float | None
    spot_price: float | None
    unrealized_pnl_usd: float | None


@dataclass(frozen=True)
class EquityPoint:
    timestamp: datetime
    equity: float
    drawdown_pct: float


@dataclass(frozen=True)
class EquityCurve:
    """Realized-only running equity and its worst drawdown from a running peak."""

    points: list[EquityPoint]
    running: float
    peak: float
    max_drawdown_pct: float


@dataclass(frozen=True)
class WindowStats:
    """Aggregate of closed trades in one time window."""

    since: datetime | None
    count: int
    wins: int
    losses: int
    win_rate: float | None
    avg_win_bps: float | None
    avg_loss_bps: float | None
    net_pnl_usd: float
    fees_paid_usd: float
