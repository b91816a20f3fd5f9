"""Pytest fixtures: fills and ledger rows for deterministic tests."""

from datetime import datetime, timezone

import pytest

from pnl_core.contracts import Fill, FillSource, Side


def _ts(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, 0, tzinfo=timezone.utc)


def make_fill(
    side: str,
    price: float,
    qty: float,
    *,
    ts: datetime | None = None,
    fee: float = 0.0,
    symbol: str = "BTC-USD",
    order_id: str | None = None,
    source: FillSource = FillSource.LEDGER,
) -> Fill:
    return Fill(
        timestamp=ts or _ts(2024, 1, 1),
        side=Side(side),
        symbol=symbol,
        price=price,
        base_qty=qty,
        usd_notional=price * qty,
        fee_usd=fee,
        order_id=order_id,
        source=source,
    )


@pytest.fixture
def symbol() -> str:
    return "BTC-USD"


@pytest.fixture
def round_trip_fills() -> list[Fill]:
    """BUY 1 @ 100 (fee 1) then SELL 1 @ 110 (fee 1): pnl 8, 1000 bps."""
    return [
        make_fill("BUY", 100.0, 1.0, ts=_ts(2024, 1, 1), fee=1.0, order_id="o1"),
        make_fill("SELL", 110.0, 1.0, ts=_ts(2024, 1, 2), fee=1.0, order_id="o2"),
    ]


@pytest.fixture
def ledger_rows() -> list[dict]:
    """Ledger rows as the bot logs them: flat columns, some amounts only in raw."""
    return [
        {
            "created_at": "2024-01-01T00:00:00Z",
            "side": "BUY",
            "symbol": "BTC-USD",
            "price": 100,
            "base_size": 1,
            "fee_usd": 1,
            "order_id": "o1",
        },
        {
            "created_at": "2024-01-02T00:00:00Z",
            "side": "sell",
            "symbol": "BTC-USD",
            "price": "110",
            "base_size": "1",
            "fee_usd": "1",
            "order_id": "o2",
        },
    ]
