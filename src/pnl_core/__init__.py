"""
pnl-core: deterministic trade-ledger reconciliation and PnL.

Fill records in, closed trades / open position / equity curve / window stats out.
No network or database access here; exchange access and storage live in ``exchange``
and ``ledger``. The only file read is the packaged field alias table.
"""

from pnl_core.contracts import (
    ClosedTrade,
    EquityCurve,
    EquityPoint,
    Fill,
    FillSource,
    Lot,
    MatchResult,
    OpenPosition,
    Oversell,
    Side,
    WindowStats,
)
from pnl_core.normalizer import FillNormalizer, MalformedRecord, NormalizeResult
from pnl_core.reconciler import ReconcileResult, reconcile

__all__ = [
    "ClosedTrade",
    "EquityCurve",
    "EquityPoint",
    "Fill",
    "FillNormalizer",
    "FillSource",
    "Lot",
    "MalformedRecord",
    "MatchResult",
    "NormalizeResult",
    "OpenPosition",
    "Oversell",
    "ReconcileResult",
    "Side",
    "WindowStats",
    "reconcile",
]
