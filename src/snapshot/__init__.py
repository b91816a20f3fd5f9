"""
Snapshot: orchestrates ledger, exchange and pnl_core into one PnL report.
"""

from snapshot.report import to_response_dict
from snapshot.service import (
    Diagnostics,
    Snapshot,
    SnapshotRequest,
    SnapshotService,
    build_service,
    clamp_limit,
)

__all__ = [
    "Diagnostics",
    "Snapshot",
    "SnapshotRequest",
    "SnapshotService",
    "build_service",
    "clamp_limit",
    "to_response_dict",
]
