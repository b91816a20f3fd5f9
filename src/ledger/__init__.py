"""
Ledger: the append-only record source the snapshot reads from.
"""

from ledger.source import MemoryRecordSource, RecordSource
from ledger.store import LedgerStore

__all__ = [
    "LedgerStore",
    "MemoryRecordSource",
    "RecordSource",
]
