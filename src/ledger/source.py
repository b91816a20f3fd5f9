"""
Historical record source: where ledger rows come from. Storage-agnostic.
"""

from datetime import datetime, timezone
from typing import Any, Protocol, Sequence


def utc_ts(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def parse_created_at(value: Any) -> datetime:
    """datetime or ISO-8601 text (``Z`` allowed) -> aware UTC datetime."""
    if isinstance(value, datetime):
        return utc_ts(value)
    if isinstance(value, str) and value.strip():
        return utc_ts(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    raise ValueError(f"created_at must be a datetime or ISO string, got {value!r}")


class RecordSource(Protocol):
    """Protocol for ledger readers. Rows come back in ascending ``created_at`` order."""

    def read(
        self,
        *,
        since: datetime | None = None,
        limit: int | None = None,
        user_id: str | None = None,
    ) -> list[dict]:
        ...


class MemoryRecordSource:
    """In-memory rows; for tests and dry runs."""

    def __init__(self, rows: Sequence[dict] = ()) -> None:
        self._rows = [dict(r) for r in rows]

    def append(self, row: dict) -> None:
        self._rows.append(dict(row))

    def read(
        self,
        *,
        since: datetime | None = None,
        limit: int | None = None,
        user_id: str | None = None,
    ) -> list[dict]:
        def created(row: dict) -> datetime:
            return parse_created_at(row["created_at"])

        rows = [r for r in self._rows if r.get("created_at") is not None]
        if user_id is not None:
            rows = [r for r in rows if r.get("user_id") == user_id]
        if since is not None:
            cutoff = utc_ts(since)
            rows = [r for r in rows if created(r) >= cutoff]
        rows.sort(key=created)
        if limit is not None:
            rows = rows[:limit]
        return [dict(r) for r in rows]
