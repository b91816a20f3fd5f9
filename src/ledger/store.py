"""
Append-only trade log (SQLite). Timestamps in UTC, stored as ISO strings.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ledger.source import parse_created_at, utc_ts

logger = logging.getLogger(__name__)

COLUMNS = (
    "created_at",
    "user_id",
    "symbol",
    "side",
    "order_id",
    "base_size",
    "price",
    "quote_size",
    "fee_usd",
    "raw",
)


def _to_real(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class LedgerStore:
    """SQLite-backed ``trade_logs``. Rows are only ever inserted, never updated."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def path(self) -> Path:
        return self._path

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path))

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS trade_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT NOT NULL,
                    user_id TEXT,
                    symbol TEXT,
                    side TEXT,
                    order_id TEXT,
                    base_size REAL,
                    price REAL,
                    quote_size REAL,
                    fee_usd REAL,
                    raw TEXT
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_trade_logs_created ON trade_logs (created_at)")

    def append(self, row: dict) -> int:
        """Insert one row; returns its id. Missing ``created_at`` means now.

        Amount columns that are not numbers are stored as NULL; the original
        values stay available in ``raw`` when the caller passes it.
        """
        created = row.get("created_at")
        ts = parse_created_at(created) if created is not None else datetime.now(timezone.utc)
        raw = row.get("raw")
        with self._conn() as c:
            cur = c.execute(
                f"INSERT INTO trade_logs ({', '.join(COLUMNS)}) VALUES ({', '.join('?' * len(COLUMNS))})",
                (
                    ts.isoformat(timespec="microseconds"),
                    _to_text(row.get("user_id")),
                    _to_text(row.get("symbol")),
                    _to_text(row.get("side")),
                    _to_text(row.get("order_id")),
                    _to_real(row.get("base_size")),
                    _to_real(row.get("price")),
                    _to_real(row.get("quote_size")),
                    _to_real(row.get("fee_usd")),
                    json.dumps(raw, default=str) if raw is not None and not isinstance(raw, str) else raw,
                ),
            )
            return int(cur.lastrowid)

    def append_many(self, rows: list[dict]) -> int:
        for row in rows:
            self.append(row)
        logger.info("Appended %d rows to %s", len(rows), self._path)
        return len(rows)

    def read(
        self,
        *,
        since: datetime | None = None,
        limit: int | None = None,
        user_id: str | None = None,
    ) -> list[dict]:
        """Return rows in ascending ``created_at`` order, ``raw`` decoded when it is JSON."""
        q = f"SELECT {', '.join(COLUMNS)} FROM trade_logs WHERE 1 = 1"
        params: list = []
        if user_id is not None:
            q += " AND user_id = ?"
            params.append(user_id)
        if since is not None:
            q += " AND created_at >= ?"
            params.append(utc_ts(since).isoformat(timespec="microseconds"))
        q += " ORDER BY created_at ASC, id ASC"
        if limit is not None:
            q += " LIMIT ?"
            params.append(limit)
        with self._conn() as c:
            rows = c.execute(q, params).fetchall()
        return [self._row_to_dict(r) for r in rows]

    def count(self) -> int:
        with self._conn() as c:
            row = c.execute("SELECT COUNT(*) FROM trade_logs").fetchone()
        return row[0] if row else 0

    def _row_to_dict(self, row: tuple) -> dict:
        out = dict(zip(COLUMNS, row))
        raw = out.get("raw")
        if isinstance(raw, str):
            try:
                out["raw"] = json.loads(raw)
            except json.JSONDecodeError:
                pass  # normalizer treats non-JSON text as opaque
        return out
