"""
Snapshot orchestration: ledger rows in, one PnL snapshot out.

Pipeline: read records -> normalize -> fetch authoritative exchange fills ->
reconcile -> FIFO match -> mark open lots to spot -> equity curve -> windows.

Best effort throughout: data and exchange problems degrade the snapshot and
show up in its diagnostics; they never raise.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from exchange.client import ExchangeClient
from exchange.errors import ExchangeRequestFailed
from ledger.source import RecordSource
from pnl_core import equity, fifo, valuation, windows
from pnl_core.contracts import (
    EquityCurve,
    Fill,
    FillSource,
    MatchResult,
    OpenPosition,
    WindowStats,
)
from pnl_core.normalizer import DEFAULT_SYMBOL, FillNormalizer
from pnl_core.reconciler import SOURCE_LEDGER, reconcile

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5000
MAX_LIMIT = 10_000
LAST_24H = timedelta(hours=24)

SPOT_OVERRIDE = "override"
SPOT_EXCHANGE = "exchange"
SPOT_PUBLIC = "public"


def clamp_limit(value: Any, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    """Coerce a requested row limit into 1..maximum; junk means ``default``."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        limit = default
    return max(1, min(maximum, MAX_LIMIT, limit))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SnapshotRequest:
    since: datetime
    limit: int = DEFAULT_LIMIT
    user_id: str | None = None
    symbol: str = DEFAULT_SYMBOL


@dataclass(frozen=True)
class Diagnostics:
    source_used: str = SOURCE_LEDGER
    partial_failures: list[dict] = field(default_factory=list)
    dropped_records: int = 0
    dropped_reasons: dict[str, int] = field(default_factory=dict)
    oversold_qty: float = 0.0
    exchange_error: dict | None = None
    spot_source: str | None = None


@dataclass(frozen=True)
class Snapshot:
    """Everything one snapshot request computed."""

    request: SnapshotRequest
    generated_at: datetime
    rows_scanned: int
    fills: list[Fill]
    match: MatchResult
    position: OpenPosition
    equity: EquityCurve
    all_time: WindowStats
    last_24h: WindowStats
    diagnostics: Diagnostics

    @property
    def fills_used(self) -> int:
        return len(self.fills)


@dataclass
class _ExchangeOutcome:
    fills_by_order: dict[str, list[Fill]] = field(default_factory=dict)
    failed: bool = False
    partial_failures: list[dict] = field(default_factory=list)
    error: dict | None = None
    dropped: int = 0
    reasons: dict[str, int] = field(default_factory=dict)


class SnapshotService:
    """Compute PnL snapshots from a record source, optionally confirmed by the exchange.

    Args:
        source: Ledger reader (``RecordSource``).
        client: Exchange client; authenticated clients supply fills and product
            price, unauthenticated ones only the public spot price.
        normalizer: Record -> Fill converter (packaged aliases by default).
        price_lookup: Spot price override ``symbol -> price``; tried first.
        baseline_equity: Starting value of the realized equity curve.
        max_limit: Upper bound on ledger rows read per snapshot.
        clock: Returns the current aware UTC datetime.
        events: Optional ``StructuredEventLogger``.
    """

    def __init__(
        self,
        source: RecordSource,
        *,
        client: ExchangeClient | None = None,
        normalizer: FillNormalizer | None = None,
        price_lookup: Callable[[str], float | None] | None = None,
        baseline_equity: float = 0.0,
        max_limit: int = MAX_LIMIT,
        clock: Callable[[], datetime] | None = None,
        events: Any = None,
    ) -> None:
        self._source = source
        self._client = client
        self._normalizer = normalizer or FillNormalizer()
        self._price_lookup = price_lookup
        self._baseline = baseline_equity
        self._max_limit = max_limit
        self._clock = clock or _utcnow
        self._events = events

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _fetch_exchange(self, order_ids: list[str]) -> _ExchangeOutcome:
        outcome = _ExchangeOutcome()
        if not order_ids or self._client is None or not self._client.authenticated:
            return outcome

        batch = self._client.fetch_fills_for_orders(order_ids)
        outcome.partial_failures = [f.to_dict() for f in batch.failures]
        if batch.failed:
            first = batch.failures[0].error
            outcome.failed = True
            outcome.error = first.to_dict()
            logger.warning("Exchange fills unavailable, using ledger only: %s", first)
            if self._events:
                self._events.exchange_fallback(str(first), status=first.status)
            return outcome
        if batch.partial and self._events:
            self._events.exchange_fallback(
                f"{len(batch.failures)} of {batch.chunks} chunks failed",
                status=batch.failures[0].error.status,
                partial=True,
            )

        for order_id, raw_fills in batch.fills_by_order.items():
            result = self._normalizer.normalize_many(raw_fills, FillSource.EXCHANGE)
            outcome.dropped += result.dropped
            for reason, n in result.reasons.items():
                outcome.reasons[reason] = outcome.reasons.get(reason, 0) + n
            if result.fills:
                outcome.fills_by_order[order_id] = result.fills
        return outcome

    def _spot(self, symbol: str) -> tuple[float | None, str | None]:
        attempts: list[tuple[str, Callable[[str], float | None]]] = []
        if self._price_lookup is not None:
            attempts.append((SPOT_OVERRIDE, self._price_lookup))
        if self._client is not None:
            if self._client.authenticated:
                attempts.append((SPOT_EXCHANGE, self._client.fetch_product_price))
            attempts.append((SPOT_PUBLIC, self._client.fetch_public_spot))

        for name, lookup in attempts:
            try:
                price = lookup(symbol)
            except ExchangeRequestFailed as exc:
                logger.warning("Spot lookup %s failed for %s: %s", name, symbol, exc)
                continue
            except Exception as exc:
                # an unpriced position only leaves unrealized PnL unknown
                logger.warning("Spot lookup %s raised for %s: %r", name, symbol, exc, exc_info=True)
                continue
            try:
                price = float(price) if price is not None else None
            except (TypeError, ValueError):
                price = None
            if price is not None and math.isfinite(price) and price > 0:
                return price, name
        return None, None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def compute(self, request: SnapshotRequest) -> Snapshot:
        now = self._clock()
        symbol = (request.symbol or DEFAULT_SYMBOL).upper()
        limit = clamp_limit(request.limit, maximum=self._max_limit)
        if self._events:
            self._events.snapshot_start(request.since.isoformat(), limit, request.user_id, symbol)

        rows = self._source.read(since=request.since, limit=limit, user_id=request.user_id)
        local = self._normalizer.normalize_many(rows, FillSource.LEDGER)
        order_ids = [oid for oid in map(self._normalizer.extract_order_id, rows) if oid]

        exchange = self._fetch_exchange(order_ids)
        merged = reconcile(local.fills, exchange.fills_by_order, exchange_failed=exchange.failed)
        fills = fifo.sort_fills(f for f in merged.fills if f.symbol == symbol)

        dropped = local.dropped + exchange.dropped
        reasons = dict(local.reasons)
        for reason, n in exchange.reasons.items():
            reasons[reason] = reasons.get(reason, 0) + n
        if dropped and self._events:
            self._events.records_dropped(dropped, reasons)

        matched = fifo.match(fills)
        if matched.oversold and self._events:
            self._events.oversell_detected(matched.oversold_qty, len(matched.oversold))

        spot, spot_source = self._spot(symbol) if matched.open_lots else (None, None)
        position = valuation.value(matched.open_lots, spot)
        curve = equity.build(matched.closed_trades, baseline=self._baseline)

        snapshot = Snapshot(
            request=SnapshotRequest(since=request.since, limit=limit, user_id=request.user_id, symbol=symbol),
            generated_at=now,
            rows_scanned=len(rows),
            fills=fills,
            match=matched,
            position=position,
            equity=curve,
            all_time=windows.aggregate(matched.closed_trades, fills=fills),
            last_24h=windows.aggregate(matched.closed_trades, now - LAST_24H, fills=fills),
            diagnostics=Diagnostics(
                source_used=merged.source_used,
                partial_failures=exchange.partial_failures,
                dropped_records=dropped,
                dropped_reasons=reasons,
                oversold_qty=matched.oversold_qty,
                exchange_error=exchange.error,
                spot_source=spot_source,
            ),
        )
        logger.info(
            "Snapshot %s: %d rows, %d fills, %d trades, source=%s",
            symbol, len(rows), len(fills), len(matched.closed_trades), merged.source_used,
        )
        if self._events:
            self._events.snapshot_complete(
                len(rows), len(fills), len(matched.closed_trades), merged.source_used, snapshot.all_time.net_pnl_usd
            )
        return snapshot


def build_service(config: Any, *, events: Any = None, session: Any = None) -> SnapshotService:
    """Wire a ``SnapshotService`` from ``AppConfig``.

    Unusable credentials are logged and the service runs ledger-only; the
    client is still created (unauthenticated) for the public spot price.
    """
    from config.aliases import load_field_aliases
    from exchange.auth import AuthTokenSigner
    from exchange.errors import InvalidKeyMaterial
    from ledger.store import LedgerStore

    ex = config.exchange
    signer = None
    if ex.has_credentials:
        try:
            signer = AuthTokenSigner(ex.api_key_name, ex.private_key, ex.key_alg, host=ex.host)
        except InvalidKeyMaterial as exc:
            logger.error("Exchange credentials unusable, running ledger-only: %s", exc)
            if events:
                events.error("invalid_key_material", str(exc))

    client = ExchangeClient(
        signer,
        base_url=ex.base_url,
        timeout=ex.timeout_seconds,
        batch_size=ex.batch_size,
        max_workers=ex.max_workers,
        max_pages=ex.max_pages,
        session=session,
    )
    aliases = load_field_aliases(overrides_path=config.snapshot.aliases_override_path)
    return SnapshotService(
        LedgerStore(config.ledger.path),
        client=client,
        normalizer=FillNormalizer(aliases, default_symbol=config.symbol),
        baseline_equity=config.snapshot.baseline_equity,
        max_limit=config.snapshot.max_limit,
        events=events,
    )
