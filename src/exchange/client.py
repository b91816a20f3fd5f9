"""
Authenticated REST client for the exchange (Coinbase Advanced Trade v3).

Every authenticated GET carries a freshly minted bearer token bound to the
exact method + path + query. Fill lookups are chunked by order id and the
chunks run concurrently; one failing chunk never discards the others.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Iterable
from urllib.parse import quote, urlencode

import requests

from exchange.auth import AuthTokenSigner
from exchange.errors import ExchangeRequestFailed

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coinbase.com"
PUBLIC_SPOT_URL = "https://api.coinbase.com/v2/prices/{symbol}/spot"

ACCOUNTS_PATH = "/api/v3/brokerage/accounts"
PRODUCT_PATH = "/api/v3/brokerage/products/{symbol}"
FILLS_PATH = "/api/v3/brokerage/orders/historical/fills"


@dataclass
class ChunkFailure:
    order_ids: list[str]
    error: ExchangeRequestFailed

    def to_dict(self) -> dict:
        return {"orderIds": list(self.order_ids), "status": self.error.status, "path": self.error.path}


@dataclass
class FillBatchResult:
    """Raw exchange fills grouped by order id, plus per-chunk failures."""

    fills_by_order: dict[str, list[dict]] = field(default_factory=dict)
    failures: list[ChunkFailure] = field(default_factory=list)
    chunks: int = 0

    @property
    def failed(self) -> bool:
        """Every chunk failed."""
        return self.chunks > 0 and len(self.failures) == self.chunks

    @property
    def partial(self) -> bool:
        """Some chunks failed, some succeeded."""
        return 0 < len(self.failures) < self.chunks

    @property
    def fill_count(self) -> int:
        return sum(len(v) for v in self.fills_by_order.values())


def _chunks(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _dedupe(order_ids: Iterable[Any]) -> list[str]:
    seen: dict[str, None] = {}
    for oid in order_ids:
        text = str(oid).strip() if oid is not None else ""
        if text:
            seen.setdefault(text, None)
    return list(seen)


def _positive_float(value: Any) -> float | None:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if num > 0 and num != float("inf") else None


def _dicts(value: Any) -> list[dict]:
    """Object entries of a JSON array; anything else is empty."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class ExchangeClient:
    """Thin wrapper over ``requests`` for the handful of endpoints the snapshot needs.

    Args:
        signer: Mints per-request bearer tokens.
        base_url: API root (scheme + host).
        timeout: Per-request timeout in seconds.
        batch_size: Order ids per fills request.
        max_workers: Concurrent fill chunks.
        max_pages: Cursor pages followed per chunk.
        session: Anything with a ``requests``-style ``get``; defaults to the module.
    """

    def __init__(
        self,
        signer: AuthTokenSigner | None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10,
        batch_size: int = 25,
        max_workers: int = 4,
        max_pages: int = 20,
        session: Any = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._signer = signer
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._batch_size = batch_size
        self._max_workers = max(1, max_workers)
        self._max_pages = max(1, max_pages)
        self._http = session or requests

    @property
    def authenticated(self) -> bool:
        return self._signer is not None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request_json(self, url: str, path: str, headers: dict | None = None) -> dict:
        try:
            resp = self._http.get(url, headers=headers or {}, timeout=self._timeout)
        except requests.RequestException as exc:
            raise ExchangeRequestFailed(None, str(exc), path) from exc
        if not 200 <= resp.status_code < 300:
            raise ExchangeRequestFailed(resp.status_code, resp.text or "", path)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ExchangeRequestFailed(resp.status_code, f"invalid JSON: {exc}", path) from exc
        if not isinstance(payload, dict):
            raise ExchangeRequestFailed(resp.status_code, "unexpected JSON shape", path)
        return payload

    def get(self, path: str, params: list[tuple[str, str]] | None = None) -> dict:
        """Authenticated GET. ``params`` may repeat keys (``order_ids``)."""
        if self._signer is None:
            raise ExchangeRequestFailed(401, "no exchange credentials configured", path)
        path_with_query = f"{path}?{urlencode(params)}" if params else path
        token = self._signer.build_token("GET", path_with_query)
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        return self._request_json(self._base_url + path_with_query, path, headers)

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def fetch_accounts(self) -> list[dict]:
        return _dicts(self.get(ACCOUNTS_PATH).get("accounts"))

    def fetch_product_price(self, symbol: str) -> float | None:
        data = self.get(PRODUCT_PATH.format(symbol=quote(symbol, safe="-")))
        return _positive_float(data.get("price"))

    def fetch_public_spot(self, symbol: str) -> float | None:
        """Unauthenticated spot price; used when no credentials are configured."""
        url = PUBLIC_SPOT_URL.format(symbol=quote(symbol, safe="-"))
        inner = self._request_json(url, url).get("data")
        return _positive_float(inner.get("amount")) if isinstance(inner, dict) else None

    def _fetch_chunk(self, order_ids: list[str]) -> list[dict]:
        fills: list[dict] = []
        cursor = ""
        for _ in range(self._max_pages):
            params = [("order_ids", oid) for oid in order_ids]
            if cursor:
                params.append(("cursor", cursor))
            data = self.get(FILLS_PATH, params)
            fills.extend(_dicts(data.get("fills")))
            cursor = str(data.get("cursor") or "")
            if not cursor:
                break
        else:
            logger.warning("Stopped after %d pages for %d order ids", self._max_pages, len(order_ids))
        return fills

    def fetch_fills_for_orders(self, order_ids: Iterable[Any]) -> FillBatchResult:
        ids = _dedupe(order_ids)
        chunks = _chunks(ids, self._batch_size)
        result = FillBatchResult(chunks=len(chunks))
        if not chunks:
            return result

        outcomes: dict[int, list[dict] | ExchangeRequestFailed] = {}
        workers = min(self._max_workers, len(chunks))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self._fetch_chunk, chunk): idx for idx, chunk in enumerate(chunks)}
            for future in as_completed(futures):
                idx = futures[future]
                try:
                    outcomes[idx] = future.result()
                except ExchangeRequestFailed as exc:
                    logger.warning("Fills chunk %d (%d ids) failed: %s", idx, len(chunks[idx]), exc)
                    outcomes[idx] = exc

        # Re-assemble in chunk order so grouping is deterministic
        for idx, chunk in enumerate(chunks):
            outcome = outcomes[idx]
            if isinstance(outcome, ExchangeRequestFailed):
                result.failures.append(ChunkFailure(order_ids=chunk, error=outcome))
                continue
            for fill in outcome:
                oid = str(fill.get("order_id") or "").strip()
                if oid:
                    result.fills_by_order.setdefault(oid, []).append(fill)

        logger.info(
            "Fetched %d exchange fills for %d orders (%d/%d chunks failed)",
            result.fill_count, len(ids), len(result.failures), len(chunks),
        )
        return result
