"""
Fill normalizer: one heterogeneous record -> canonical Fill, or None.

Accepts flat ledger rows (created_at, side, base_size, price, quote_size, raw)
and nested exchange fill objects (trade_time, size, commission, ...). For each
canonical field the lookup order is: canonical name, then the alias paths from
config/field_aliases.json. When two or more of price / base_qty / usd_notional
are missing, the gaps are filled from execution legs embedded in the raw
payload (VWAP price, summed size and notional). When exactly one is still
missing it is derived from the other two.

Malformed records are filtered, never raised: upstream sources are known to be
heterogeneous and one bad row must not abort a snapshot.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from config.aliases import FieldAliases, load_field_aliases
from pnl_core.contracts import Fill, FillSource, Side

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = "BTC-USD"

_RAW_KEYS = ("raw", "raw_payload")
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class MalformedRecord(ValueError):
    """A single input record that cannot become a Fill."""

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason


@dataclass(frozen=True)
class NormalizeResult:
    fills: list[Fill]
    dropped: int = 0
    reasons: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def _to_number(value: Any) -> float | None:
    """Finite float from a number, numeric string, or ``{"value": ...}`` object."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Mapping):
        return _to_number(value.get("value"))
    if isinstance(value, (int, float)):
        n = float(value)
    elif isinstance(value, str):
        try:
            n = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return n if math.isfinite(n) else None


def _positive(value: Any) -> float | None:
    n = _to_number(value)
    return n if n is not None and n > 0 else None


def _non_negative(value: Any) -> float | None:
    n = _to_number(value)
    return n if n is not None and n >= 0 else None


def _to_side(value: Any) -> Side | None:
    if not isinstance(value, str):
        return None
    s = value.strip().upper()
    if s == "BUY":
        return Side.BUY
    if s == "SELL":
        return Side.SELL
    return None


def _to_timestamp(value: Any) -> datetime | None:
    """UTC datetime from ISO-8601 text, epoch seconds/ms, or a datetime."""
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, bool) or value is None:
        return None
    elif isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        seconds = value / 1000 if value > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        text = _FRACTION_RE.sub(r"\1", text.replace("Z", "+00:00"))
        try:
            ts = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    try:
        return ts.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # e.g. 0001-01-01T00:00:00+05:00 has no UTC equivalent
        return None


def _to_text(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    return None


# ---------------------------------------------------------------------------
# Path lookup
# ---------------------------------------------------------------------------


def _decode(value: Any) -> Any:
    """Free-form payload columns may hold JSON text rather than an object."""
    if isinstance(value, str) and value.lstrip().startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


def _dig(record: Mapping[str, Any], path: str) -> Any:
    head, _, rest = path.partition(".")
    if head in _RAW_KEYS:
        # raw.* paths also read the raw_payload column
        node = next((record[k] for k in _RAW_KEYS if record.get(k) is not None), None)
    else:
        node = record.get(head)
    for key in rest.split(".") if rest else ():
        node = _decode(node)
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


class FillNormalizer:
    """Convert raw records into canonical fills using a declarative alias table.

    Parameters
    ----------
    aliases:
        Alias table; the packaged defaults are loaded when omitted.
    default_symbol:
        Instrument assumed for rows that carry no symbol (the ledger logs a
        single product per bot).
    """

    def __init__(
        self,
        aliases: FieldAliases | None = None,
        default_symbol: str = DEFAULT_SYMBOL,
    ) -> None:
        self._aliases = aliases or load_field_aliases()
        self._default_symbol = default_symbol

    def _candidates(self, record: Mapping[str, Any], name: str) -> Iterable[Any]:
        yield record.get(name)
        for path in self._aliases.paths(name):
            yield _dig(record, path)

    def _first(self, record: Mapping[str, Any], name: str, coerce) -> Any:
        for candidate in self._candidates(record, name):
            value = coerce(candidate)
            if value is not None:
                return value
        return None

    def _legs(self, record: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        for path in self._aliases.leg_paths("paths"):
            node = _dig(record, path)
            if isinstance(node, list) and node:
                return [leg for leg in node if isinstance(leg, Mapping)]
        return []

    def _leg_value(self, leg: Mapping[str, Any], name: str, coerce) -> Any:
        for path in self._aliases.leg_paths(name):
            value = coerce(_dig(leg, path))
            if value is not None:
                return value
        return None

    def _from_legs(self, record: Mapping[str, Any]) -> tuple[float | None, float | None, float | None, float | None]:
        """VWAP price, total base, total notional and summed fees of embedded legs."""
        base = notional = 0.0
        fees: list[float] = []
        for leg in self._legs(record):
            px = self._leg_value(leg, "price", _positive)
            sz = self._leg_value(leg, "base_qty", _positive)
            if px is None or sz is None:
                continue
            base += sz
            notional += px * sz
            fee = self._leg_value(leg, "fee_usd", _non_negative)
            if fee is not None:
                fees.append(fee)
        if base <= 0 or notional <= 0:
            return None, None, None, None
        return notional / base, base, notional, (sum(fees) if fees else None)

    def extract_order_id(self, record: Any) -> str | None:
        """Order id of a record, whether or not the record normalizes."""
        if not isinstance(record, Mapping):
            return None
        return self._first(record, "order_id", _to_text)

    def _parse(self, record: Any, source: FillSource) -> Fill:
        if not isinstance(record, Mapping):
            raise MalformedRecord("not_a_mapping", type(record).__name__)

        if str(record.get("size_in_quote", "")).lower() == "true":
            # exchange fill whose size is denominated in the quote currency
            quote_size = record.get("size")
            record = {k: v for k, v in record.items() if k != "size"}
            if record.get("usd_notional") is None:
                record["usd_notional"] = quote_size

        side = self._first(record, "side", _to_side)
        if side is None:
            raise MalformedRecord("bad_side", repr(record.get("side")))

        ts = self._first(record, "timestamp", _to_timestamp)
        if ts is None:
            raise MalformedRecord("bad_timestamp")

        price = self._first(record, "price", _positive)
        base = self._first(record, "base_qty", _positive)
        notional = self._first(record, "usd_notional", _positive)
        fee = self._first(record, "fee_usd", _non_negative)

        leg_fee = None
        if [price, base, notional].count(None) > 1:
            # too little to derive from; fill only what the row lacks
            leg_price, leg_base, leg_notional, leg_fee = self._from_legs(record)
            price = price if price is not None else leg_price
            base = base if base is not None else leg_base
            notional = notional if notional is not None else leg_notional

        missing = [price, base, notional].count(None)
        if missing > 1:
            raise MalformedRecord("missing_amounts", f"price={price} base={base} notional={notional}")
        if price is None:
            price = notional / base
        elif base is None:
            base = notional / price
        elif notional is None:
            notional = price * base
        if not all(math.isfinite(v) and v > 0 for v in (price, base, notional)):
            raise MalformedRecord("missing_amounts", "derived amount not finite")

        if fee is None:
            fee = leg_fee or 0.0
        symbol = self._first(record, "symbol", _to_text) or self._default_symbol

        return Fill(
            timestamp=ts,
            side=side,
            symbol=symbol.upper(),
            price=price,
            base_qty=base,
            usd_notional=notional,
            fee_usd=fee,
            order_id=self.extract_order_id(record),
            source=source,
        )

    def normalize(self, record: Any, source: FillSource = FillSource.LEDGER) -> Fill | None:
        """Return a canonical Fill, or None if the record cannot establish one."""
        try:
            return self._parse(record, source)
        except MalformedRecord as exc:
            logger.debug("Dropped %s record: %s", source.value, exc)
            return None

    def normalize_many(
        self,
        records: Iterable[Any],
        source: FillSource = FillSource.LEDGER,
    ) -> NormalizeResult:
        """Normalize a batch, preserving input order and counting drops by reason."""
        fills: list[Fill] = []
        reasons: Counter[str] = Counter()
        for record in records:
            try:
                fills.append(self._parse(record, source))
            except MalformedRecord as exc:
                reasons[exc.reason] += 1
        dropped = sum(reasons.values())
        if dropped:
            logger.info("Dropped %d malformed %s record(s): %s", dropped, source.value, dict(reasons))
        return NormalizeResult(fills=fills, dropped=dropped, reasons=dict(reasons))
