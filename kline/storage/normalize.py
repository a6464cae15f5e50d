from __future__ import annotations

import math
from dataclasses import asdict, is_dataclass
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, TypeVar

from kline.clock import now_ms
from kline.models.market import Quote, Snapshot

T = TypeVar("T")


def to_nullable_number(value: Any) -> Optional[float]:
    """
    Best-effort numeric parse.
    None, booleans, unparsable strings, NaN and +/-inf all become None.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def to_epoch_ms(value: Any) -> Optional[int]:
    """Epoch milliseconds as an int; None when missing, non-finite or outside int64."""
    num = to_nullable_number(value)
    if num is None:
        return None
    ms = int(num)
    if ms < INT64_MIN or ms > INT64_MAX:
        return None
    return ms


def canonical_symbol(value: Any) -> str:
    """Lookup form of a symbol, the same one the normalizer stores."""
    return str(value).strip().lower()


def _as_mapping(raw: Any) -> Optional[Mapping[str, Any]]:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        return raw
    if is_dataclass(raw) and not isinstance(raw, type):
        return asdict(raw)
    return None


def _pick(data: Mapping[str, Any], *names: str) -> Any:
    # Accept both the wire names (updateTime) and the field names (update_time).
    for name in names:
        if name in data:
            return data[name]
    return None


def _symbol(data: Mapping[str, Any]) -> Optional[str]:
    raw = data.get("symbol")
    if not raw:
        return None
    symbol = canonical_symbol(raw)
    return symbol or None


def normalize_quote(raw: Any) -> Optional[Quote]:
    """
    Coerce a raw quote record into a canonical Quote.

    Returns None only when the symbol is missing/empty.
    updateTime falls back to "now" when it is missing or not finite.
    """
    data = _as_mapping(raw)
    if data is None:
        return None

    symbol = _symbol(data)
    if symbol is None:
        return None

    market_type = data.get("type")
    update_time = to_epoch_ms(_pick(data, "updateTime", "update_time"))

    return Quote(
        symbol=symbol,
        type=market_type if isinstance(market_type, str) else "crypto",
        price=to_nullable_number(data.get("price")),
        open=to_nullable_number(data.get("open")),
        close=to_nullable_number(data.get("close")),
        high=to_nullable_number(data.get("high")),
        low=to_nullable_number(data.get("low")),
        volume=to_nullable_number(data.get("volume")),
        amount=to_nullable_number(data.get("amount")),
        update_time=update_time if update_time is not None else now_ms(),
    )


def normalize_snapshot(raw: Any) -> Optional[Snapshot]:
    """
    Coerce a raw snapshot record into a canonical Snapshot.

    Requires a non-empty symbol AND a finite timestamp; anything else is dropped.
    """
    data = _as_mapping(raw)
    if data is None:
        return None

    symbol = _symbol(data)
    timestamp = to_epoch_ms(data.get("timestamp"))
    if symbol is None or timestamp is None:
        return None

    created_at = to_epoch_ms(_pick(data, "createdAt", "created_at"))

    return Snapshot(
        symbol=symbol,
        timestamp=timestamp,
        open=to_nullable_number(data.get("open")),
        close=to_nullable_number(data.get("close")),
        high=to_nullable_number(data.get("high")),
        low=to_nullable_number(data.get("low")),
        volume=to_nullable_number(data.get("volume")),
        created_at=created_at if created_at is not None else now_ms(),
    )


def normalize_many(
    records: Iterable[Any],
    normalizer: Callable[[Any], Optional[T]],
) -> Tuple[List[T], int]:
    """Bulk, tolerant path used on load: returns (accepted, dropped_count)."""
    accepted: List[T] = []
    dropped = 0
    for raw in records:
        item = normalizer(raw)
        if item is None:
            dropped += 1
            continue
        accepted.append(item)
    return accepted, dropped
