from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from kline.candles.aggregator import aggregate_candles
from kline.clock import now_ms
from kline.models.market import Candle
from kline.storage.base import QuoteStore
from kline.storage.normalize import canonical_symbol

DEFAULT_INTERVAL_MINUTES = 5
DEFAULT_LIMIT = 200
MIN_LIMIT = 50
MAX_LIMIT = 500

_INTERVAL_RE = re.compile(r"^(\d+)([mhd])$")
_UNIT_MINUTES = {"m": 1, "h": 60, "d": 60 * 24}


def clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return min(max(value, low), high)


def parse_interval(raw: Any) -> float:
    """
    Interval string -> minutes.

    "15m" -> 15, "4h" -> 240, "1d" -> 1440
    anything else: plain number of minutes, else the 5 minute default.
    """
    if raw is None or raw == "":
        return DEFAULT_INTERVAL_MINUTES

    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        minutes = float(raw)
    else:
        text = str(raw).strip().lower()
        match = _INTERVAL_RE.match(text)
        if match:
            minutes = float(int(match.group(1)) * _UNIT_MINUTES[match.group(2)])
        else:
            try:
                minutes = float(text)
            except ValueError:
                return DEFAULT_INTERVAL_MINUTES

    # "0m" or "-3" would make an empty bucket width
    if not math.isfinite(minutes) or minutes <= 0:
        return DEFAULT_INTERVAL_MINUTES
    return minutes


def parse_limit(raw: Any) -> int:
    """Requested candle count; 0/invalid -> 200, then clamped to [50, 500]."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        value = 0.0
    if not math.isfinite(value) or value == 0:
        value = DEFAULT_LIMIT
    return int(clamp(value, MIN_LIMIT, MAX_LIMIT))


def format_interval(minutes: float) -> str:
    """240.0 -> "240m", 1008000.0 -> "1008000m", 0.5 -> "0.5m" (never exponent form)."""
    if float(minutes).is_integer():
        return f"{int(minutes)}m"
    return f"{minutes!r}m"


@dataclass
class KlineResult:
    symbol: str
    interval: str
    candles: List[Candle] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "interval": self.interval,
            "candles": [c.to_dict() for c in self.candles],
        }


def query_candles(
    store: QuoteStore,
    symbol: str,
    interval: Any = None,
    limit: Any = None,
    now: Optional[int] = None,
) -> KlineResult:
    """
    Candles for the most recent `limit` buckets.

    Looks back interval * limit * 2 ms from now, aggregates everything in
    that window and keeps the tail.
    """
    symbol = canonical_symbol(symbol)
    minutes = parse_interval(interval)
    size = parse_limit(limit)

    interval_ms = int(minutes * 60 * 1000)
    if interval_ms <= 0:
        # sub-millisecond intervals from a fractional numeric parse
        minutes = DEFAULT_INTERVAL_MINUTES
        interval_ms = DEFAULT_INTERVAL_MINUTES * 60 * 1000

    current = now if now is not None else now_ms()
    min_timestamp = current - interval_ms * size * 2

    rows = store.get_snapshots(symbol, min_timestamp)
    result = KlineResult(symbol=symbol, interval=format_interval(minutes))
    if not rows:
        return result

    result.candles = aggregate_candles(rows, interval_ms)[-size:]
    return result
