from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from kline.models.market import Candle, Snapshot


def round_value(value: Optional[float], digits: int = 4) -> Optional[float]:
    """
    Round half up to `digits` decimals.
    Non-finite input (or an overflow while scaling) -> None.
    """
    if value is None or not math.isfinite(value):
        return None
    factor = 10 ** digits
    scaled = value * factor + 0.5
    if not math.isfinite(scaled):
        return None
    return math.floor(scaled) / factor


@dataclass
class _Bucket:
    time: int
    open: float
    close: float
    high: float
    low: float
    volume: float
    first_ts: int
    last_ts: int


def _filled(s: Snapshot) -> tuple[float, float, float, float, float]:
    """Fill missing OHLCV from whatever the snapshot does carry."""
    o = s.open if s.open is not None else (s.close if s.close is not None else 0.0)
    c = s.close if s.close is not None else o
    h = s.high if s.high is not None else max(o, c)
    l = s.low if s.low is not None else min(o, c)
    v = s.volume if s.volume is not None else 0.0
    return o, c, h, l, v


def aggregate_candles(snapshots: Iterable[Snapshot], interval_ms: int) -> List[Candle]:
    """
    Group snapshots (ascending by timestamp) into OHLCV candles.

    bucket  = floor(ts / interval_ms) * interval_ms
    open    = snapshot with the smallest timestamp in the bucket
    close   = snapshot with the largest timestamp in the bucket
    high/low/volume = running max/min/sum

    Output is ascending by bucket. Prices are rounded to 4 decimals,
    volume to 6; a non-finite result comes back as None.
    """
    if not interval_ms or interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms!r}")

    buckets: Dict[int, _Bucket] = {}

    for s in snapshots:
        ts = s.timestamp
        if ts is None or not math.isfinite(ts):
            continue

        key = int(math.floor(ts / interval_ms) * interval_ms)
        o, c, h, l, v = _filled(s)

        bucket = buckets.get(key)
        if bucket is None:
            buckets[key] = _Bucket(
                time=key, open=o, close=c, high=h, low=l, volume=v, first_ts=ts, last_ts=ts
            )
            continue

        if ts < bucket.first_ts:
            bucket.open = o
            bucket.first_ts = ts
        # >= so that equal timestamps resolve to the last one processed
        if ts >= bucket.last_ts:
            bucket.close = c
            bucket.last_ts = ts

        bucket.high = max(bucket.high, h)
        bucket.low = min(bucket.low, l)
        bucket.volume += v

    return [
        Candle(
            time=b.time,
            open=round_value(b.open),
            close=round_value(b.close),
            high=round_value(b.high),
            low=round_value(b.low),
            volume=round_value(b.volume, 6),
        )
        for _, b in sorted(buckets.items())
    ]
