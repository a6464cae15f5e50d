from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Quote:
    """
    Quote = the latest known market values for one symbol.

    symbol: lowercase symbol, e.g. btcusdt (the table key)
    type: market tag ("crypto" for everything we poll today)
    price/open/close/high/low: last values reported upstream (None if unusable)
    volume/amount: traded volume and turnover
    update_time: upstream update time in epoch milliseconds
    """
    symbol: str
    type: str
    price: Optional[float]
    open: Optional[float]
    close: Optional[float]
    high: Optional[float]
    low: Optional[float]
    volume: Optional[float]
    amount: Optional[float]
    update_time: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "type": self.type,
            "price": self.price,
            "open": self.open,
            "close": self.close,
            "high": self.high,
            "low": self.low,
            "volume": self.volume,
            "amount": self.amount,
            "updateTime": self.update_time,
        }


@dataclass(frozen=True)
class Snapshot:
    """
    Snapshot = one timestamped observation of a symbol's OHLCV values.

    timestamp: observed upstream update time (epoch ms)
    created_at: local insertion time (epoch ms)
    Every OHLCV field is independently nullable.
    """
    symbol: str
    timestamp: int
    open: Optional[float]
    close: Optional[float]
    high: Optional[float]
    low: Optional[float]
    volume: Optional[float]
    created_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp,
            "open": self.open,
            "close": self.close,
            "high": self.high,
            "low": self.low,
            "volume": self.volume,
            "createdAt": self.created_at,
        }


@dataclass
class Candle:
    """
    Candle (OHLCV) for one fixed-width bucket, built from snapshots.

    time: bucket start in epoch ms (floor(ts / interval) * interval)
    Values are None when the aggregate was not a finite number.
    """
    time: int
    open: Optional[float]
    close: Optional[float]
    high: Optional[float]
    low: Optional[float]
    volume: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "open": self.open,
            "close": self.close,
            "high": self.high,
            "low": self.low,
            "volume": self.volume,
        }
