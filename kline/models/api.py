from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class QuoteOut(BaseModel):
    """Latest quote as served by /api/market/quote(s)."""

    type: str
    symbol: str
    price: Optional[float] = None
    open: Optional[float] = None
    close: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None
    amount: Optional[float] = None
    updateTime: int


class CandleOut(BaseModel):
    time: int
    open: Optional[float] = None
    close: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None


class KlineOut(BaseModel):
    """
    Candle query result.

    interval:
      normalized interval in minutes, e.g. "5m" or "60m"

    candles:
      ascending by bucket start, at most `limit` entries
    """

    symbol: str
    interval: str
    candles: List[CandleOut] = []


class ErrorOut(BaseModel):
    error: str
