from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional


class UpstreamError(RuntimeError):
    """A single symbol's fetch failed (transport error or non-2xx)."""


class QuoteProvider(ABC):
    """
    Provider contract (interface).

    Any provider must implement:
    - fetch_quote(): latest quote for one symbol as a raw dict, or None when
      the upstream had no usable close value for this tick
    - aclose(): release network resources

    Raw dict keys: type, symbol, price, open, close, high, low, volume,
    amount, updateTime (epoch ms).
    """

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> Optional[Dict]:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
