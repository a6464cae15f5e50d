from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from kline.clock import now_ms
from kline.providers.base import QuoteProvider, UpstreamError

log = logging.getLogger("huobi_provider")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class HuobiProvider(QuoteProvider):
    """
    Huobi Provider (REST).

    GET {base_url}/market/detail/merged?symbol=btcusdt
      -> {"status": "ok", "ts": 1700000000000, "tick": {"close": ..., "open": ..., ...}}
    """

    def __init__(
        self,
        base_url: str = "https://api.huobi.pro",
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------
    # Public interface used by the poller
    # -------------------------
    async def fetch_quote(self, symbol: str) -> Optional[dict]:
        url = f"{self.base_url}/market/detail/merged"
        try:
            resp = await self._client.get(
                url,
                params={"symbol": symbol},
                headers={"Cache-Control": "no-cache"},
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"failed to fetch crypto {symbol}: {e!r}") from e

        return self.parse_merged(symbol, payload)

    @staticmethod
    def parse_merged(symbol: str, payload: Any) -> Optional[dict]:
        """
        Map a merged-detail payload to the raw quote dict.
        No tick or a non-numeric close -> None (no data this round).
        """
        if not isinstance(payload, dict):
            return None

        tick = payload.get("tick")
        if not isinstance(tick, dict) or not _is_number(tick.get("close")):
            return None

        # Huobi: amount = base-currency volume, vol = quote-currency turnover
        amount = tick.get("amount")
        vol = tick.get("vol")
        volume = amount if amount is not None else vol

        return {
            "type": "crypto",
            "symbol": symbol,
            "price": tick["close"],
            "open": tick.get("open"),
            "close": tick["close"],
            "high": tick.get("high"),
            "low": tick.get("low"),
            "volume": volume,
            "amount": vol,
            "updateTime": payload.get("ts") or now_ms(),
        }
