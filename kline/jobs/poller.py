from __future__ import annotations

import asyncio
import logging
import traceback
from typing import Any, Dict, List, Optional, Set

from kline.clock import now_ms
from kline.providers.base import QuoteProvider
from kline.storage.base import QuoteStore
from kline.storage.normalize import canonical_symbol, to_epoch_ms, to_nullable_number

log = logging.getLogger("quote_poller")


def record_quote(store: QuoteStore, raw: Optional[Dict[str, Any]], now: Optional[int] = None) -> bool:
    """
    Write one provider result into the store.

    - the quote always replaces the symbol's latest quote
    - a snapshot is appended only when updateTime moved since the last
      snapshot we hold for that symbol (same tick polled twice -> one row)

    Returns False when the quote was rejected.
    """
    if not raw or not raw.get("symbol"):
        return False

    current = now if now is not None else now_ms()
    symbol = canonical_symbol(raw["symbol"])

    price = to_nullable_number(raw.get("price"))
    volume = to_nullable_number(raw.get("volume"))
    close = raw.get("close") if raw.get("close") is not None else raw.get("price")

    amount = raw.get("amount")
    if amount is None and price is not None and volume is not None:
        amount = price * volume

    update_time = to_epoch_ms(raw.get("updateTime")) or current

    quote = {
        "symbol": symbol,
        "type": raw.get("type") or "crypto",
        "price": price,
        "open": raw.get("open"),
        "close": close,
        "high": raw.get("high"),
        "low": raw.get("low"),
        "volume": volume,
        "amount": amount,
        "updateTime": update_time,
    }

    if not store.upsert_quote(quote):
        return False

    if update_time != store.last_snapshot_timestamp(symbol):
        inserted = store.insert_snapshot(
            {
                "symbol": symbol,
                "timestamp": update_time,
                "open": quote["open"],
                "close": quote["close"],
                "high": quote["high"],
                "low": quote["low"],
                "volume": quote["volume"],
                "createdAt": current,
            }
        )
        if not inserted:
            log.warning("Snapshot not stored symbol=%s ts=%s", symbol, update_time)

    return True


class QuotePoller:
    """
    Polls the provider for every symbol, one fan-out at a time.

    poll_once():
    - try-acquires the cycle lock; if a cycle is still in flight the tick is skipped
    - fetches all symbols concurrently, each recorded/logged on its own
    - the whole cycle is bounded by `cycle_timeout_seconds`, so one hung
      request cannot block later cycles forever
    """

    def __init__(
        self,
        provider: QuoteProvider,
        store: QuoteStore,
        symbols: List[str],
        cycle_timeout_seconds: float = 10.0,
    ) -> None:
        self.provider = provider
        self.store = store
        self.symbols = [canonical_symbol(s) for s in symbols]
        self.cycle_timeout_seconds = cycle_timeout_seconds

        self._cycle_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> bool:
        return self._cycle_lock.locked()

    async def poll_once(self) -> bool:
        """Run one cycle. Returns False if the tick was skipped."""
        if self._cycle_lock.locked():
            log.debug("Previous poll cycle still in flight, skipping tick")
            return False

        async with self._cycle_lock:
            try:
                await asyncio.wait_for(self._fan_out(), timeout=self.cycle_timeout_seconds)
            except asyncio.TimeoutError:
                log.warning(
                    "Poll cycle exceeded %.1fs, abandoning unfinished symbols",
                    self.cycle_timeout_seconds,
                )
            except Exception:
                log.error("Unexpected polling error")
                log.error(traceback.format_exc())
        return True

    async def _fan_out(self) -> None:
        results = await asyncio.gather(
            *(self._poll_symbol(symbol) for symbol in self.symbols),
            return_exceptions=True,
        )
        for symbol, result in zip(self.symbols, results):
            if isinstance(result, Exception):
                log.error("Unexpected error while recording %s: %r", symbol, result)

    async def _poll_symbol(self, symbol: str) -> bool:
        try:
            data = await self.provider.fetch_quote(symbol)
        except Exception as e:
            log.warning("Failed to fetch %s: %s", symbol, e)
            return False

        if not data:
            log.warning("No data returned for %s, skipping", symbol)
            return False

        stored = record_quote(self.store, data)
        if not stored:
            log.warning("Skipped storing quote for %s", symbol)
        return stored

    async def run_forever(self, interval_seconds: float) -> None:
        """
        Background loop:
        starts a cycle every `interval_seconds` (first one immediately).
        Cycles never overlap; ticks that land on a running cycle are dropped.
        """
        try:
            while True:
                task = asyncio.create_task(self.poll_once())
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                await asyncio.sleep(interval_seconds)
        finally:
            for task in list(self._tasks):
                task.cancel()
