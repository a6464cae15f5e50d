from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from kline.clock import now_ms
from kline.storage.base import QuoteStore

log = logging.getLogger("retention")


def sweep_once(store: QuoteStore, retention_ms: int, now: Optional[int] = None) -> int:
    """Delete snapshots older than now - retention_ms. Returns the number removed."""
    current = now if now is not None else now_ms()
    cutoff = current - retention_ms

    try:
        removed = store.delete_snapshots_before(cutoff)
    except Exception:
        log.exception("Failed to clean old snapshots")
        return 0

    if removed > 0:
        cutoff_iso = datetime.fromtimestamp(cutoff / 1000.0, tz=timezone.utc).isoformat()
        log.info("Cleaned %d rows older than %s", removed, cutoff_iso)
    return removed


async def retention_loop(store: QuoteStore, retention_ms: int, interval_seconds: float = 3600) -> None:
    """
    Background loop:
    hourly (by default) sweep of snapshots that fell out of the retention window.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        sweep_once(store, retention_ms)
