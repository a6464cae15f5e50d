from __future__ import annotations

import os
import random
import sys

# Add repo root to Python import path so `import kline...` works
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from kline.candles.query import query_candles
from kline.clock import now_ms
from kline.jobs.poller import record_quote
from kline.storage.json_store import JsonFileStore


def run(symbol: str = "btcusdt", seconds: int = 1800, path: str = "data/simulated.json") -> None:
    """
    Generates fake quotes for `seconds` seconds and feeds them through record_quote().

    - We simulate 1 quote per second, ending now.
    - Price does a random walk (moves up/down a bit each quote).
    - Every 7th quote repeats the previous update time, which must NOT add a snapshot.
    At the end we flush the store to `path` and print 5m candles.
    """
    store = JsonFileStore(path)
    store.open()

    start = now_ms() - seconds * 1000
    ts = start
    price = 30000.0

    print(f"Simulating quotes for {symbol} for {seconds} seconds...\n")

    for i in range(seconds):
        price += random.uniform(-15, 15)
        if i % 7 != 0:
            ts += 1000

        record_quote(
            store,
            {
                "symbol": symbol,
                "price": round(price, 2),
                "open": 30000.0,
                "close": round(price, 2),
                "high": round(price + random.uniform(0, 5), 2),
                "low": round(price - random.uniform(0, 5), 2),
                "volume": float(random.randint(1, 50)),
                "updateTime": ts,
            },
        )

    store.flush()

    result = query_candles(store, symbol, "5m", 50)
    for c in result.candles:
        print(f"[{result.interval}] {c.time} O={c.open} H={c.high} L={c.low} C={c.close} V={c.volume}")

    print("\nDone.")
    print(f"Snapshots stored: {len(store.get_snapshots(symbol, 0))}")
    print(f"Latest quote: {store.get_quote(symbol)}")


if __name__ == "__main__":
    run()
