from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, List, Optional

from kline.models.market import Quote, Snapshot
from kline.storage.base import QuoteStore
from kline.storage.normalize import normalize_many, normalize_quote, normalize_snapshot
from kline.storage.tables import QuoteTable, SnapshotSeries

log = logging.getLogger("json_store")

SAVE_DEBOUNCE_MS = 250


class JsonFileStore(QuoteStore):
    """
    Debounced whole-state JSON file store.

    Memory is the source of truth:
    - quotes live in a QuoteTable, snapshots in a SnapshotSeries
    - every accepted write arms ONE background save task (if none is pending)
    - the task sleeps `save_debounce_ms`, then rewrites the whole file
      (tmp file + os.replace, so readers see old or new content, never half)

    Batches writes, at the cost of losing up to one debounce window of
    mutations on a crash. flush() cancels the pending task and writes now.
    """

    def __init__(self, path: str, save_debounce_ms: int = SAVE_DEBOUNCE_MS) -> None:
        self.path = path
        self.tmp_path = path + ".tmp"
        self.save_debounce_ms = save_debounce_ms

        self.quotes = QuoteTable(on_mutation=self.on_mutation)
        self.series = SnapshotSeries(on_mutation=self.on_mutation)

        self._save_task: Optional[asyncio.Task] = None

    # -------------------------
    # Lifecycle
    # -------------------------
    def open(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.load()

    def load(self) -> None:
        """
        Read the file into memory.
        Missing/empty file -> empty store.
        Malformed file -> log and start empty (the file is overwritten by the next save).
        """
        self.quotes.clear()
        self.series.clear()

        if not os.path.exists(self.path):
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = f.read()
            if not raw.strip():
                return

            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")

            snapshots: List[Snapshot] = []
            raw_snapshots = data.get("snapshots")
            if isinstance(raw_snapshots, list):
                snapshots, dropped = normalize_many(raw_snapshots, normalize_snapshot)
                if dropped:
                    log.warning("Dropped %d invalid snapshot(s) while loading %s", dropped, self.path)

            quotes: List[Quote] = []
            raw_quotes = data.get("quotes")
            if isinstance(raw_quotes, dict):
                quotes, dropped = normalize_many(raw_quotes.values(), normalize_quote)
                if dropped:
                    log.warning("Dropped %d invalid quote(s) while loading %s", dropped, self.path)

            self.series.load(snapshots)
            self.quotes.load(quotes)
        except (OSError, ValueError) as e:
            log.error("Failed to load storage file %s, starting with empty store: %r", self.path, e)
            self.quotes.clear()
            self.series.clear()
            return

        log.info(
            "Loaded %s quotes=%d snapshots=%d",
            self.path,
            len(self.quotes),
            len(self.series),
        )

    def flush(self) -> None:
        task = self._save_task
        self._save_task = None
        if task is not None and not task.done():
            task.cancel()
        self.save()

    # -------------------------
    # Debounced save
    # -------------------------
    def on_mutation(self) -> None:
        if self._save_task is not None and not self._save_task.done():
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (scripts, sync tests): the write waits for flush().
            return

        self._save_task = loop.create_task(self._save_later())

    @property
    def save_pending(self) -> bool:
        return self._save_task is not None and not self._save_task.done()

    async def _save_later(self) -> None:
        await asyncio.sleep(self.save_debounce_ms / 1000.0)
        self._save_task = None
        self.save()

    def save(self) -> bool:
        """Serialize the full state and atomically replace the file. Never raises."""
        try:
            payload = {
                "snapshots": [s.to_dict() for s in self.series.snapshots],
                "quotes": {symbol: q.to_dict() for symbol, q in self.quotes.rows.items()},
            }
            data = json.dumps(payload, allow_nan=False)
            with open(self.tmp_path, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(self.tmp_path, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            log.error("Failed to persist storage file %s: %r", self.path, e)
            try:
                if os.path.exists(self.tmp_path):
                    os.unlink(self.tmp_path)
            except OSError:
                log.warning("Could not remove temporary file %s", self.tmp_path)
            return False

    # -------------------------
    # Quote Table surface
    # -------------------------
    def upsert_quote(self, quote: Any) -> bool:
        return self.quotes.upsert(quote)

    def get_all_quotes(self) -> List[Quote]:
        return self.quotes.get_all()

    def get_quote(self, symbol: str) -> Optional[Quote]:
        return self.quotes.get_one(symbol)

    # -------------------------
    # Snapshot Series surface
    # -------------------------
    def insert_snapshot(self, snapshot: Any) -> bool:
        return self.series.insert(snapshot)

    def get_snapshots(self, symbol: str, min_timestamp: Any = 0) -> List[Snapshot]:
        return self.series.range(symbol, min_timestamp)

    def delete_snapshots_before(self, cutoff: Any) -> int:
        return self.series.delete_before(cutoff)

    def last_snapshot_timestamp(self, symbol: str) -> Optional[int]:
        return self.series.latest_timestamp(symbol)
