from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from kline.models.market import Quote, Snapshot
from kline.storage.normalize import canonical_symbol, normalize_quote, normalize_snapshot, to_nullable_number


def _noop() -> None:
    return None


@dataclass
class QuoteTable:
    """
    In-memory latest-quote table, one row per lowercase symbol.

    rows[symbol] -> Quote (an upsert replaces the whole record)
    on_mutation  -> called after every accepted write (durability hook)
    """
    on_mutation: Callable[[], None] = _noop
    rows: Dict[str, Quote] = field(default_factory=dict)

    def upsert(self, raw: Any) -> bool:
        quote = normalize_quote(raw)
        if quote is None:
            return False

        self.rows[quote.symbol] = quote
        self.on_mutation()
        return True

    def get_all(self) -> List[Quote]:
        return [self.rows[symbol] for symbol in sorted(self.rows)]

    def get_one(self, symbol: str) -> Optional[Quote]:
        return self.rows.get(canonical_symbol(symbol))

    def load(self, quotes: Iterable[Quote]) -> None:
        """Replace contents with already-normalized quotes (no hook)."""
        self.rows = {q.symbol: q for q in quotes}

    def clear(self) -> None:
        self.rows.clear()

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class SnapshotSeries:
    """
    Append-only snapshot series with a latest-timestamp index.

    snapshots        -> insertion order (range() sorts on the way out)
    latest[symbol]   -> max retained timestamp for that symbol
    """
    on_mutation: Callable[[], None] = _noop
    snapshots: List[Snapshot] = field(default_factory=list)
    latest: Dict[str, int] = field(default_factory=dict)

    def insert(self, raw: Any) -> bool:
        snapshot = normalize_snapshot(raw)
        if snapshot is None:
            return False

        self.snapshots.append(snapshot)
        prev = self.latest.get(snapshot.symbol)
        if prev is None or snapshot.timestamp > prev:
            self.latest[snapshot.symbol] = snapshot.timestamp

        self.on_mutation()
        return True

    def range(self, symbol: str, min_timestamp: Any = 0) -> List[Snapshot]:
        """All snapshots for symbol with timestamp >= min_timestamp, ascending."""
        symbol = canonical_symbol(symbol)
        threshold = to_nullable_number(min_timestamp) or 0
        rows = [
            s for s in self.snapshots
            if s.symbol == symbol and s.timestamp >= threshold
        ]
        # sort() is stable, so equal timestamps keep insertion order
        rows.sort(key=lambda s: s.timestamp)
        return rows

    def delete_before(self, cutoff: Any) -> int:
        threshold = to_nullable_number(cutoff) or 0
        if not self.snapshots:
            return 0

        kept = [s for s in self.snapshots if s.timestamp >= threshold]
        removed = len(self.snapshots) - len(kept)
        if removed > 0:
            self.snapshots = kept
            self.rebuild_index()
            self.on_mutation()
        return removed

    def latest_timestamp(self, symbol: str) -> Optional[int]:
        return self.latest.get(canonical_symbol(symbol))

    def rebuild_index(self) -> None:
        self.latest = {}
        for s in self.snapshots:
            prev = self.latest.get(s.symbol)
            if prev is None or s.timestamp > prev:
                self.latest[s.symbol] = s.timestamp

    def load(self, snapshots: Iterable[Snapshot]) -> None:
        """Replace contents with already-normalized snapshots (no hook)."""
        self.snapshots = sorted(snapshots, key=lambda s: s.timestamp)
        self.rebuild_index()

    def clear(self) -> None:
        self.snapshots = []
        self.latest = {}

    def __len__(self) -> int:
        return len(self.snapshots)
