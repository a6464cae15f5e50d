from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from kline.models.market import Quote, Snapshot


class QuoteStore(ABC):
    """
    Store contract (interface).

    Any backend must implement:
    - open(): load persisted state / create schema (startup)
    - on_mutation(): durability hook, called after every accepted write
    - flush(): finish pending durability work synchronously
    - the Quote Table surface (upsert_quote, get_all_quotes, get_quote)
    - the Snapshot Series surface (insert_snapshot, get_snapshots,
      delete_snapshots_before, last_snapshot_timestamp)

    Mutations never suspend, so callers on one event loop are serialized
    without locks. Reads return immutable records in fresh lists.
    """

    @abstractmethod
    def open(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def on_mutation(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def flush(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        self.flush()

    @abstractmethod
    def upsert_quote(self, quote: Any) -> bool:
        raise NotImplementedError

    @abstractmethod
    def get_all_quotes(self) -> List[Quote]:
        raise NotImplementedError

    @abstractmethod
    def get_quote(self, symbol: str) -> Optional[Quote]:
        raise NotImplementedError

    @abstractmethod
    def insert_snapshot(self, snapshot: Any) -> bool:
        raise NotImplementedError

    @abstractmethod
    def get_snapshots(self, symbol: str, min_timestamp: Any = 0) -> List[Snapshot]:
        raise NotImplementedError

    @abstractmethod
    def delete_snapshots_before(self, cutoff: Any) -> int:
        raise NotImplementedError

    @abstractmethod
    def last_snapshot_timestamp(self, symbol: str) -> Optional[int]:
        raise NotImplementedError

    def __enter__(self) -> "QuoteStore":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
