from __future__ import annotations

import logging
import os
from typing import Any, List, Optional

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kline.models.market import Quote, Snapshot
from kline.storage.base import QuoteStore
from kline.storage.normalize import canonical_symbol, normalize_quote, normalize_snapshot, to_nullable_number
from kline.storage.schema import Base, QuoteRow, SnapshotRow

log = logging.getLogger("sql_store")

_DIALECT_INSERT = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

_QUOTE_COLUMNS = ("type", "price", "open", "close", "high", "low", "volume", "amount", "update_time")


def _build_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, future=True)

    database = url.database
    if not database or database == ":memory:":
        # One shared connection, otherwise every checkout gets a fresh empty database.
        return create_engine(
            url,
            future=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    directory = os.path.dirname(os.path.abspath(database))
    os.makedirs(directory, exist_ok=True)
    return create_engine(url, future=True)


def _row_to_quote(row: QuoteRow) -> Quote:
    return Quote(
        symbol=row.symbol,
        type=row.type,
        price=to_nullable_number(row.price),
        open=to_nullable_number(row.open),
        close=to_nullable_number(row.close),
        high=to_nullable_number(row.high),
        low=to_nullable_number(row.low),
        volume=to_nullable_number(row.volume),
        amount=to_nullable_number(row.amount),
        update_time=int(row.update_time),
    )


def _row_to_snapshot(row: SnapshotRow) -> Snapshot:
    return Snapshot(
        symbol=row.symbol,
        timestamp=int(row.timestamp_ms),
        open=to_nullable_number(row.open),
        close=to_nullable_number(row.close),
        high=to_nullable_number(row.high),
        low=to_nullable_number(row.low),
        volume=to_nullable_number(row.volume),
        created_at=int(row.created_at),
    )


class SqlStore(QuoteStore):
    """
    Direct durable store (SQLAlchemy).

    The database is the source of truth:
    - every accepted upsert/insert commits immediately (no batching)
    - range/latest queries read the (symbol, timestamp_ms) index directly
    - on_mutation() and flush() have nothing to do

    Stronger per-write durability than JsonFileStore, one transaction per write.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._insert = None

    # -------------------------
    # Lifecycle
    # -------------------------
    def open(self) -> None:
        if self.engine is not None:
            return

        engine = _build_engine(self.database_url)
        insert = _DIALECT_INSERT.get(engine.dialect.name)
        if insert is None:
            engine.dispose()
            raise ValueError(
                f"Unsupported database dialect '{engine.dialect.name}'. Expected: sqlite, postgresql"
            )

        Base.metadata.create_all(engine)
        self.engine = engine
        self._insert = insert
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        log.info("Opened %s", engine.url.render_as_string(hide_password=True))

    def on_mutation(self) -> None:
        return None

    def flush(self) -> None:
        return None

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self._session_factory = None

    def _session(self):
        if self._session_factory is None:
            raise RuntimeError("SqlStore is not open. Call open() first.")
        return self._session_factory()

    # -------------------------
    # Quote Table surface
    # -------------------------
    def upsert_quote(self, quote: Any) -> bool:
        normalized = normalize_quote(quote)
        if normalized is None:
            return False

        values = {"symbol": normalized.symbol}
        values.update({name: getattr(normalized, name) for name in _QUOTE_COLUMNS})

        try:
            with self._session() as session, session.begin():
                stmt = self._insert(QuoteRow).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[QuoteRow.symbol],
                    set_={name: stmt.excluded[name] for name in _QUOTE_COLUMNS},
                )
                session.execute(stmt)
        except (SQLAlchemyError, OverflowError):
            log.exception("Failed to upsert quote symbol=%s", normalized.symbol)
            return False

        self.on_mutation()
        return True

    def get_all_quotes(self) -> List[Quote]:
        with self._session() as session:
            rows = session.scalars(select(QuoteRow).order_by(QuoteRow.symbol.asc())).all()
            return [_row_to_quote(r) for r in rows]

    def get_quote(self, symbol: str) -> Optional[Quote]:
        with self._session() as session:
            row = session.get(QuoteRow, canonical_symbol(symbol))
            return _row_to_quote(row) if row is not None else None

    # -------------------------
    # Snapshot Series surface
    # -------------------------
    def insert_snapshot(self, snapshot: Any) -> bool:
        normalized = normalize_snapshot(snapshot)
        if normalized is None:
            return False

        row = SnapshotRow(
            symbol=normalized.symbol,
            timestamp_ms=normalized.timestamp,
            open=normalized.open,
            close=normalized.close,
            high=normalized.high,
            low=normalized.low,
            volume=normalized.volume,
            created_at=normalized.created_at,
        )

        try:
            with self._session() as session, session.begin():
                session.add(row)
        except (SQLAlchemyError, OverflowError):
            log.exception("Failed to insert snapshot symbol=%s ts=%s", normalized.symbol, normalized.timestamp)
            return False

        self.on_mutation()
        return True

    def get_snapshots(self, symbol: str, min_timestamp: Any = 0) -> List[Snapshot]:
        threshold = to_nullable_number(min_timestamp) or 0
        stmt = (
            select(SnapshotRow)
            .where(SnapshotRow.symbol == canonical_symbol(symbol))
            .where(SnapshotRow.timestamp_ms >= threshold)
            .order_by(SnapshotRow.timestamp_ms.asc(), SnapshotRow.id.asc())
        )
        with self._session() as session:
            return [_row_to_snapshot(r) for r in session.scalars(stmt).all()]

    def delete_snapshots_before(self, cutoff: Any) -> int:
        threshold = to_nullable_number(cutoff) or 0
        stmt = delete(SnapshotRow).where(SnapshotRow.timestamp_ms < threshold)

        try:
            with self._session() as session, session.begin():
                removed = session.execute(stmt).rowcount or 0
        except (SQLAlchemyError, OverflowError):
            log.exception("Failed to delete snapshots older than %s", threshold)
            return 0

        if removed > 0:
            self.on_mutation()
        return removed

    def last_snapshot_timestamp(self, symbol: str) -> Optional[int]:
        stmt = select(func.max(SnapshotRow.timestamp_ms)).where(SnapshotRow.symbol == canonical_symbol(symbol))
        with self._session() as session:
            value = session.execute(stmt).scalar()
        return int(value) if value is not None else None
