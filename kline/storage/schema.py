# kline/storage/schema.py
from sqlalchemy import BigInteger, Column, Float, Index, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SnapshotRow(Base):
    __tablename__ = "kline_snapshots"
    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(32), nullable=False)
    timestamp_ms = Column(BigInteger, nullable=False)
    open = Column(Float, nullable=True)
    close = Column(Float, nullable=True)
    high = Column(Float, nullable=True)
    low = Column(Float, nullable=True)
    volume = Column(Float, nullable=True)
    created_at = Column(BigInteger, nullable=False)

    # No uniqueness on (symbol, timestamp_ms): dedup happens in the poller.
    __table_args__ = (
        Index("idx_kline_symbol_time", "symbol", "timestamp_ms"),
    )


class QuoteRow(Base):
    __tablename__ = "latest_quotes"
    symbol = Column(String(32), primary_key=True)
    type = Column(String(16), nullable=False)
    price = Column(Float, nullable=True)
    open = Column(Float, nullable=True)
    close = Column(Float, nullable=True)
    high = Column(Float, nullable=True)
    low = Column(Float, nullable=True)
    volume = Column(Float, nullable=True)
    amount = Column(Float, nullable=True)
    update_time = Column(BigInteger, nullable=False)
