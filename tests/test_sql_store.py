import os
import tempfile
import unittest
from unittest import mock

from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from kline.storage.sql_store import SqlStore
from store_contract import StoreContractMixin, snap


class TestSqlStoreContract(StoreContractMixin, unittest.TestCase):
    def make_store(self):
        return SqlStore("sqlite://")


class TestSqlStoreFile(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.url = f"sqlite:///{os.path.join(self._tmp.name, 'data', 'kline.db')}"

    def test_creates_directory_schema_and_index(self):
        store = SqlStore(self.url)
        store.open()
        try:
            insp = inspect(store.engine)
            self.assertEqual(
                set(insp.get_table_names()),
                {"kline_snapshots", "latest_quotes"},
            )
            index_names = {ix["name"] for ix in insp.get_indexes("kline_snapshots")}
            self.assertIn("idx_kline_symbol_time", index_names)
        finally:
            store.close()

    def test_writes_are_durable_without_flush(self):
        store = SqlStore(self.url)
        store.open()
        store.upsert_quote({"symbol": "btcusdt", "close": 100, "updateTime": 1000})
        store.upsert_quote({"symbol": "btcusdt", "close": 105, "updateTime": 2000})
        store.insert_snapshot(snap("btcusdt", 2000, close=105))
        store.insert_snapshot(snap("btcusdt", 1000, close=100))
        # Drop the engine without flushing anything.
        store.engine.dispose()

        reopened = SqlStore(self.url)
        reopened.open()
        try:
            q = reopened.get_quote("btcusdt")
            self.assertEqual(q.close, 105)
            self.assertEqual(q.update_time, 2000)
            self.assertEqual(
                [s.timestamp for s in reopened.get_snapshots("btcusdt", 0)],
                [1000, 2000],
            )
            self.assertEqual(reopened.last_snapshot_timestamp("btcusdt"), 2000)
        finally:
            reopened.close()

    def test_unsupported_dialect(self):
        with mock.patch("kline.storage.sql_store._DIALECT_INSERT", {}):
            with self.assertRaises(ValueError):
                SqlStore("sqlite://").open()

    def test_requires_open(self):
        with self.assertRaises(RuntimeError):
            SqlStore("sqlite://").get_all_quotes()

    def test_write_failure_is_logged_and_rejected(self):
        store = SqlStore("sqlite://")
        store.open()
        self.addCleanup(store.close)

        failing = mock.MagicMock(side_effect=OperationalError("INSERT", {}, Exception("locked")))
        with mock.patch("sqlalchemy.orm.Session.execute", failing):
            with self.assertLogs("sql_store", level="ERROR"):
                self.assertFalse(store.upsert_quote({"symbol": "btcusdt", "updateTime": 1}))
            with self.assertLogs("sql_store", level="ERROR"):
                self.assertEqual(store.delete_snapshots_before(10), 0)

        self.assertIsNone(store.get_quote("btcusdt"))
