import dataclasses
import unittest

from kline.storage.tables import QuoteTable, SnapshotSeries


def snap(symbol, ts, **kw):
    row = {"symbol": symbol, "timestamp": ts, "createdAt": 0}
    row.update(kw)
    return row


class TestQuoteTable(unittest.TestCase):
    def test_upsert_replaces_whole_record(self):
        calls = []
        table = QuoteTable(on_mutation=lambda: calls.append(1))

        self.assertTrue(table.upsert({"symbol": "btcusdt", "close": 100, "high": 120, "updateTime": 1000}))
        self.assertTrue(table.upsert({"symbol": "BTCUSDT", "close": 105, "updateTime": 2000}))

        q = table.get_one("btcusdt")
        self.assertEqual(q.close, 105)
        self.assertIsNone(q.high)  # no field-level merge
        self.assertEqual(len(table), 1)
        self.assertEqual(len(calls), 2)

    def test_rejected_upsert_does_not_notify(self):
        calls = []
        table = QuoteTable(on_mutation=lambda: calls.append(1))
        self.assertFalse(table.upsert({"close": 1}))
        self.assertEqual(calls, [])

    def test_identical_upsert_is_idempotent(self):
        table = QuoteTable()
        raw = {"symbol": "ethusdt", "close": 10, "updateTime": 5}
        table.upsert(raw)
        before = table.get_all()
        table.upsert(raw)
        self.assertEqual(table.get_all(), before)

    def test_get_all_sorted_by_symbol(self):
        table = QuoteTable()
        for s in ("xrpusdt", "btcusdt", "ethusdt"):
            table.upsert({"symbol": s, "updateTime": 1})
        self.assertEqual([q.symbol for q in table.get_all()], ["btcusdt", "ethusdt", "xrpusdt"])

    def test_reads_cannot_corrupt_state(self):
        table = QuoteTable()
        table.upsert({"symbol": "btcusdt", "close": 1, "updateTime": 1})
        rows = table.get_all()
        rows.clear()
        with self.assertRaises(dataclasses.FrozenInstanceError):
            table.get_one("btcusdt").close = 2
        self.assertEqual(table.get_one("btcusdt").close, 1)

    def test_missing_symbol(self):
        self.assertIsNone(QuoteTable().get_one("nope"))


class TestSnapshotSeries(unittest.TestCase):
    def test_range_sorted_and_filtered(self):
        series = SnapshotSeries()
        for ts in (3000, 1000, 2000):
            series.insert(snap("btcusdt", ts))
        series.insert(snap("ethusdt", 1500))

        self.assertEqual([s.timestamp for s in series.range("btcusdt", 0)], [1000, 2000, 3000])
        self.assertEqual([s.timestamp for s in series.range("btcusdt", 2000)], [2000, 3000])
        self.assertEqual([s.timestamp for s in series.range("BTCUSDT", 3001)], [])
        self.assertEqual([s.symbol for s in series.range("ethusdt", 0)], ["ethusdt"])

    def test_range_membership_property(self):
        series = SnapshotSeries()
        stamps = [5, 1, 9, 9, 3, 7]
        for ts in stamps:
            series.insert(snap("a", ts))
        for m in range(0, 11):
            got = sorted(s.timestamp for s in series.range("a", m))
            self.assertEqual(got, sorted(t for t in stamps if t >= m))

    def test_insert_advances_index_only_forward(self):
        series = SnapshotSeries()
        self.assertIsNone(series.latest_timestamp("a"))
        series.insert(snap("a", 2000))
        series.insert(snap("a", 1000))
        self.assertEqual(series.latest_timestamp("a"), 2000)

    def test_invalid_insert_rejected(self):
        calls = []
        series = SnapshotSeries(on_mutation=lambda: calls.append(1))
        self.assertFalse(series.insert({"symbol": "a"}))
        self.assertFalse(series.insert({"timestamp": 1}))
        self.assertEqual(len(series), 0)
        self.assertEqual(calls, [])

    def test_delete_before_is_exact_and_rebuilds_index(self):
        calls = []
        series = SnapshotSeries(on_mutation=lambda: calls.append(1))
        for ts in (1000, 2000, 3000):
            series.insert(snap("a", ts))
        series.insert(snap("b", 1500))
        calls.clear()

        before = len(series)
        removed = series.delete_before(2000)

        self.assertEqual(removed, 2)
        self.assertEqual(before - len(series), removed)
        self.assertTrue(all(s.timestamp >= 2000 for s in series.snapshots))
        self.assertEqual(series.latest_timestamp("a"), 3000)
        self.assertIsNone(series.latest_timestamp("b"))
        self.assertEqual(len(calls), 1)

    def test_delete_nothing_does_not_notify(self):
        calls = []
        series = SnapshotSeries(on_mutation=lambda: calls.append(1))
        series.insert(snap("a", 5000))
        calls.clear()
        self.assertEqual(series.delete_before(1000), 0)
        self.assertEqual(series.delete_before("garbage"), 0)
        self.assertEqual(calls, [])

    def test_index_matches_true_max_after_mixed_operations(self):
        series = SnapshotSeries()
        for ts in (10, 50, 30):
            series.insert(snap("a", ts))
        series.delete_before(40)
        self.assertEqual(series.latest_timestamp("a"), 50)
        series.insert(snap("a", 20))
        self.assertEqual(series.latest_timestamp("a"), 50)
        series.delete_before(60)
        self.assertIsNone(series.latest_timestamp("a"))
