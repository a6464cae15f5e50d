import asyncio
import unittest
from unittest import mock

from kline.jobs.retention import retention_loop, sweep_once
from kline.storage.sql_store import SqlStore

DAY_MS = 24 * 60 * 60 * 1000


class TestRetention(unittest.TestCase):
    def setUp(self):
        self.store = SqlStore("sqlite://")
        self.store.open()
        self.addCleanup(self.store.close)

    def test_sweep_removes_only_expired(self):
        now = 10 * DAY_MS
        for day in (1, 2, 3, 9):
            self.store.insert_snapshot({"symbol": "btcusdt", "timestamp": day * DAY_MS})

        with self.assertLogs("retention", level="INFO"):
            removed = sweep_once(self.store, 7 * DAY_MS, now=now)

        self.assertEqual(removed, 2)
        self.assertEqual(
            [s.timestamp for s in self.store.get_snapshots("btcusdt", 0)],
            [3 * DAY_MS, 9 * DAY_MS],
        )

    def test_sweep_failure_is_contained(self):
        broken = mock.Mock()
        broken.delete_snapshots_before.side_effect = RuntimeError("db gone")
        with self.assertLogs("retention", level="ERROR"):
            self.assertEqual(sweep_once(broken, DAY_MS, now=DAY_MS * 2), 0)


class TestRetentionLoop(unittest.IsolatedAsyncioTestCase):
    async def test_loop_sweeps_each_interval(self):
        store = mock.Mock()
        store.delete_snapshots_before.return_value = 0

        task = asyncio.create_task(retention_loop(store, DAY_MS, interval_seconds=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertGreaterEqual(store.delete_snapshots_before.call_count, 1)
