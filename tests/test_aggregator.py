import unittest

from kline.candles.aggregator import aggregate_candles, round_value
from kline.models.market import Snapshot


def s(ts, open=None, close=None, high=None, low=None, volume=None):
    return Snapshot(
        symbol="btcusdt",
        timestamp=ts,
        open=open,
        close=close,
        high=high,
        low=low,
        volume=volume,
        created_at=0,
    )


class TestAggregateCandles(unittest.TestCase):
    def test_one_bucket_example(self):
        rows = [
            s(0, close=100, volume=1),
            s(30_000, close=110, high=115, low=95, volume=2),
            s(59_999, close=105, volume=3),
        ]
        (candle,) = aggregate_candles(rows, 60_000)
        self.assertEqual(candle.time, 0)
        self.assertEqual(candle.open, 100)
        self.assertEqual(candle.close, 105)
        self.assertEqual(candle.high, 115)
        self.assertEqual(candle.low, 95)
        self.assertEqual(candle.volume, 6)

    def test_empty_input(self):
        self.assertEqual(aggregate_candles([], 60_000), [])

    def test_buckets_ascending_and_floored(self):
        rows = [s(60_000, close=2), s(61_000, close=3), s(125_000, close=4), s(0, close=1)]
        candles = aggregate_candles(sorted(rows, key=lambda r: r.timestamp), 60_000)
        self.assertEqual([c.time for c in candles], [0, 60_000, 120_000])
        self.assertEqual([(c.open, c.close) for c in candles], [(1, 1), (2, 3), (4, 4)])

    def test_fill_rules(self):
        # open <- close, high/low <- max/min(open, close), volume <- 0
        (c,) = aggregate_candles([s(0, close=7)], 60_000)
        self.assertEqual((c.open, c.close, c.high, c.low, c.volume), (7, 7, 7, 7, 0))

        # close <- open
        (c,) = aggregate_candles([s(0, open=4)], 60_000)
        self.assertEqual((c.open, c.close), (4, 4))

        # nothing at all -> zeros
        (c,) = aggregate_candles([s(0)], 60_000)
        self.assertEqual((c.open, c.close, c.high, c.low, c.volume), (0, 0, 0, 0, 0))

        (c,) = aggregate_candles([s(0, open=10, close=8)], 60_000)
        self.assertEqual((c.high, c.low), (10, 8))

    def test_equal_timestamps_close_from_last_processed(self):
        (c,) = aggregate_candles([s(5, close=1), s(5, close=2)], 60_000)
        self.assertEqual(c.open, 1)
        self.assertEqual(c.close, 2)

    def test_rounding(self):
        (c,) = aggregate_candles([s(0, close=1.234567891, volume=0.1234567891)], 60_000)
        self.assertEqual(c.close, 1.2346)
        self.assertEqual(c.volume, 0.123457)

    def test_overflowing_volume_becomes_none(self):
        (c,) = aggregate_candles([s(0, close=1, volume=1e308), s(1, close=1, volume=1e308)], 60_000)
        self.assertIsNone(c.volume)
        self.assertEqual(c.close, 1)

    def test_truncating_tail_keeps_values(self):
        rows = [s(i * 60_000, close=i, volume=1) for i in range(10)]
        full = aggregate_candles(rows, 60_000)
        tail = full[-3:]
        self.assertEqual([c.time for c in tail], [420_000, 480_000, 540_000])
        self.assertEqual(tail, full[7:])

    def test_rejects_non_positive_interval(self):
        with self.assertRaises(ValueError):
            aggregate_candles([s(0, close=1)], 0)


class TestRoundValue(unittest.TestCase):
    def test_non_finite_is_none(self):
        self.assertIsNone(round_value(float("nan")))
        self.assertIsNone(round_value(float("inf")))
        self.assertIsNone(round_value(float("-inf"), 6))
        self.assertIsNone(round_value(None))

    def test_half_rounds_up(self):
        self.assertEqual(round_value(0.125, 2), 0.13)
        self.assertEqual(round_value(2.5, 0), 3)
        self.assertEqual(round_value(-2.5, 0), -2)
        self.assertEqual(round_value(100), 100)
