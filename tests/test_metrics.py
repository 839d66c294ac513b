import random
import unittest
from datetime import datetime, timedelta

from utils.metrics import Bucket, MetricsAggregator, bucket_key, bucket_start

BASE_TIME = datetime(2026, 10, 14, 12, 30, 0)


class TestBucketKeys(unittest.TestCase):
    def test_calendar_keys(self):
        self.assertEqual(bucket_key("hourly", BASE_TIME), "2026-10-14 12")
        self.assertEqual(bucket_key("daily", BASE_TIME), "2026-10-14")
        self.assertEqual(bucket_key("weekly", BASE_TIME), "2026-W42")
        self.assertEqual(bucket_key("monthly", BASE_TIME), "2026-10")

    def test_iso_week_at_year_boundary(self):
        # Friday 1 January 2027 belongs to ISO week 53 of 2026
        self.assertEqual(bucket_key("weekly", datetime(2027, 1, 1, 9)), "2026-W53")

    def test_bucket_starts(self):
        self.assertEqual(bucket_start("hourly", BASE_TIME), datetime(2026, 10, 14, 12))
        self.assertEqual(bucket_start("daily", BASE_TIME), datetime(2026, 10, 14))
        self.assertEqual(bucket_start("weekly", BASE_TIME), datetime(2026, 10, 12))
        self.assertEqual(bucket_start("monthly", BASE_TIME), datetime(2026, 10, 1))

    def test_unknown_granularity(self):
        with self.assertRaises(ValueError):
            bucket_key("yearly", BASE_TIME)


class TestMetricsAggregator(unittest.TestCase):
    def setUp(self):
        self.metrics = MetricsAggregator()

    def test_raw_history_is_capped_to_most_recent(self):
        for i in range(1500):
            self.metrics.record("fps", i, BASE_TIME + timedelta(seconds=i))

        raw = self.metrics.series["fps"].raw
        self.assertEqual(len(raw), 1000)
        self.assertEqual([s.value for s in raw], [float(i) for i in range(500, 1500)])

    def test_bucket_statistics(self):
        rng = random.Random(7)
        values = [rng.uniform(20, 60) for _ in range(50)]
        for i, value in enumerate(values):
            self.metrics.record("fps", value, BASE_TIME + timedelta(seconds=i))

        bucket = self.metrics.series["fps"].buckets["hourly"]["2026-10-14 12"]
        self.assertEqual(bucket.count, 50)
        self.assertAlmostEqual(bucket.average, bucket.sum / bucket.count)
        self.assertTrue(all(bucket.min <= v <= bucket.max for v in values))
        self.assertEqual(bucket.min, min(values))
        self.assertEqual(bucket.max, max(values))

    def test_each_sample_lands_in_one_bucket_per_granularity(self):
        self.metrics.record("players", 10, BASE_TIME)
        self.metrics.record("players", 20, BASE_TIME + timedelta(hours=1))
        self.metrics.record("players", 30, BASE_TIME + timedelta(days=1))

        buckets = self.metrics.series["players"].buckets
        self.assertEqual(sum(b.count for b in buckets["hourly"].values()), 3)
        self.assertEqual(len(buckets["hourly"]), 3)
        self.assertEqual(len(buckets["daily"]), 2)
        self.assertEqual(len(buckets["weekly"]), 1)
        self.assertEqual(buckets["monthly"]["2026-10"].count, 3)

    def test_query_raw_oldest_first(self):
        for i in range(5):
            self.metrics.record("fps", i, BASE_TIME + timedelta(minutes=i))

        result = self.metrics.query("fps", "raw", limit=3)
        self.assertEqual([s.value for s in result], [2.0, 3.0, 4.0])

    def test_query_rollups_ordered_by_period(self):
        # Recorded out of calendar order
        self.metrics.record("fps", 50, BASE_TIME + timedelta(days=2))
        self.metrics.record("fps", 30, BASE_TIME)
        self.metrics.record("fps", 40, BASE_TIME + timedelta(days=1))

        result = self.metrics.query("fps", "daily", limit=2)
        self.assertEqual([b.average for b in result], [40.0, 50.0])
        self.assertEqual(result[0].bucket_start, datetime(2026, 10, 15))

    def test_query_zero_limit(self):
        self.metrics.record("fps", 1, BASE_TIME)
        self.assertEqual(self.metrics.query("fps", "raw", limit=0), [])

    def test_unknown_metric_type(self):
        with self.assertRaises(ValueError):
            self.metrics.record("cpu", 1, BASE_TIME)
        with self.assertRaises(ValueError):
            self.metrics.query("fps", "yearly")

    def test_latest(self):
        self.assertIsNone(self.metrics.latest("fps"))
        self.metrics.record("fps", 12.5, BASE_TIME)
        self.assertEqual(self.metrics.latest("fps"), 12.5)

    def test_dict_round_trip(self):
        for i in range(10):
            self.metrics.record("fps", 30 + i, BASE_TIME + timedelta(hours=i * 7))

        restored = MetricsAggregator()
        restored.load_dict("fps", self.metrics.to_dict("fps"))

        original = self.metrics.series["fps"]
        copy = restored.series["fps"]
        self.assertEqual(list(copy.raw), list(original.raw))
        self.assertEqual(copy.buckets, original.buckets)

    def test_bucket_average_is_recomputed_on_load(self):
        data = {"bucket_start": "2026-10-14T12:00:00", "sum": 90.0, "count": 3, "min": 20.0, "max": 40.0}
        bucket = Bucket.from_dict(data)
        self.assertEqual(bucket.average, 30.0)


if __name__ == "__main__":
    unittest.main()
