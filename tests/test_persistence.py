import asyncio
import json
import os
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

from utils.errors import PersistenceFailure
from utils.metrics import MetricsAggregator
from utils.persistence import SnapshotStore
from utils.uptime import UptimeTracker
from utils.victories import VictoryTracker

T0 = datetime(2026, 10, 14, 12, 0, 0)


class TestSnapshotStore(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.store = SnapshotStore(os.path.join(self.test_dir, "data"))

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def _populated(self):
        metrics, victories, uptime = MetricsAggregator(), VictoryTracker(), UptimeTracker()
        for i in range(30):
            when = T0 + timedelta(hours=i * 5)
            metrics.record("fps", 40 + (i % 7) * 1.5, when)
            metrics.record("players", i % 12, when)
        victories.record_victory("NATO", T0)
        victories.record_victory("RUSSIA", T0 + timedelta(minutes=30))
        victories.record_victory("NATO", T0 + timedelta(hours=2))
        uptime.observe(T0)
        return metrics, victories, uptime

    def test_round_trip(self):
        metrics, victories, uptime = self._populated()
        self.store.save(metrics, victories, uptime, T0)

        m2, v2, u2 = MetricsAggregator(), VictoryTracker(), UptimeTracker()
        self.store.load(m2, v2, u2)

        for metric_type in ("fps", "players"):
            self.assertEqual(list(m2.series[metric_type].raw), list(metrics.series[metric_type].raw))
            self.assertEqual(m2.series[metric_type].buckets, metrics.series[metric_type].buckets)
        self.assertEqual(v2.get_totals(), victories.get_totals())
        self.assertEqual(v2.history, victories.history)
        self.assertEqual(v2.first_victory, victories.first_victory)
        self.assertEqual(u2.server_start_time, T0)

    def test_files_are_pretty_printed(self):
        self.store.save(*self._populated())
        with open(self.store.path("victories"), "r", encoding="utf-8") as f:
            content = f.read()
        self.assertIn('\n  "nato": 2', content)
        self.assertEqual(json.loads(content)["total"], 3)

    def test_missing_snapshot_leaves_state_empty(self):
        metrics, victories, uptime = MetricsAggregator(), VictoryTracker(), UptimeTracker()
        self.store.load(metrics, victories, uptime)
        self.assertEqual(len(metrics.series["fps"].raw), 0)
        self.assertEqual(victories.total, 0)
        self.assertIsNone(uptime.server_start_time)

    def test_corrupt_snapshot_falls_back_to_empty(self):
        os.makedirs(self.store.data_dir)
        with open(self.store.path("fps"), "w") as f:
            f.write("{broken")
        with open(self.store.path("victories"), "w") as f:
            json.dump({"history": [{"faction": "NATO"}]}, f)

        metrics, victories, uptime = MetricsAggregator(), VictoryTracker(), UptimeTracker()
        self.store.load(metrics, victories, uptime)
        self.assertEqual(len(metrics.series["fps"].raw), 0)
        self.assertEqual(victories.history, [])

    def test_write_failure_raises_persistence_failure(self):
        with patch("utils.persistence.write_json_file", side_effect=OSError("disk full")):
            with self.assertRaises(PersistenceFailure):
                self.store.save(*self._populated())

    def test_overlapping_writes_leave_valid_files(self):
        payloads = self.store.collect(*self._populated(), T0)

        async def write_concurrently():
            for _ in range(20):
                await asyncio.gather(
                    asyncio.to_thread(self.store.write, payloads),
                    asyncio.to_thread(self.store.write, payloads),
                )

        asyncio.run(write_concurrently())

        with open(self.store.path("fps"), "r", encoding="utf-8") as f:
            self.assertEqual(len(json.load(f)["raw"]), 30)
        self.assertEqual([n for n in os.listdir(self.store.data_dir) if n.endswith(".tmp")], [])

    def test_collected_payload_is_detached_from_live_state(self):
        metrics, victories, uptime = self._populated()
        payloads = self.store.collect(metrics, victories, uptime, T0)

        metrics.record("fps", 12.0, T0 + timedelta(days=30))
        victories.record_victory("RUSSIA", T0 + timedelta(days=30))
        self.store.write(payloads)

        with open(self.store.path("fps"), "r", encoding="utf-8") as f:
            self.assertEqual(len(json.load(f)["raw"]), 30)
        with open(self.store.path("victories"), "r", encoding="utf-8") as f:
            self.assertEqual(json.load(f)["total"], 3)

    def test_failed_write_removes_temp_file(self):
        payloads = self.store.collect(*self._populated(), T0)
        payloads["uptime"]["bad"] = object()

        with self.assertRaises(PersistenceFailure):
            self.store.write(payloads)
        self.assertEqual([n for n in os.listdir(self.store.data_dir) if n.endswith(".tmp")], [])


if __name__ == "__main__":
    unittest.main()
