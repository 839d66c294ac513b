import unittest
from datetime import datetime, timedelta

from utils.victories import VictoryTracker

T0 = datetime(2026, 10, 14, 20, 0, 0)


class TestVictoryTracker(unittest.TestCase):
    def setUp(self):
        self.tracker = VictoryTracker(window_minutes=3)

    def test_first_victory_is_recorded(self):
        self.assertTrue(self.tracker.record_victory("NATO", T0))
        self.assertEqual(self.tracker.get_totals(), {"nato": 1, "russia": 0, "total": 1})
        self.assertEqual(self.tracker.first_victory, T0)
        self.assertEqual(self.tracker.last_victory.faction, "NATO")

    def test_repeat_within_window_is_rejected(self):
        self.tracker.record_victory("NATO", T0)

        self.assertFalse(self.tracker.record_victory("NATO", T0 + timedelta(minutes=2, seconds=59)))
        self.assertEqual(self.tracker.get_totals(), {"nato": 1, "russia": 0, "total": 1})
        self.assertEqual(len(self.tracker.history), 1)

    def test_repeat_after_window_is_accepted(self):
        self.tracker.record_victory("NATO", T0)

        self.assertTrue(self.tracker.record_victory("NATO", T0 + timedelta(minutes=3)))
        self.assertEqual(self.tracker.get_totals()["nato"], 2)

    def test_other_faction_is_not_deduplicated(self):
        self.tracker.record_victory("NATO", T0)
        self.assertTrue(self.tracker.record_victory("RUSSIA", T0 + timedelta(seconds=10)))
        self.assertEqual(self.tracker.get_totals(), {"nato": 1, "russia": 1, "total": 2})

    def test_later_entry_blocks_backfilled_report(self):
        self.tracker.record_victory("NATO", T0)
        self.assertFalse(self.tracker.record_victory("NATO", T0 - timedelta(hours=1)))

    def test_faction_name_is_normalized(self):
        self.assertTrue(self.tracker.record_victory("russia", T0))
        self.assertEqual(self.tracker.history[0].faction, "RUSSIA")

    def test_unknown_faction(self):
        with self.assertRaises(ValueError):
            self.tracker.record_victory("FIA", T0)

    def test_ids_are_monotonic(self):
        for i in range(3):
            self.tracker.record_victory("NATO", T0 + timedelta(minutes=10 * i))
        self.assertEqual([e.id for e in self.tracker.history], [1, 2, 3])

    def test_history_newest_first(self):
        self.tracker.record_victory("NATO", T0)
        self.tracker.record_victory("RUSSIA", T0 + timedelta(minutes=5))
        self.tracker.record_victory("NATO", T0 + timedelta(minutes=10))

        history = self.tracker.get_history(limit=2)
        self.assertEqual([e.faction for e in history], ["NATO", "RUSSIA"])
        self.assertEqual(history[0].timestamp, T0 + timedelta(minutes=10))

    def test_dict_round_trip(self):
        self.tracker.record_victory("NATO", T0)
        self.tracker.record_victory("RUSSIA", T0 + timedelta(minutes=1))

        restored = VictoryTracker()
        restored.load_dict(self.tracker.to_dict())
        self.assertEqual(restored.get_totals(), self.tracker.get_totals())
        self.assertEqual(restored.history, self.tracker.history)
        self.assertEqual(restored.first_victory, T0)
        self.assertEqual(restored.last_victory, self.tracker.last_victory)

    def test_last_victory_derived_from_history_when_missing(self):
        self.tracker.record_victory("NATO", T0)
        data = self.tracker.to_dict()
        data["last_victory"] = None

        restored = VictoryTracker()
        restored.load_dict(data)
        self.assertEqual(restored.last_victory.faction, "NATO")


if __name__ == "__main__":
    unittest.main()
