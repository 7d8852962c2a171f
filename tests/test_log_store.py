import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from voice_input.log_store import TranscriptLog
from voice_input.models import LogEntry


class TestTranscriptLog(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.log_dir = Path(self.tmp.name) / "logs"
        self.store = TranscriptLog(self.log_dir)

    def tearDown(self):
        self.tmp.cleanup()

    def entry(self, entry_id, when, text="hello"):
        return LogEntry(id=entry_id, timestamp=when, raw_text=text)

    def test_creates_directory(self):
        self.assertTrue(self.log_dir.is_dir())

    def test_add_entry_writes_daily_file(self):
        entry = self.store.add_entry("raw", refined_text="Refined.", audio_duration_secs=1.5,
                                     llm_used=True, prompt_preset="memo")
        path = self.log_dir / f"{entry.timestamp.strftime('%Y-%m-%d')}.json"
        data = json.loads(path.read_text(encoding="utf-8"))

        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["id"], entry.id)
        self.assertEqual(data[0]["raw_text"], "raw")
        self.assertEqual(data[0]["refined_text"], "Refined.")
        self.assertTrue(data[0]["llm_used"])
        self.assertEqual(data[0]["prompt_preset"], "memo")

    def test_ids_are_unique(self):
        ids = {self.store.add_entry(f"text {i}").id for i in range(20)}
        self.assertEqual(len(ids), 20)

    def test_entries_grouped_by_day(self):
        day1 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
        day2 = datetime(2025, 3, 2, 9, 0, tzinfo=timezone.utc)
        self.store.append(self.entry("a", day1))
        self.store.append(self.entry("b", day1 + timedelta(hours=1)))
        self.store.append(self.entry("c", day2))

        self.assertEqual([e.id for e in self.store.get_logs_for_date(2025, 3, 1)], ["a", "b"])
        self.assertEqual([e.id for e in self.store.get_logs_for_date(2025, 3, 2)], ["c"])
        self.assertEqual(self.store.get_available_dates(), ["2025-03-02", "2025-03-01"])

    def test_invalid_date(self):
        self.assertEqual(self.store.get_logs_for_date(2025, 2, 30), [])

    def test_recent_logs_newest_first(self):
        base = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
        for i, hours in enumerate([0, 30, 5, 50]):
            self.store.append(self.entry(str(i), base + timedelta(hours=hours)))

        recent = self.store.get_recent_logs(limit=3)
        self.assertEqual([e.id for e in recent], ["3", "1", "2"])

    def test_round_trip_preserves_fields(self):
        when = datetime(2025, 3, 1, 12, 30, 15, tzinfo=timezone.utc)
        original = LogEntry(id="ff", timestamp=when, raw_text="a", refined_text="A.",
                            audio_duration_secs=2.5, llm_used=True, prompt_preset="chat")
        self.store.append(original)
        self.assertEqual(self.store.get_logs_for_date(2025, 3, 1), [original])

    def test_delete_entry(self):
        when = datetime(2025, 3, 1, tzinfo=timezone.utc)
        self.store.append(self.entry("a", when))
        self.store.append(self.entry("b", when))

        self.assertTrue(self.store.delete_entry("a"))
        self.assertFalse(self.store.delete_entry("missing"))
        self.assertEqual([e.id for e in self.store.get_logs_for_date(2025, 3, 1)], ["b"])

    def test_delete_all_entries(self):
        self.store.append(self.entry("a", datetime(2025, 3, 1, tzinfo=timezone.utc)))
        self.store.append(self.entry("b", datetime(2025, 3, 2, tzinfo=timezone.utc)))
        self.assertEqual(self.store.delete_all_entries(), 2)
        self.assertEqual(self.store.get_available_dates(), [])

    def test_corrupt_file_is_skipped(self):
        (self.log_dir / "2025-01-01.json").write_text("{not json", encoding="utf-8")
        self.store.append(self.entry("a", datetime(2025, 3, 1, tzinfo=timezone.utc)))
        self.assertEqual([e.id for e in self.store.get_recent_logs()], ["a"])


if __name__ == '__main__':
    unittest.main()
