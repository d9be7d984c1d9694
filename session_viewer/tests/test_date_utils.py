import unittest
from datetime import datetime, timezone
from types import SimpleNamespace

from session_viewer.date_utils import format_datetime_utc, parse_timestamp_ms, sort_epoch_ms, stat_dates


class DateUtilsTests(unittest.TestCase):
    def test_parse_timestamp_variants(self) -> None:
        self.assertEqual(parse_timestamp_ms("2026-01-01T00:00:00Z"), 1_767_225_600_000)
        self.assertEqual(parse_timestamp_ms("2026-01-01T00:00:00.250+00:00"), 1_767_225_600_250)
        # Naive timestamps are read as UTC.
        self.assertEqual(parse_timestamp_ms("2026-01-01T00:00:00"), 1_767_225_600_000)
        for value in (None, "", "yesterday", 1_767_225_600, {"t": 1}):
            self.assertIsNone(parse_timestamp_ms(value))

    def test_parse_timestamp_any_fraction_length(self) -> None:
        base = 1_771_236_000_000
        self.assertEqual(parse_timestamp_ms("2026-02-16T10:00:00.1Z"), base + 100)
        self.assertEqual(parse_timestamp_ms("2026-02-16T10:00:00.12Z"), base + 120)
        self.assertEqual(parse_timestamp_ms("2026-02-16T10:00:00.1234567Z"), base + 123)
        self.assertEqual(parse_timestamp_ms("2026-02-16T15:30:00.12+05:30"), base + 120)

    def test_sort_epoch_defaults_to_zero(self) -> None:
        self.assertEqual(sort_epoch_ms("not a date"), 0)
        self.assertEqual(sort_epoch_ms(None), 0)

    def test_format_datetime_utc(self) -> None:
        value = datetime(2026, 2, 16, 10, 5, 3, 123456, tzinfo=timezone.utc)
        self.assertEqual(format_datetime_utc(value), "2026-02-16T10:05:03.123Z")

    def test_stat_dates_prefers_birthtime(self) -> None:
        stats = SimpleNamespace(st_birthtime=1_767_225_600, st_ctime=1_769_000_000, st_mtime=1_769_904_000)
        self.assertEqual(
            stat_dates(stats),
            {"createdAt": "2026-01-01T00:00:00.000Z", "updatedAt": "2026-02-01T00:00:00.000Z"},
        )

    def test_stat_dates_falls_back_to_mtime(self) -> None:
        stats = SimpleNamespace(st_ctime=0, st_mtime=1_769_904_000)
        self.assertEqual(stat_dates(stats)["createdAt"], "2026-02-01T00:00:00.000Z")


if __name__ == "__main__":
    unittest.main()
