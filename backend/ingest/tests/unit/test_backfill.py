"""Unit tests for the day range walked by the backfill."""

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from ingest.pipeline import backfill_days, day_prefix

NOW = datetime(2025, 1, 10, 12, 0, tzinfo=UTC)


def _timestamp(*args, tz=UTC) -> int:
    return int(datetime(*args, tzinfo=tz).timestamp())


class TestBackfillDays:
    def test_starts_36_hours_before_latest_match(self):
        days = list(backfill_days(_timestamp(2025, 1, 8, 10, 0), NOW))

        assert days == [date(2025, 1, 6), date(2025, 1, 7), date(2025, 1, 8), date(2025, 1, 9), date(2025, 1, 10)]

    def test_overlap_crossing_midnight(self):
        # 36h before 2025-01-08 13:00 is 2025-01-07 01:00
        days = list(backfill_days(_timestamp(2025, 1, 8, 13, 0), NOW))

        assert days[0] == date(2025, 1, 7)

    def test_range_is_contiguous(self):
        days = list(backfill_days(_timestamp(2024, 12, 20, 0, 0), NOW))

        assert days[-1] == date(2025, 1, 10)
        assert all((later - earlier).days == 1 for earlier, later in zip(days, days[1:], strict=False))

    def test_latest_match_today(self):
        days = list(backfill_days(_timestamp(2025, 1, 10, 11, 0), NOW))

        assert days == [date(2025, 1, 8), date(2025, 1, 9), date(2025, 1, 10)]

    def test_no_stored_match_walks_today_only(self):
        assert list(backfill_days(None, NOW)) == [date(2025, 1, 10)]

    def test_days_follow_configured_timezone(self):
        tokyo = ZoneInfo("Asia/Tokyo")
        late_evening_utc = datetime(2025, 1, 10, 20, 0, tzinfo=UTC)  # already 2025-01-11 in Tokyo

        assert list(backfill_days(None, late_evening_utc, tokyo)) == [date(2025, 1, 11)]
        assert list(backfill_days(None, late_evening_utc)) == [date(2025, 1, 10)]


class TestDayPrefix:
    def test_formats_yymmdd(self):
        assert day_prefix(date(2025, 1, 9)) == "250109"
