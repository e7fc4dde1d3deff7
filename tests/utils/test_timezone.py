"""Tests for utils/timezone.py - UTC-everywhere time handling."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from utils.timezone import now_utc, today_utc, to_utc


class TestNowUtc:
    """Tests for now_utc()."""

    def test_returns_timezone_aware(self):
        """Result must have tzinfo set (not naive)."""
        assert now_utc().tzinfo is not None

    def test_is_utc(self):
        assert now_utc().tzinfo == timezone.utc


class TestTodayUtc:
    """Tests for today_utc()."""

    def test_returns_date(self):
        result = today_utc()
        assert type(result) is date

    def test_matches_utc_calendar_day(self):
        assert today_utc() in {now_utc().date(), datetime.now(timezone.utc).date()}


class TestToUtc:
    """Tests for to_utc()."""

    def test_raises_on_naive(self):
        """Naive datetime must raise ValueError."""
        naive = datetime(2024, 1, 1, 12, 0, 0)
        with pytest.raises(ValueError, match="naive"):
            to_utc(naive)

    def test_converts_other_timezone(self):
        """Nairobi 09:00 becomes UTC 06:00."""
        nairobi = datetime(2024, 1, 1, 9, 0, 0, tzinfo=ZoneInfo("Africa/Nairobi"))
        result = to_utc(nairobi)
        assert result.tzinfo == timezone.utc
        assert result.hour == 6

    def test_late_local_time_changes_date(self):
        """A late evening payment in Chicago is already the next day in UTC."""
        chicago = datetime(2024, 12, 31, 20, 0, 0, tzinfo=ZoneInfo("America/Chicago"))
        assert to_utc(chicago).date() == date(2025, 1, 1)

    def test_utc_passes_through(self):
        utc_time = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert to_utc(utc_time) == utc_time
