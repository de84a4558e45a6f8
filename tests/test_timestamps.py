"""Unit tests for timestamp utilities."""

from datetime import datetime, timedelta, timezone

from alert_engine.utils.timestamps import ensure_utc, utc_now


class TestUtcNow:
    """Tests for utc_now function."""

    def test_utc_now_returns_utc_datetime(self):
        now = utc_now()

        assert now.tzinfo == timezone.utc
        assert isinstance(now, datetime)

    def test_utc_now_is_recent(self):
        before = datetime.now(timezone.utc)
        now = utc_now()
        after = datetime.now(timezone.utc)

        assert before <= now <= after


class TestEnsureUtc:
    """Tests for ensure_utc function."""

    def test_ensure_utc_with_none(self):
        assert ensure_utc(None) is None

    def test_ensure_utc_with_naive_datetime(self):
        """Naive datetimes are treated as UTC."""
        result = ensure_utc(datetime(2026, 10, 1, 12, 0, 0))

        assert result.tzinfo == timezone.utc
        assert result.hour == 12

    def test_ensure_utc_converts_other_timezones(self):
        pacific = timezone(timedelta(hours=-7))
        result = ensure_utc(datetime(2026, 10, 1, 5, 0, 0, tzinfo=pacific))

        assert result.tzinfo == timezone.utc
        assert result.hour == 12
