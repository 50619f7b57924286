"""Tests for exchange timestamp conversion."""

from datetime import datetime, timedelta, timezone

from kiteticker.utils.time import format_market_time, from_exchange_timestamp, to_exchange_timestamp

OPEN_BELL = datetime(2024, 3, 1, 9, 15, 30, tzinfo=timezone.utc)
OPEN_BELL_SECONDS = 1709284530


class TestExchangeTime:
    """Epoch second conversions."""

    def test_zero_is_unset(self):
        assert from_exchange_timestamp(0) is None
        assert to_exchange_timestamp(None) == 0

    def test_from_seconds(self):
        ts = from_exchange_timestamp(OPEN_BELL_SECONDS)
        assert ts == OPEN_BELL
        assert ts.tzinfo is timezone.utc

    def test_to_seconds(self):
        assert to_exchange_timestamp(OPEN_BELL) == OPEN_BELL_SECONDS

    def test_naive_is_utc(self):
        assert to_exchange_timestamp(OPEN_BELL.replace(tzinfo=None)) == OPEN_BELL_SECONDS

    def test_other_timezone(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        assert to_exchange_timestamp(OPEN_BELL.astimezone(ist)) == OPEN_BELL_SECONDS

    def test_format(self):
        assert format_market_time(OPEN_BELL) == "2024-03-01T09:15:30+00:00"
        assert format_market_time(None) is None
