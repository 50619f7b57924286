"""
Exchange timestamp conversion helpers.

Tick payloads carry exchange time as unsigned 32-bit epoch seconds, with
zero meaning the field is not populated. Exchange timestamps are always
authoritative; wall-clock time is never substituted for a missing value.
"""

from datetime import datetime, timezone
from typing import Optional


def from_exchange_timestamp(seconds: int) -> Optional[datetime]:
    """
    Convert epoch seconds from a payload to a UTC datetime.

    Args:
        seconds: Epoch seconds as read from the payload

    Returns:
        UTC datetime, or None when the field is unset (zero)
    """
    if not seconds:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def to_exchange_timestamp(ts: Optional[datetime]) -> int:
    """
    Convert a datetime back to payload epoch seconds.

    Naive datetimes are taken to be UTC. None encodes as zero.
    """
    if ts is None:
        return 0
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp())


def format_market_time(market_ts: Optional[datetime]) -> Optional[str]:
    """Format an exchange timestamp for logging."""
    return market_ts.isoformat() if market_ts is not None else None
