"""
UTC time-bucket helpers.

All stored timestamps are fixed-width UTC strings so that window and
retention predicates are plain lexicographic comparisons in SQL:

  • raw event : 2026-02-22T14:35:07.123Z
  • hour key  : 2026-02-22T14:00:00Z
  • day key   : 2026-02-22
"""

import datetime

UTC = datetime.timezone.utc


def utcnow() -> datetime.datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.datetime.now(UTC)


def as_utc(ts: datetime.datetime) -> datetime.datetime:
    """Normalise to aware UTC. Naive datetimes are taken to already be UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def to_iso(ts: datetime.datetime) -> str:
    """Millisecond-precision ISO-8601 string with a ``Z`` suffix."""
    ts = as_utc(ts)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def hour_bucket(ts: datetime.datetime) -> str:
    """Floor a timestamp to the start of its UTC hour."""
    return as_utc(ts).strftime("%Y-%m-%dT%H:00:00Z")


def day_bucket(ts: datetime.datetime) -> str:
    """UTC calendar date of a timestamp."""
    return as_utc(ts).strftime("%Y-%m-%d")
