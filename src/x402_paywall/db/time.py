# src/x402_paywall/db/time.py
"""Time helpers for ledger timestamps.

All timestamps are UTC. SQLite drops tzinfo on the way back out, so values
read from the database are normalized with ``as_utc`` before they are serialized.
"""

from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def utc_after(seconds: float, *, start: datetime | None = None) -> datetime:
    """Return the UTC instant ``seconds`` after ``start`` (default: now)."""
    return (start or utcnow()) + timedelta(seconds=seconds)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
