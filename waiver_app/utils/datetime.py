"""UTC helpers. Stored timestamps are UTC; SQLite hands them back naive."""
from __future__ import annotations
from datetime import date, datetime, UTC
from typing import Optional

__all__ = ["utc_now", "ensure_aware_utc", "utc_date"]


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_aware_utc(dt: datetime | None) -> Optional[datetime]:
    """Attach UTC to naive values read back from the database; convert aware ones."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def utc_date(dt: datetime | date) -> date:
    """Calendar date of a timestamp in UTC; plain dates pass through."""
    if isinstance(dt, datetime):
        return ensure_aware_utc(dt).date()
    return dt
