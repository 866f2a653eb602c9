from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


# Line Islands, the earliest time zone to start a new calendar day.
_MAX_UTC_OFFSET = timedelta(hours=14)


def now_utc_iso() -> str:
    """Return current time as a UTC ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def latest_calendar_date() -> date:
    """Latest calendar date currently in effect anywhere (UTC+14).

    Used as 'today' for future-date checks so that a caregiver ahead of the
    server's time zone is never told their measurement is in the future.
    """
    return (datetime.now(timezone.utc) + _MAX_UTC_OFFSET).date()
