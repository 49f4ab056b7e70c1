"""
Injectable wall clock.

Every "now" used by the window engine goes through ``utcnow()``. The app
config key ``CLOCK`` may hold a zero-argument callable returning a datetime;
tests use it to pin time. Outside an app context the system clock is used.
"""

from datetime import datetime, timezone

from flask import current_app, has_app_context


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns; those are stored as UTC, so naive means UTC here.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Current instant from the configured clock, always aware UTC."""
    clock = None
    if has_app_context():
        clock = current_app.config.get("CLOCK")
    return ensure_utc((clock or system_clock)())
