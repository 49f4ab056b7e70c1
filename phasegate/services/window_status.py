"""
Window status resolver.

Pure functions classifying a window against an instant. Accepts any object
exposing ``start`` and ``end`` datetimes (``PhaseWindow`` or
``ProposedWindow``). Nothing here reads the clock or touches the window.

    upcoming   now < start
    active     start <= now <= end
    ended      now > end
"""

from __future__ import annotations

from datetime import datetime

from phasegate.core.clock import ensure_utc

UPCOMING = "upcoming"
ACTIVE = "active"
ENDED = "ended"

STATUSES = (UPCOMING, ACTIVE, ENDED)


def classify(window, now: datetime) -> str:
    now = ensure_utc(now)
    if now < ensure_utc(window.start):
        return UPCOMING
    if now > ensure_utc(window.end):
        return ENDED
    return ACTIVE


def is_active(window, now: datetime) -> bool:
    return classify(window, now) == ACTIVE


def is_open_or_upcoming(window, now: datetime) -> bool:
    """True while the window has not ended yet."""
    return classify(window, now) != ENDED


def seconds_remaining(window, now: datetime) -> int:
    """Whole seconds until the window closes; 0 unless active."""
    if classify(window, now) != ACTIVE:
        return 0
    return int((ensure_utc(window.end) - ensure_utc(now)).total_seconds())


def describe_remaining(window, now: datetime) -> str:
    """Human-readable time left, e.g. ``3 days remaining``."""
    secs = seconds_remaining(window, now)
    if secs <= 0:
        return "Closed"
    days, rest = divmod(secs, 86400)
    if days:
        return f"{days} day{'s' if days > 1 else ''} remaining"
    hours, rest = divmod(rest, 3600)
    if hours:
        return f"{hours} hour{'s' if hours > 1 else ''} remaining"
    minutes = rest // 60
    return f"{minutes} minute{'s' if minutes != 1 else ''} remaining"


def status_message(label: str, window, now: datetime) -> str:
    status = classify(window, now)
    if status == ACTIVE:
        return f"{label} window is open"
    if status == UPCOMING:
        return f"{label} window opens on {ensure_utc(window.start).date().isoformat()}"
    return f"{label} window has closed"
