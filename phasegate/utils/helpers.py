"""Shared request-parsing helpers.

parse_datetime:  ISO-8601 instant → aware UTC datetime (raises ValueError)
parse_bool:      JSON/query flag → bool
parse_int_list:  JSON list of ids → list[int] (raises ValueError)
"""
from datetime import date, datetime, time, timezone

from phasegate.core.clock import ensure_utc

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


def parse_datetime(value):
    """Parse an ISO-8601 string (or datetime/date) to an aware UTC datetime.

    Naive input is taken as UTC. A bare date means midnight UTC.
    Accepts a trailing ``Z``. Raises ValueError on anything else, including
    offsets that push the instant outside the datetime range.
    """
    if value is None or value == "":
        raise ValueError("A date/time value is required")
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except (ValueError, OverflowError) as exc:
        raise ValueError(
            f"Invalid date/time {value!r}. Use ISO-8601, e.g. 2026-03-01T09:00:00Z."
        ) from exc


def parse_bool(value, default=None):
    """Interpret a JSON or query-string flag.

    Returns ``default`` for None/empty. Raises ValueError for anything that
    is not a recognisable boolean.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"Invalid boolean {value!r}")


def parse_int_list(values):
    if not isinstance(values, list) or not values:
        raise ValueError("ids must be a non-empty array")
    try:
        return [int(v) for v in values]
    except (TypeError, ValueError) as exc:
        raise ValueError("ids must contain integers") from exc
