"""
Window store: keyed CRUD and range queries over ``phase_windows``.

All reads and writes of window rows go through this module. SQLAlchemy
failures are logged here with full detail and re-raised as
``StorageError`` so callers never see driver internals.

Commit/rollback is left to ``window_service``, which owns the transaction.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from phasegate.core.exceptions import NotFoundError, StorageError
from phasegate.models import db
from phasegate.models.window import PhaseWindow, WindowTrackLock
from phasegate.services.window_status import ACTIVE, ENDED, UPCOMING

logger = logging.getLogger(__name__)


def _storage_guard(operation: str):
    """Translate unexpected SQLAlchemy errors into StorageError.

    IntegrityError passes through untouched; the service maps it to a
    validation result.
    """
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except IntegrityError:
                raise
            except SQLAlchemyError as exc:
                logger.exception("Window store failure during %s", operation)
                db.session.rollback()
                raise StorageError(operation) from exc
        return wrapper
    return decorator


def _status_clause(status: str, now: datetime):
    if status == ACTIVE:
        return and_(PhaseWindow.start_at <= now, PhaseWindow.end_at >= now)
    if status == UPCOMING:
        return PhaseWindow.start_at > now
    if status == ENDED:
        return PhaseWindow.end_at < now
    raise ValueError(f"unknown status {status!r}")


# ── Reads ────────────────────────────────────────────────────────────────────


@_storage_guard("get")
def get_window(window_id: int) -> PhaseWindow:
    window = db.session.get(PhaseWindow, window_id)
    if window is None:
        raise NotFoundError(resource="Window", resource_id=window_id)
    return window


@_storage_guard("list")
def list_windows(
    *,
    track: str | None = None,
    phase_kind: str | None = None,
    cycle: str | None = None,
    status: str | None = None,
    now: datetime | None = None,
    range_start: datetime | None = None,
    range_end: datetime | None = None,
    limit: int | None = None,
    newest_first: bool = False,
) -> list[PhaseWindow]:
    """Filtered window listing.

    ``status`` requires ``now``. ``range_start``/``range_end`` select
    windows intersecting that interval (either bound may be omitted).
    """
    stmt = select(PhaseWindow)
    if track:
        stmt = stmt.where(PhaseWindow.track == track)
    if phase_kind:
        stmt = stmt.where(PhaseWindow.phase_kind == phase_kind)
    if cycle:
        stmt = stmt.where(PhaseWindow.cycle == cycle)
    if status:
        stmt = stmt.where(_status_clause(status, now))
    if range_end is not None:
        stmt = stmt.where(PhaseWindow.start_at < range_end)
    if range_start is not None:
        stmt = stmt.where(PhaseWindow.end_at > range_start)

    if newest_first:
        stmt = stmt.order_by(PhaseWindow.start_at.desc(), PhaseWindow.id.desc())
    else:
        stmt = stmt.order_by(PhaseWindow.start_at, PhaseWindow.id)
    if limit:
        stmt = stmt.limit(limit)
    return list(db.session.execute(stmt).scalars())


def windows_for_track(track: str) -> list[PhaseWindow]:
    return list_windows(track=track)


@_storage_guard("lookup")
def find_for_tuple(phase_kind: str, track: str, cycle: str | None = None) -> list[PhaseWindow]:
    """Windows for a (phase_kind, track[, cycle]) key; served by ix_phase_windows_lookup.

    ``cycle=None`` matches every cycle of the phase.
    """
    stmt = select(PhaseWindow).where(
        PhaseWindow.phase_kind == phase_kind,
        PhaseWindow.track == track,
    )
    if cycle is not None:
        stmt = stmt.where(PhaseWindow.cycle == cycle)
    stmt = stmt.order_by(PhaseWindow.start_at, PhaseWindow.id)
    return list(db.session.execute(stmt).scalars())


# ── Writes ───────────────────────────────────────────────────────────────────


@_storage_guard("lock")
def lock_track(track: str) -> WindowTrackLock:
    """Take the per-track write lock for the current transaction.

    On PostgreSQL this is a row lock (SELECT ... FOR UPDATE) held until
    commit/rollback. SQLite serialises writers itself.
    """
    lock = db.session.execute(
        select(WindowTrackLock).where(WindowTrackLock.track == track).with_for_update()
    ).scalar_one_or_none()
    if lock is None:
        lock = WindowTrackLock(track=track)
        db.session.add(lock)
        db.session.flush()
    return lock


@_storage_guard("add")
def add(window: PhaseWindow) -> PhaseWindow:
    db.session.add(window)
    db.session.flush()
    return window


@_storage_guard("delete")
def remove(window: PhaseWindow) -> None:
    db.session.delete(window)
    db.session.flush()


@_storage_guard("bulk delete")
def remove_many(window_ids: list[int]) -> int:
    if not window_ids:
        return 0
    result = db.session.execute(
        delete(PhaseWindow).where(PhaseWindow.id.in_(window_ids))
    )
    return result.rowcount or 0


@_storage_guard("purge")
def remove_ended(now: datetime, track: str | None = None) -> int:
    stmt = delete(PhaseWindow).where(PhaseWindow.end_at < now)
    if track:
        stmt = stmt.where(PhaseWindow.track == track)
    # naive (SQLite) vs aware datetimes cannot be evaluated in Python
    result = db.session.execute(stmt, execution_options={"synchronize_session": "fetch"})
    return result.rowcount or 0


@_storage_guard("commit")
def commit() -> None:
    db.session.commit()
