"""
Window service layer.

Business flow for window management:

    create/update   normalise input → lock track → load track windows
                    → validate → write → commit
    delete          lookup → delete → commit
    purge           delete every ended window (optionally per track)

Rules:
  - db.session.commit() happens only here (through window_store.commit).
  - Any validator violation blocks the write; the full list travels on
    the raised ValidationError.
  - phase_kind, track and cycle are immutable after creation.
  - An IntegrityError at flush/commit means another writer won the race
    (or the DB constraint caught it); it is reported as a violation.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from phasegate.core.clock import utcnow
from phasegate.core.exceptions import ValidationError
from phasegate.models import db
from phasegate.models.window import PRIVILEGED_PROPOSAL_TRACK, PhaseWindow
from phasegate.services import sequence_model, window_store
from phasegate.services.window_status import ACTIVE, STATUSES, UPCOMING, classify
from phasegate.services.window_validator import (
    CONCURRENT_MODIFICATION,
    ProposedWindow,
    Violation,
    validate,
)
from phasegate.utils.helpers import parse_bool, parse_datetime

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = ("phase_kind", "track", "cycle")


def _identity_value(field: str, value):
    """Canonical form of an identity field sent on update, for comparison."""
    if field == "track":
        return sequence_model.normalize_track(value)
    if field == "phase_kind":
        return sequence_model.normalize_phase_kind(value)
    return sequence_model.canonical_cycle(value)


def _require_future_start() -> bool:
    return bool(current_app.config.get("WINDOW_REQUIRE_FUTURE_START", True))


def _parse_instant(data: dict, field: str, default=None):
    if field not in data or data.get(field) in (None, ""):
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", details={field: "required"})
    try:
        return parse_datetime(data[field])
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: "invalid"}) from exc


def _parse_enforced(data: dict, default: bool) -> bool:
    try:
        return parse_bool(data.get("enforced"), default=default)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"enforced": "invalid"}) from exc


def build_proposed(data: dict) -> ProposedWindow:
    """Normalise a create payload into a ProposedWindow.

    Raises:
        ValidationError: missing/invalid phase_kind, track, cycle or dates.
    """
    phase_kind = sequence_model.normalize_phase_kind(data.get("phase_kind"))
    track = sequence_model.normalize_track(data.get("track"))
    cycle = sequence_model.normalize_cycle(phase_kind, data.get("cycle"))
    return ProposedWindow(
        phase_kind=phase_kind,
        track=track,
        cycle=cycle,
        start=_parse_instant(data, "start_at"),
        end=_parse_instant(data, "end_at"),
        enforced=_parse_enforced(data, True),
    )


def _collect_violations(proposed: ProposedWindow, editing_window_id=None, *, future_start: bool):
    now = utcnow()
    existing = window_store.windows_for_track(proposed.track)
    idp_proposals = []
    if proposed.phase_kind == "proposal" and proposed.track != PRIVILEGED_PROPOSAL_TRACK:
        idp_proposals = window_store.find_for_tuple("proposal", PRIVILEGED_PROPOSAL_TRACK)
    return validate(
        proposed,
        existing,
        editing_window_id,
        now=now,
        require_future_start=future_start,
        idp_proposals=idp_proposals,
    )


def _reject(proposed: ProposedWindow, violations: list[Violation], action: str):
    db.session.rollback()
    logger.info(
        "Window %s rejected track=%s phase=%s violations=%s",
        action, proposed.track, proposed.label, [v.code for v in violations],
        extra={"track": proposed.track, "phase_kind": proposed.phase_kind},
    )
    raise ValidationError(
        f"Window {action} rejected: {len(violations)} violation(s)",
        violations=violations,
    )


def _concurrent_conflict(proposed: ProposedWindow, exc: IntegrityError, action: str):
    db.session.rollback()
    logger.warning("Window %s hit a store constraint track=%s phase=%s: %s",
                   action, proposed.track, proposed.label, exc.orig)
    raise ValidationError(
        f"Window {action} rejected by the store",
        violations=[Violation(
            code=CONCURRENT_MODIFICATION,
            message="Another window was written for this track at the same time; reload and retry",
            phase_kind=proposed.phase_kind,
            cycle=proposed.cycle,
            track=proposed.track,
        )],
    ) from exc


# ── Validation (dry run) ─────────────────────────────────────────────────────


def check_window(data: dict, editing_window_id: int | None = None) -> list[Violation]:
    """Run the validator without writing anything.

    When ``editing_window_id`` is given the stored window supplies the
    identity fields and any dates missing from ``data``.
    """
    if editing_window_id is not None:
        window = window_store.get_window(editing_window_id)
        proposed = ProposedWindow(
            phase_kind=window.phase_kind,
            track=window.track,
            cycle=window.cycle,
            start=_parse_instant(data, "start_at", window.start),
            end=_parse_instant(data, "end_at", window.end),
            enforced=_parse_enforced(data, window.enforced),
        )
        future_start = _require_future_start() and proposed.start != window.start
    else:
        proposed = build_proposed(data)
        future_start = _require_future_start()
    return _collect_violations(proposed, editing_window_id, future_start=future_start)


# ── Create / update / delete ─────────────────────────────────────────────────


def create_window(data: dict, created_by: str | None = None) -> PhaseWindow:
    """Validate and persist a new window.

    Raises:
        ValidationError: malformed input, or any rule violation (carries
            the complete violation list).
        StorageError: the store failed unexpectedly.
    """
    proposed = build_proposed(data)

    try:
        window_store.lock_track(proposed.track)
        violations = _collect_violations(proposed, future_start=_require_future_start())
        if violations:
            _reject(proposed, violations, "create")

        window = PhaseWindow(
            phase_kind=proposed.phase_kind,
            track=proposed.track,
            cycle=proposed.cycle,
            start_at=proposed.start,
            end_at=proposed.end,
            enforced=proposed.enforced,
            created_by=created_by,
        )
        window_store.add(window)
        window_store.commit()
    except IntegrityError as exc:
        _concurrent_conflict(proposed, exc, "create")

    logger.info(
        "Window created id=%s track=%s phase=%s start=%s end=%s enforced=%s",
        window.id, window.track, window.label,
        proposed.start.isoformat(), proposed.end.isoformat(), window.enforced,
        extra={"track": window.track, "phase_kind": window.phase_kind},
    )
    return window


def update_window(window_id: int, data: dict) -> PhaseWindow:
    """Shift a window's dates and/or toggle ``enforced``.

    Dates are re-validated only when they change. The future-start policy
    applies only when ``start_at`` moves, so an active window can still have
    its end extended.

    Raises:
        NotFoundError: unknown window id.
        ValidationError: identity change attempted, malformed input, or
            rule violations.
    """
    window = window_store.get_window(window_id)

    changed_identity = [
        f for f in IMMUTABLE_FIELDS
        if f in data and _identity_value(f, data.get(f)) != getattr(window, f)
    ]
    if changed_identity:
        raise ValidationError(
            "phase_kind, track and cycle cannot be changed; delete and recreate the window",
            details={f: "immutable" for f in changed_identity},
        )

    proposed = ProposedWindow(
        phase_kind=window.phase_kind,
        track=window.track,
        cycle=window.cycle,
        start=_parse_instant(data, "start_at", window.start),
        end=_parse_instant(data, "end_at", window.end),
        enforced=_parse_enforced(data, window.enforced),
    )
    dates_changed = proposed.start != window.start or proposed.end != window.end

    try:
        if dates_changed:
            window_store.lock_track(window.track)
            future_start = _require_future_start() and proposed.start != window.start
            violations = _collect_violations(proposed, window.id, future_start=future_start)
            if violations:
                _reject(proposed, violations, "update")
            window.start_at = proposed.start
            window.end_at = proposed.end
        window.enforced = proposed.enforced
        window_store.commit()
    except IntegrityError as exc:
        _concurrent_conflict(proposed, exc, "update")

    logger.info(
        "Window updated id=%s track=%s phase=%s dates_changed=%s enforced=%s",
        window.id, window.track, window.label, dates_changed, window.enforced,
        extra={"track": window.track, "phase_kind": window.phase_kind},
    )
    return window


def delete_window(window_id: int) -> None:
    window = window_store.get_window(window_id)
    track, label = window.track, window.label
    window_store.remove(window)
    window_store.commit()
    logger.info("Window deleted id=%s track=%s phase=%s", window_id, track, label)


def delete_windows(window_ids: list[int]) -> int:
    deleted = window_store.remove_many(window_ids)
    window_store.commit()
    logger.info("Windows bulk-deleted requested=%d deleted=%d", len(window_ids), deleted)
    return deleted


def purge_ended_windows(track: str | None = None) -> int:
    """Delete every window that has ended (optionally only for ``track``)."""
    if track:
        track = sequence_model.normalize_track(track)
    deleted = window_store.remove_ended(utcnow(), track)
    window_store.commit()
    logger.info("Ended windows purged track=%s deleted=%d", track or "*", deleted)
    return deleted


# ── Queries ──────────────────────────────────────────────────────────────────


def get_window(window_id: int) -> PhaseWindow:
    return window_store.get_window(window_id)


def list_windows(filters: dict) -> list[PhaseWindow]:
    """List windows filtered by track, phase_kind, cycle, status and range.

    ``is_active=true`` is shorthand for ``status=active``;
    ``is_active=false`` returns everything not currently active.
    """
    track = sequence_model.normalize_track(filters["track"]) if filters.get("track") else None
    phase_kind = (
        sequence_model.normalize_phase_kind(filters["phase_kind"])
        if filters.get("phase_kind") else None
    )
    cycle = sequence_model.canonical_cycle(filters.get("cycle"))

    status = (filters.get("status") or "").strip().lower() or None
    if status and status not in STATUSES:
        raise ValidationError(f"status must be one of {list(STATUSES)}", details={"status": "invalid"})
    try:
        is_active = parse_bool(filters.get("is_active"))
    except ValueError as exc:
        raise ValidationError(str(exc), details={"is_active": "invalid"}) from exc
    if is_active is True:
        status = ACTIVE

    range_start = _parse_instant(filters, "from") if filters.get("from") else None
    range_end = _parse_instant(filters, "to") if filters.get("to") else None

    now = utcnow()
    windows = window_store.list_windows(
        track=track,
        phase_kind=phase_kind,
        cycle=cycle,
        status=status,
        now=now,
        range_start=range_start,
        range_end=range_end,
    )
    if is_active is False:
        windows = [w for w in windows if classify(w, now) != ACTIVE]
    return windows


def get_active_window(phase_kind, track, cycle=None) -> PhaseWindow | None:
    phase_kind = sequence_model.normalize_phase_kind(phase_kind)
    track = sequence_model.normalize_track(track)
    if cycle:
        cycle = sequence_model.normalize_cycle(phase_kind, cycle)
    now = utcnow()
    for window in window_store.find_for_tuple(phase_kind, track, cycle):
        if classify(window, now) == ACTIVE:
            return window
    return None


def get_upcoming_windows(track=None, limit=None) -> list[PhaseWindow]:
    if track:
        track = sequence_model.normalize_track(track)
    if limit is None:
        limit = current_app.config.get("WINDOW_UPCOMING_DEFAULT_LIMIT", 5)
    return window_store.list_windows(track=track, status=UPCOMING, now=utcnow(), limit=limit)
