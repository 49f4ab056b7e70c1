"""
Enforcement gate: decides whether an action tied to a phase may run now.

    1. track missing/invalid          → ValidationError
    2. bypass(principal) is true      → allow (bypassed)
    3. no window for the tuple        → allow (open by default)
    4. window.enforced is false       → allow
    5. window active at ``now``       → allow, otherwise AuthorizationError

The Flask decorators in ``phasegate.middleware.window_enforcement`` call
``evaluate_access`` / ``evaluate_any_access``; the functions here only need
an app context for the store and the clock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from phasegate.core.clock import ensure_utc, utcnow
from phasegate.core.exceptions import AuthorizationError, ValidationError
from phasegate.models.window import CYCLE_PHASES
from phasegate.services import sequence_model, window_store
from phasegate.services.window_status import (
    ACTIVE,
    ENDED,
    UPCOMING,
    classify,
    describe_remaining,
    seconds_remaining,
    status_message,
)

logger = logging.getLogger(__name__)

# Decision reasons
REASON_BYPASS = "bypass"
REASON_NO_WINDOW = "no_window"
REASON_NOT_ENFORCED = "not_enforced"
REASON_ACTIVE = "active"


@dataclass(frozen=True)
class WindowDecision:
    """Outcome of an allowed gate check, readable by the guarded handler.

    ``is_active`` is tri-state. True or False reports the status of the
    matched window (False only when that window is not enforced). None
    means no window was consulted: the check was bypassed or no window
    is configured for the tuple. Handlers test for an open window with
    ``is_active is True`` and for "no window" with ``matched_window is None``.
    """

    phase_kind: str
    track: str
    cycle: str | None
    is_active: bool | None
    bypassed: bool
    enforced: bool
    status: str | None
    reason: str
    checked_at: datetime
    matched_window: object | None = None

    @property
    def seconds_remaining(self) -> int:
        if self.matched_window is None:
            return 0
        return seconds_remaining(self.matched_window, self.checked_at)

    @property
    def message(self) -> str | None:
        if self.matched_window is None:
            return None
        return status_message(self.matched_window.label, self.matched_window, self.checked_at)

    def to_dict(self) -> dict:
        return {
            "phase_kind": self.phase_kind,
            "track": self.track,
            "cycle": self.cycle,
            "is_active": self.is_active,
            "bypassed": self.bypassed,
            "enforced": self.enforced,
            "status": self.status,
            "reason": self.reason,
            "matched_window": (
                self.matched_window.to_dict(now=self.checked_at)
                if self.matched_window is not None else None
            ),
            "seconds_remaining": self.seconds_remaining,
            "time_remaining": (
                describe_remaining(self.matched_window, self.checked_at)
                if self.matched_window is not None else None
            ),
            "message": self.message,
            "checked_at": self.checked_at.isoformat(),
        }


def select_window(windows: list, now: datetime):
    """Pick the window that governs ``now`` among several for one tuple.

    Active wins; otherwise the nearest upcoming; otherwise the one that
    ended most recently. Returns None for an empty list.
    """
    by_status = {ACTIVE: [], UPCOMING: [], ENDED: []}
    for w in windows:
        by_status[classify(w, now)].append(w)
    if by_status[ACTIVE]:
        return min(by_status[ACTIVE], key=lambda w: w.end)
    if by_status[UPCOMING]:
        return min(by_status[UPCOMING], key=lambda w: w.start)
    if by_status[ENDED]:
        return max(by_status[ENDED], key=lambda w: w.end)
    return None


def _gate_target(phase_kind, cycle):
    kind = sequence_model.normalize_phase_kind(phase_kind)
    if kind not in CYCLE_PHASES:
        return kind, None
    return kind, sequence_model.canonical_cycle(cycle)


def _resolve_track(track) -> str:
    if track is None or str(track).strip() == "":
        raise ValidationError(
            "Project type (track) is required for window enforcement",
            details={"track": "required"},
        )
    return sequence_model.normalize_track(track)


def _closed_error(window, now: datetime) -> AuthorizationError:
    status = classify(window, now)
    if status == UPCOMING:
        message = (
            f"The {window.label} window for {window.track} is not open yet. "
            f"It opens on {window.start.isoformat()}."
        )
    else:
        message = (
            f"The {window.label} window for {window.track} has closed. "
            f"It ended on {window.end.isoformat()}."
        )
    return AuthorizationError(message, window=window.to_dict(now=now), now=now)


def evaluate_access(
    phase_kind,
    track,
    cycle=None,
    *,
    principal=None,
    bypass=None,
    now: datetime | None = None,
) -> WindowDecision:
    """Run the gate for one ``(phase_kind[, cycle])`` target.

    Args:
        phase_kind: Phase the action belongs to.
        track: Acting track; validated before anything else.
        cycle: Cycle for submission/assessment; None matches any cycle.
        principal: Actor passed to ``bypass``.
        bypass: Optional predicate ``principal -> bool``.
        now: Instant of the check; defaults to the configured clock.

    Returns:
        WindowDecision for an allowed request.

    Raises:
        ValidationError: track (or phase/cycle) missing or invalid.
        AuthorizationError: an enforced window exists and is not active.
        StorageError: the window lookup failed.
    """
    track = _resolve_track(track)
    phase_kind, cycle = _gate_target(phase_kind, cycle)
    now = ensure_utc(now) if now is not None else utcnow()

    if bypass is not None and bypass(principal):
        logger.info(
            "Window check bypassed track=%s phase=%s cycle=%s user=%s",
            track, phase_kind, cycle, getattr(principal, "user_id", None),
            extra={"track": track, "phase_kind": phase_kind, "decision": REASON_BYPASS},
        )
        return WindowDecision(
            phase_kind=phase_kind, track=track, cycle=cycle,
            is_active=None, bypassed=True, enforced=False, status=None,
            reason=REASON_BYPASS, checked_at=now,
        )

    window = select_window(window_store.find_for_tuple(phase_kind, track, cycle), now)
    if window is None:
        return WindowDecision(
            phase_kind=phase_kind, track=track, cycle=cycle,
            is_active=None, bypassed=False, enforced=False, status=None,
            reason=REASON_NO_WINDOW, checked_at=now,
        )

    status = classify(window, now)
    decision = WindowDecision(
        phase_kind=phase_kind, track=track, cycle=window.cycle,
        is_active=status == ACTIVE, bypassed=False, enforced=bool(window.enforced),
        status=status,
        reason=REASON_ACTIVE if window.enforced else REASON_NOT_ENFORCED,
        checked_at=now, matched_window=window,
    )
    if not window.enforced or status == ACTIVE:
        return decision

    logger.warning(
        "Window closed track=%s phase=%s status=%s window_id=%s user=%s",
        track, window.label, status, window.id, getattr(principal, "user_id", None),
        extra={"track": track, "phase_kind": phase_kind, "decision": "denied"},
    )
    raise _closed_error(window, now)


def evaluate_any_access(
    targets,
    track,
    *,
    principal=None,
    bypass=None,
    now: datetime | None = None,
) -> WindowDecision:
    """OR variant: allow when any ``(phase_kind[, cycle])`` target allows.

    Targets are tried in order and the first allowing decision is returned.
    When every target denies, the first denial is raised.
    """
    if not targets:
        raise ValueError("evaluate_any_access needs at least one target")
    now = ensure_utc(now) if now is not None else utcnow()

    first_denial = None
    for target in targets:
        phase_kind, cycle = (target, None) if isinstance(target, str) else tuple(target)
        try:
            return evaluate_access(
                phase_kind, track, cycle,
                principal=principal, bypass=bypass, now=now,
            )
        except AuthorizationError as exc:
            if first_denial is None:
                first_denial = exc
    raise first_denial
