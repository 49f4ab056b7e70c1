"""
Window validator: checks a proposed window against the windows already
stored for its track.

``validate()`` never raises for business violations. Every check runs
independently and all violations are returned together, so a coordinator
sees the complete list in one round trip:

    1. date sanity          INVALID_DATE_RANGE, START_NOT_IN_FUTURE
    2. overlap              WINDOW_OVERLAP (any phase kind on the track)
    3. tuple uniqueness     DUPLICATE_OPEN_WINDOW
    4. precedence           PREREQUISITE_NOT_CREATED, PREREQUISITE_NOT_ENDED,
                            SUCCESSOR_STARTS_TOO_EARLY
    5. IDP first mover      IDP_PROPOSAL_PRECEDENCE

Callers (``window_service``) treat any non-empty result as fatal to the
write. Functions here are pure: the caller supplies ``now`` and the rows.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

from phasegate.core.clock import ensure_utc
from phasegate.models.window import PRIVILEGED_PROPOSAL_TRACK
from phasegate.services import sequence_model
from phasegate.services.window_status import classify, is_active, is_open_or_upcoming

# ── Violation codes ──────────────────────────────────────────────────────────

INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
START_NOT_IN_FUTURE = "START_NOT_IN_FUTURE"
WINDOW_OVERLAP = "WINDOW_OVERLAP"
DUPLICATE_OPEN_WINDOW = "DUPLICATE_OPEN_WINDOW"
PREREQUISITE_NOT_CREATED = "PREREQUISITE_NOT_CREATED"
PREREQUISITE_NOT_ENDED = "PREREQUISITE_NOT_ENDED"
SUCCESSOR_STARTS_TOO_EARLY = "SUCCESSOR_STARTS_TOO_EARLY"
IDP_PROPOSAL_PRECEDENCE = "IDP_PROPOSAL_PRECEDENCE"
CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"


@dataclass(frozen=True)
class ProposedWindow:
    """A window as submitted for create/update, before it is persisted."""

    phase_kind: str
    track: str
    cycle: str | None
    start: datetime
    end: datetime
    enforced: bool = True

    @property
    def step(self) -> sequence_model.Step:
        return sequence_model.Step(self.phase_kind, self.cycle)

    @property
    def label(self) -> str:
        return self.step.label


@dataclass(frozen=True)
class Violation:
    """One failed rule, with enough context to render a message."""

    code: str
    message: str
    phase_kind: str | None = None
    cycle: str | None = None
    track: str | None = None
    related_window_id: int | None = None
    related_start: str | None = None
    related_end: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _fmt(value: datetime) -> str:
    return ensure_utc(value).isoformat()


def _related(code, message, window) -> Violation:
    return Violation(
        code=code,
        message=message,
        phase_kind=window.phase_kind,
        cycle=window.cycle,
        track=window.track,
        related_window_id=window.id,
        related_start=_fmt(window.start),
        related_end=_fmt(window.end),
    )


def _matches(window, step: sequence_model.Step) -> bool:
    return window.phase_kind == step.phase_kind and window.cycle == step.cycle


# ── Individual checks ────────────────────────────────────────────────────────


def check_dates(proposed: ProposedWindow, now: datetime, require_future_start: bool) -> list[Violation]:
    violations = []
    if ensure_utc(proposed.end) <= ensure_utc(proposed.start):
        violations.append(Violation(
            code=INVALID_DATE_RANGE,
            message="End date must be after start date",
            phase_kind=proposed.phase_kind, cycle=proposed.cycle, track=proposed.track,
        ))
    if require_future_start and ensure_utc(proposed.start) <= ensure_utc(now):
        violations.append(Violation(
            code=START_NOT_IN_FUTURE,
            message="Start date must be in the future",
            phase_kind=proposed.phase_kind, cycle=proposed.cycle, track=proposed.track,
        ))
    return violations


def check_overlap(proposed: ProposedWindow, others: list) -> list[Violation]:
    """Half-open interval overlap against every window of the track."""
    start, end = ensure_utc(proposed.start), ensure_utc(proposed.end)
    violations = []
    for w in others:
        if start < w.end and end > w.start:
            violations.append(_related(
                WINDOW_OVERLAP,
                f"Overlaps with existing {w.label} window ({_fmt(w.start)} - {_fmt(w.end)})",
                w,
            ))
    return violations


def check_tuple_unique(proposed: ProposedWindow, others: list, now: datetime) -> list[Violation]:
    violations = []
    for w in others:
        if _matches(w, proposed.step) and is_open_or_upcoming(w, now):
            status = classify(w, now)
            violations.append(_related(
                DUPLICATE_OPEN_WINDOW,
                f"An {status} {w.label} window already exists for {proposed.track}",
                w,
            ))
    return violations


def check_precedence(proposed: ProposedWindow, others: list, now: datetime) -> list[Violation]:
    """Prerequisites must exist and have ended before the proposed start.

    When a prerequisite tuple has several windows (earlier intakes), the one
    ending last is authoritative.
    """
    start, end = ensure_utc(proposed.start), ensure_utc(proposed.end)
    violations = []
    for step in sequence_model.prerequisites(proposed.phase_kind, proposed.track, proposed.cycle):
        candidates = [w for w in others if _matches(w, step)]
        if not candidates:
            violations.append(Violation(
                code=PREREQUISITE_NOT_CREATED,
                message=f"{step.label} window must be created first",
                phase_kind=step.phase_kind, cycle=step.cycle, track=proposed.track,
            ))
            continue
        latest = max(candidates, key=lambda w: w.end)
        if not start > latest.end:
            violations.append(_related(
                PREREQUISITE_NOT_ENDED,
                f"Must start after {step.label} window ends ({_fmt(latest.end)})",
                latest,
            ))

    # Successors still to come must keep starting after this window ends.
    for step in sequence_model.successors(proposed.step):
        for w in others:
            if _matches(w, step) and is_open_or_upcoming(w, now) and not w.start > end:
                violations.append(_related(
                    SUCCESSOR_STARTS_TOO_EARLY,
                    f"Must end before the {w.label} window starts ({_fmt(w.start)})",
                    w,
                ))
    return violations


def check_idp_first_mover(proposed: ProposedWindow, idp_proposals: list, now: datetime) -> list[Violation]:
    """Non-IDP proposals wait for a currently active IDP proposal to end."""
    if proposed.phase_kind != "proposal" or proposed.track == PRIVILEGED_PROPOSAL_TRACK:
        return []
    start = ensure_utc(proposed.start)
    violations = []
    for w in idp_proposals:
        if w.phase_kind == "proposal" and is_active(w, now) and not start > w.end:
            violations.append(_related(
                IDP_PROPOSAL_PRECEDENCE,
                f"{proposed.track} proposal must start after IDP proposal ends ({_fmt(w.end)})",
                w,
            ))
    return violations


# ── Entry point ──────────────────────────────────────────────────────────────


def validate(
    proposed: ProposedWindow,
    existing: list,
    editing_window_id: int | None = None,
    *,
    now: datetime,
    require_future_start: bool = False,
    idp_proposals: list | tuple = (),
) -> list[Violation]:
    """Return every violation of ``proposed`` against ``existing``.

    Args:
        proposed: Candidate window (already normalised).
        existing: Stored windows of ``proposed.track``. Windows of other
            tracks are ignored.
        editing_window_id: Id of the window being edited; excluded from
            overlap, uniqueness and precedence scans.
        now: Instant used for every status decision.
        require_future_start: Policy flag for the future-start rule.
        idp_proposals: IDP proposal windows, consulted for non-IDP proposals.

    Returns:
        List of Violation, empty when the window may be written.
    """
    others = [
        w for w in existing
        if w.track == proposed.track and (editing_window_id is None or w.id != editing_window_id)
    ]
    idp = [w for w in idp_proposals if editing_window_id is None or w.id != editing_window_id]

    violations: list[Violation] = []
    violations += check_dates(proposed, now, require_future_start)
    violations += check_overlap(proposed, others)
    violations += check_tuple_unique(proposed, others, now)
    violations += check_precedence(proposed, others, now)
    violations += check_idp_first_mover(proposed, idp, now)
    return violations
