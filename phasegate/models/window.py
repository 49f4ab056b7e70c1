"""
Phase Window Engine
Window models.

Models:
    - PhaseWindow: a time interval during which a phase/track/cycle is open
    - WindowTrackLock: one row per track, locked FOR UPDATE while windows
      of that track are validated and written
"""

from datetime import datetime, timezone

from phasegate.core.clock import ensure_utc
from phasegate.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PHASE_KINDS = ("proposal", "application", "submission", "assessment", "grade_release")
TRACKS = ("IDP", "UROP", "CAPSTONE")
CYCLES = ("CLA-1", "CLA-2", "CLA-3", "External")

# Phases scoped to an assessment cycle
CYCLE_PHASES = frozenset({"submission", "assessment"})

# Track that may open its proposal phase ahead of the others
PRIVILEGED_PROPOSAL_TRACK = "IDP"


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    value = ensure_utc(value)
    return value.isoformat() if value else None


class PhaseWindow(db.Model):
    """
    Time window for one (phase_kind, track, cycle) combination.

    Status (upcoming / active / ended) is never stored; it is derived from
    the clock by ``phasegate.services.window_status.classify``.
    """

    __tablename__ = "phase_windows"
    __table_args__ = (
        db.CheckConstraint("start_at < end_at", name="ck_phase_windows_start_before_end"),
        db.Index("ix_phase_windows_lookup", "phase_kind", "track", "cycle"),
        db.Index("ix_phase_windows_track_range", "track", "start_at", "end_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    phase_kind = db.Column(db.String(20), nullable=False,
                           comment="proposal, application, submission, assessment, grade_release")
    track = db.Column(db.String(20), nullable=False,
                      comment="IDP, UROP, CAPSTONE")
    cycle = db.Column(db.String(20), nullable=True,
                      comment="CLA-1, CLA-2, CLA-3, External (submission/assessment only)")
    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    end_at = db.Column(db.DateTime(timezone=True), nullable=False)
    enforced = db.Column(db.Boolean, nullable=False, default=True,
                         comment="False keeps the window for display only")
    created_by = db.Column(db.String(150), nullable=True,
                           comment="Principal that created the window")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def start(self):
        return ensure_utc(self.start_at)

    @property
    def end(self):
        return ensure_utc(self.end_at)

    @property
    def label(self):
        """Display name, e.g. ``submission (CLA-2)``."""
        if self.cycle:
            return f"{self.phase_kind} ({self.cycle})"
        return self.phase_kind

    def to_dict(self, now=None):
        data = {
            "id": self.id,
            "phase_kind": self.phase_kind,
            "track": self.track,
            "cycle": self.cycle,
            "start_at": _iso(self.start_at),
            "end_at": _iso(self.end_at),
            "enforced": self.enforced,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if now is not None:
            from phasegate.services.window_status import classify

            status = classify(self, now)
            data["status"] = status
            data["is_active"] = status == "active"
        return data

    def __repr__(self):
        return f"<PhaseWindow {self.id} {self.track}:{self.label}>"


class WindowTrackLock(db.Model):
    """
    Serialization point for window writes on a track.

    Create/update transactions lock the track's row before reading the
    track's windows, so two writers cannot both validate against the same
    snapshot and commit conflicting intervals.
    """

    __tablename__ = "phase_window_track_locks"

    track = db.Column(db.String(20), primary_key=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<WindowTrackLock {self.track}>"
