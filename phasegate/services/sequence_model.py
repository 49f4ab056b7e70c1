"""
Sequence model: the ordered phase/cycle graph shared by every track.

    proposal → application
      → submission(CLA-1)    → assessment(CLA-1)
      → submission(CLA-2)    → assessment(CLA-2)
      → submission(CLA-3)    → assessment(CLA-3)
      → submission(External) → assessment(External)
      → grade_release

The graph is stored as direct edges. grade_release fans in from all four
assessment steps rather than hanging off the last one, so adding a cycle
only means extending CYCLES. Prerequisites are the transitive closure of
the direct edges, ordered by ``order_index``.

This module is the single authority for ordering. The
``/api/v1/windows/sequence`` endpoint exposes it to clients, whose copies
are display hints only.

Everything here is pure and import-safe (no app context needed).
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from phasegate.core.exceptions import ValidationError
from phasegate.models.window import CYCLE_PHASES, CYCLES, PHASE_KINDS, TRACKS


@dataclass(frozen=True)
class Step:
    """One node of the sequence: a phase kind plus its cycle, if any."""

    phase_kind: str
    cycle: str | None = None

    @property
    def label(self) -> str:
        return f"{self.phase_kind} ({self.cycle})" if self.cycle else self.phase_kind

    def to_dict(self) -> dict:
        return {
            "phase_kind": self.phase_kind,
            "cycle": self.cycle,
            "label": self.label,
            "order_index": order_index(self.phase_kind, self.cycle),
        }


# ── Input normalisation ──────────────────────────────────────────────────────

_CYCLE_LOOKUP = {c.lower(): c for c in CYCLES}


def normalize_track(track) -> str:
    """Return the canonical track name or raise ValidationError."""
    value = str(track or "").strip().upper()
    if not value:
        raise ValidationError("track is required", details={"track": "required"})
    if value not in TRACKS:
        raise ValidationError(
            f"track must be one of {list(TRACKS)}",
            details={"track": f"invalid value {track!r}"},
        )
    return value


def normalize_phase_kind(phase_kind) -> str:
    value = str(phase_kind or "").strip().lower()
    if not value:
        raise ValidationError("phase_kind is required", details={"phase_kind": "required"})
    if value not in PHASE_KINDS:
        raise ValidationError(
            f"phase_kind must be one of {list(PHASE_KINDS)}",
            details={"phase_kind": f"invalid value {phase_kind!r}"},
        )
    return value


def canonical_cycle(cycle) -> str | None:
    """Canonical cycle name regardless of phase; None for empty input."""
    raw = str(cycle).strip() if cycle is not None else ""
    if not raw:
        return None
    value = _CYCLE_LOOKUP.get(raw.lower())
    if value is None:
        raise ValidationError(
            f"cycle must be one of {list(CYCLES)}",
            details={"cycle": f"invalid value {cycle!r}"},
        )
    return value


def normalize_cycle(phase_kind: str, cycle) -> str | None:
    """Validate ``cycle`` for ``phase_kind``.

    Submission and assessment require a cycle; every other phase must not
    carry one.
    """
    value = canonical_cycle(cycle)
    if phase_kind not in CYCLE_PHASES:
        if value is not None:
            raise ValidationError(
                f"cycle is not allowed for {phase_kind} windows",
                details={"cycle": "not allowed"},
            )
        return None
    if value is None:
        raise ValidationError(
            f"cycle is required for {phase_kind} windows",
            details={"cycle": "required"},
        )
    return value


def step_for(phase_kind, cycle=None) -> Step:
    kind = normalize_phase_kind(phase_kind)
    return Step(kind, normalize_cycle(kind, cycle))


# ── Graph ────────────────────────────────────────────────────────────────────


def _build_steps() -> tuple[Step, ...]:
    steps = [Step("proposal"), Step("application")]
    for cycle in CYCLES:
        steps.append(Step("submission", cycle))
        steps.append(Step("assessment", cycle))
    steps.append(Step("grade_release"))
    return tuple(steps)


def _build_edges(steps: tuple[Step, ...]) -> dict[Step, tuple[Step, ...]]:
    """Direct predecessor edges (step → steps it waits on)."""
    edges: dict[Step, tuple[Step, ...]] = {
        Step("proposal"): (),
        Step("application"): (Step("proposal"),),
    }
    previous = Step("application")
    for cycle in CYCLES:
        submission = Step("submission", cycle)
        assessment = Step("assessment", cycle)
        edges[submission] = (previous,)
        edges[assessment] = (submission,)
        previous = assessment
    # Fan-in: grade release waits on every assessment cycle.
    edges[Step("grade_release")] = tuple(Step("assessment", c) for c in CYCLES)
    assert set(edges) == set(steps)
    return edges


_STEPS = _build_steps()
_ORDER = {step: idx for idx, step in enumerate(_STEPS)}
_EDGES = _build_edges(_STEPS)


def all_steps() -> tuple[Step, ...]:
    return _STEPS


def order_index(phase_kind, cycle=None) -> int:
    """Total-order key of a step (0 = proposal)."""
    return _ORDER[step_for(phase_kind, cycle)]


def direct_predecessors(step: Step) -> tuple[Step, ...]:
    return _EDGES[step]


@lru_cache(maxsize=None)
def _closure(step: Step) -> tuple[Step, ...]:
    seen: set[Step] = set()
    stack = list(_EDGES[step])
    while stack:
        node = stack.pop()
        if node in seen:
            continue
        seen.add(node)
        stack.extend(_EDGES[node])
    return tuple(sorted(seen, key=_ORDER.__getitem__))


def prerequisites(phase_kind, track, cycle=None) -> list[Step]:
    """Every step that must precede ``(phase_kind, cycle)`` on ``track``.

    The graph is identical for all tracks; ``track`` is validated so a bad
    value fails here rather than silently matching nothing.
    """
    normalize_track(track)
    return list(_closure(step_for(phase_kind, cycle)))


def successors(step: Step) -> list[Step]:
    """Steps that list ``step`` among their prerequisites."""
    return [s for s in _STEPS if step in _closure(s)]


def describe() -> list[dict]:
    """Serializable view of the sequence for clients."""
    out = []
    for step in _STEPS:
        entry = step.to_dict()
        entry["depends_on"] = [p.to_dict() for p in _EDGES[step]]
        entry["prerequisites"] = [p.label for p in _closure(step)]
        out.append(entry)
    return out
