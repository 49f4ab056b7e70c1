"""
Window enforcement decorators: gate a route on its phase window.

Usage:
    @bp.route("/proposals", methods=["POST"])
    @require_active_window("proposal", bypass=configured_bypass())
    def submit_proposal():
        decision = g.window_decision
        ...

    @bp.route("/reviews", methods=["POST"])
    @require_any_active_window([("submission", None), ("assessment", None)])
    def post_review():
        ...

Track resolution, first non-empty wins:
    1. JSON body       "track" / "project_type"
    2. path params     <track> / <project_type>
    3. query string    ?track= / ?project_type=
    4. principal       the ``track`` claim of the JWT

The cycle, when not pinned by the decorator, is resolved the same way
from the "cycle" / "assessment_type" keys (without the principal
fallback).

Responses:
    400  track missing or invalid (ERR_VALIDATION_*)
    423  window closed (WINDOW_CLOSED) with window bounds and now
    500  window lookup failed (WINDOW_CHECK_FAILED)
"""

import functools
import logging

from flask import g, request

from phasegate.auth import current_principal
from phasegate.core.exceptions import AuthorizationError, StorageError, ValidationError
from phasegate.services.enforcement import evaluate_access, evaluate_any_access
from phasegate.utils.errors import (
    E,
    api_error,
    authorization_error_response,
    validation_error_response,
)

logger = logging.getLogger(__name__)

TRACK_KEYS = ("track", "project_type")
CYCLE_KEYS = ("cycle", "assessment_type")


def _first_present(source, keys):
    if not source:
        return None
    for key in keys:
        value = source.get(key)
        if value not in (None, ""):
            return value
    return None


def _request_value(keys):
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = None
    for source in (body, request.view_args, request.args):
        value = _first_present(source, keys)
        if value is not None:
            return value
    return None


def resolve_track(principal=None):
    """Acting track for the current request, or None."""
    track = _request_value(TRACK_KEYS)
    if track is None and principal is not None:
        track = principal.track
    return track


def resolve_cycle():
    return _request_value(CYCLE_KEYS)


def _guarded(check):
    """Run ``check`` and translate gate outcomes into responses."""
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            principal = current_principal()
            try:
                g.window_decision = check(principal)
            except ValidationError as exc:
                return validation_error_response(exc, status=400)
            except AuthorizationError as exc:
                return authorization_error_response(exc)
            except StorageError:
                logger.error("Window check failed on %s %s", request.method, request.path)
                return api_error(E.WINDOW_CHECK_FAILED, "Failed to check window status")
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_active_window(phase_kind: str, cycle: str | None = None, bypass=None):
    """
    Decorator: allow the route only while the ``phase_kind`` window is open.

    Args:
        phase_kind: Phase the route belongs to.
        cycle: Pin the cycle; when None it is taken from the request
            (and a missing one matches any cycle).
        bypass: Predicate ``principal -> bool`` skipping the check.
    """
    def check(principal):
        return evaluate_access(
            phase_kind,
            resolve_track(principal),
            cycle if cycle is not None else resolve_cycle(),
            principal=principal,
            bypass=bypass,
        )
    return _guarded(check)


def require_any_active_window(targets, bypass=None):
    """
    Decorator: allow the route while ANY of ``targets`` is open.

    ``targets`` is a list of phase kinds or ``(phase_kind, cycle)`` pairs;
    a None cycle is filled from the request.
    """
    def check(principal):
        requested_cycle = resolve_cycle()
        resolved = []
        for target in targets:
            kind, pinned = (target, None) if isinstance(target, str) else target
            resolved.append((kind, pinned if pinned is not None else requested_cycle))
        return evaluate_any_access(
            resolved,
            resolve_track(principal),
            principal=principal,
            bypass=bypass,
        )
    return _guarded(check)
