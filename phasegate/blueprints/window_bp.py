"""Window management blueprint.

REST API used by coordinator tooling to schedule phase windows and by
clients to read window state.

Endpoint groups:
  Window CRUD        GET/POST        /api/v1/windows
                     GET/PUT/DELETE  /api/v1/windows/<id>
  Maintenance        POST /api/v1/windows/bulk-delete
                     POST /api/v1/windows/purge-ended
  Lookups            GET  /api/v1/windows/active
                     GET  /api/v1/windows/upcoming
                     GET  /api/v1/windows/sequence
  Dry runs           POST /api/v1/windows/validate
                     GET  /api/v1/windows/access

Mutations require one of WINDOW_MANAGER_ROLES when a JWT principal is
present. Service layer owns all business logic and commits; failures
surface as typed exceptions mapped by the handlers below.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

import phasegate.services.window_service as ws
from phasegate.auth import configured_bypass, current_principal
from phasegate.core.clock import utcnow
from phasegate.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from phasegate.middleware.permission_required import require_any_role
from phasegate.middleware.window_enforcement import resolve_track
from phasegate.models.window import CYCLES, PHASE_KINDS, TRACKS
from phasegate.services import sequence_model
from phasegate.services.enforcement import evaluate_access
from phasegate.utils.errors import E, api_error, validation_error_response
from phasegate.utils.helpers import parse_int_list

logger = logging.getLogger(__name__)

window_bp = Blueprint("windows", __name__, url_prefix="/api/v1")

_MANAGERS = "WINDOW_MANAGER_ROLES"


# ── Error handlers ────────────────────────────────────────────────────────────


@window_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@window_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return validation_error_response(error, status=422)


@window_bp.errorhandler(StorageError)
def _handle_storage(error: StorageError):
    return api_error(E.DATABASE, "Database error")


@window_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in window_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


def _json_object() -> dict:
    """Request body as a dict; an absent body reads as empty."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": "invalid"})
    return data


def _serialize(windows):
    now = utcnow()
    return [w.to_dict(now=now) for w in windows]


# ═════════════════════════════════════════════════════════════════════════
# Window CRUD
# ═════════════════════════════════════════════════════════════════════════


@window_bp.route("/windows", methods=["GET"])
def list_windows():
    """List windows.

    Query params: track, phase_kind, cycle, status (upcoming|active|ended),
                  is_active, from, to (ISO-8601; windows intersecting the range)
    Returns: { "items": [...], "total": int }
    """
    windows = ws.list_windows(request.args)
    return jsonify({"items": _serialize(windows), "total": len(windows)}), 200


@window_bp.route("/windows/<int:window_id>", methods=["GET"])
def get_window(window_id):
    window = ws.get_window(window_id)
    return jsonify(window.to_dict(now=utcnow())), 200


@window_bp.route("/windows", methods=["POST"])
@require_any_role(config_key=_MANAGERS)
def create_window():
    """Create a window.

    Body: { phase_kind, track, cycle?, start_at, end_at, enforced? }
    Returns: created window (201), or 422 with the full violation list.
    """
    data = _json_object()
    principal = current_principal()
    window = ws.create_window(data, created_by=principal.user_id if principal else None)
    return jsonify(window.to_dict(now=utcnow())), 201


@window_bp.route("/windows/<int:window_id>", methods=["PUT"])
@require_any_role(config_key=_MANAGERS)
def update_window(window_id):
    """Shift dates and/or toggle enforcement.

    Body: { start_at?, end_at?, enforced? }. phase_kind, track and cycle
    are immutable; sending a different value is rejected.
    """
    data = _json_object()
    window = ws.update_window(window_id, data)
    return jsonify(window.to_dict(now=utcnow())), 200


@window_bp.route("/windows/<int:window_id>", methods=["DELETE"])
@require_any_role(config_key=_MANAGERS)
def delete_window(window_id):
    ws.delete_window(window_id)
    return "", 204


# ── Maintenance ───────────────────────────────────────────────────────────────


@window_bp.route("/windows/bulk-delete", methods=["POST"])
@require_any_role(config_key=_MANAGERS)
def bulk_delete():
    """Delete many windows.

    Body: { ids: [int, ...] }
    Returns: { "deleted": int }. Unknown ids are ignored.
    """
    data = _json_object()
    try:
        ids = parse_int_list(data.get("ids"))
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc), details={"ids": "invalid"})
    return jsonify({"deleted": ws.delete_windows(ids)}), 200


@window_bp.route("/windows/purge-ended", methods=["POST"])
@require_any_role(config_key=_MANAGERS)
def purge_ended():
    """Delete every ended window.

    Body: { track? }
    Returns: { "deleted": int }
    """
    data = _json_object()
    track = data.get("track") or request.args.get("track")
    return jsonify({"deleted": ws.purge_ended_windows(track)}), 200


# ── Lookups ───────────────────────────────────────────────────────────────────


@window_bp.route("/windows/active", methods=["GET"])
def active_window():
    """The currently active window for phase_kind/track[/cycle].

    Returns: { "window": {...} | null }
    """
    window = ws.get_active_window(
        request.args.get("phase_kind"),
        request.args.get("track"),
        request.args.get("cycle"),
    )
    return jsonify({"window": window.to_dict(now=utcnow()) if window else None}), 200


@window_bp.route("/windows/upcoming", methods=["GET"])
def upcoming_windows():
    """Windows that have not started yet, soonest first.

    Query params: track?, limit? (default WINDOW_UPCOMING_DEFAULT_LIMIT)
    """
    limit = request.args.get("limit", type=int)
    if limit is not None and limit < 1:
        return api_error(E.VALIDATION_INVALID, "limit must be a positive integer",
                         details={"limit": "invalid"})
    windows = ws.get_upcoming_windows(request.args.get("track"), limit)
    return jsonify({"items": _serialize(windows), "total": len(windows)}), 200


@window_bp.route("/windows/sequence", methods=["GET"])
def sequence():
    """The phase sequence every track follows, with prerequisites."""
    return jsonify({
        "tracks": list(TRACKS),
        "phase_kinds": list(PHASE_KINDS),
        "cycles": list(CYCLES),
        "steps": sequence_model.describe(),
    }), 200


# ── Dry runs ──────────────────────────────────────────────────────────────────


@window_bp.route("/windows/validate", methods=["POST"])
def validate_window():
    """Run the validator without saving.

    Body: create payload, or { window_id, start_at?, end_at? } for an edit.
    Returns: { "valid": bool, "violations": [...] }
    """
    data = _json_object()
    editing_id = data.get("window_id")
    if editing_id is not None:
        try:
            editing_id = int(editing_id)
        except (TypeError, ValueError):
            return api_error(E.VALIDATION_INVALID, "window_id must be an integer",
                             details={"window_id": "invalid"})
    violations = ws.check_window(data, editing_id)
    return jsonify({
        "valid": not violations,
        "violations": [v.to_dict() for v in violations],
    }), 200


@window_bp.route("/windows/access", methods=["GET"])
def check_access():
    """Evaluate the enforcement gate for the current principal.

    Query params: phase_kind, track? (falls back to the principal's track),
                  cycle?
    Returns: { "allowed": true, "decision": {...} } or
             { "allowed": false, "error": str, "window": {...}, "now": str }
    Track problems are reported as 400.
    """
    principal = current_principal()
    try:
        decision = evaluate_access(
            request.args.get("phase_kind"),
            resolve_track(principal),
            request.args.get("cycle"),
            principal=principal,
            bypass=configured_bypass(),
        )
    except ValidationError as exc:
        return validation_error_response(exc, status=400)
    except AuthorizationError as exc:
        return jsonify({"allowed": False, **exc.to_dict()}), 200
    return jsonify({"allowed": True, "decision": decision.to_dict()}), 200
