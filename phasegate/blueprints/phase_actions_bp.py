"""Gated phase action endpoints.

Each endpoint belongs to one phase and only accepts requests while that
phase's window is open for the caller's track. What the action does once
allowed is owned by the downstream services; here the request is
acknowledged together with the gate decision so clients can show the
remaining time.

    POST /api/v1/phases/proposals            proposal
    POST /api/v1/phases/applications         application
    POST /api/v1/phases/submissions          submission   (cycle in request)
    POST /api/v1/phases/assessments          assessment   (cycle in request)
    POST /api/v1/phases/reviews              submission OR assessment
    POST /api/v1/phases/grades/release       grade_release

Every route is also mounted under /api/v1/tracks/<track>/... so the track
can come from the path.
"""

import logging

from flask import Blueprint, g, jsonify

from phasegate.auth import configured_bypass, current_principal
from phasegate.middleware.window_enforcement import (
    require_active_window,
    require_any_active_window,
)

logger = logging.getLogger(__name__)

phase_actions_bp = Blueprint("phase_actions", __name__, url_prefix="/api/v1")


def _accepted(action: str):
    decision = g.window_decision
    principal = current_principal()
    logger.info(
        "Phase action accepted action=%s track=%s user=%s",
        action, decision.track, principal.user_id if principal else None,
        extra={"track": decision.track, "phase_kind": decision.phase_kind,
               "decision": decision.reason},
    )
    return jsonify({"accepted": True, "action": action, "window": decision.to_dict()}), 202


@phase_actions_bp.route("/phases/proposals", methods=["POST"])
@phase_actions_bp.route("/tracks/<track>/phases/proposals", methods=["POST"])
@require_active_window("proposal", bypass=configured_bypass())
def submit_proposal(track=None):
    return _accepted("proposal.submit")


@phase_actions_bp.route("/phases/applications", methods=["POST"])
@phase_actions_bp.route("/tracks/<track>/phases/applications", methods=["POST"])
@require_active_window("application", bypass=configured_bypass())
def submit_application(track=None):
    return _accepted("application.submit")


@phase_actions_bp.route("/phases/submissions", methods=["POST"])
@phase_actions_bp.route("/tracks/<track>/phases/submissions", methods=["POST"])
@require_active_window("submission", bypass=configured_bypass())
def upload_submission(track=None):
    return _accepted("submission.upload")


@phase_actions_bp.route("/phases/assessments", methods=["POST"])
@phase_actions_bp.route("/tracks/<track>/phases/assessments", methods=["POST"])
@require_active_window("assessment", bypass=configured_bypass())
def record_assessment(track=None):
    return _accepted("assessment.record")


@phase_actions_bp.route("/phases/reviews", methods=["POST"])
@phase_actions_bp.route("/tracks/<track>/phases/reviews", methods=["POST"])
@require_any_active_window(["submission", "assessment"], bypass=configured_bypass())
def post_review(track=None):
    """Review comments are allowed while either the submission or the
    assessment window of the cycle is open."""
    return _accepted("review.post")


@phase_actions_bp.route("/phases/grades/release", methods=["POST"])
@phase_actions_bp.route("/tracks/<track>/phases/grades/release", methods=["POST"])
@require_active_window("grade_release", bypass=configured_bypass())
def release_grades(track=None):
    return _accepted("grades.release")
