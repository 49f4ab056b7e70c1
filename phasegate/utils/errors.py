"""Standardised API error responses.

Usage
-----
    from phasegate.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Window not found")
    return api_error(E.VALIDATION_REQUIRED, "track is required")
    return api_error(E.WINDOW_CLOSED, "Window closed", details={"window": w})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_    prefix for standard application errors
     • WINDOW_ prefix for enforcement-gate errors
    """

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Permissions – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"

    # Enforcement gate
    WINDOW_CLOSED = "WINDOW_CLOSED"
    WINDOW_CHECK_FAILED = "WINDOW_CHECK_FAILED"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 422,
    E.NOT_FOUND: 404,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.DATABASE: 500,
    E.INTERNAL: 500,
    E.WINDOW_CLOSED: 423,
    E.WINDOW_CHECK_FAILED: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
    **extra,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Field-level breakdown.
    **extra
        Additional top-level keys (``violations``, ``window``, ``now``).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details
    for key, value in extra.items():
        if value is not None:
            body[key] = value

    return jsonify(body), http_status


def validation_error_response(exc, *, status: int | None = None):
    """Render a ``ValidationError``; 422 when it carries violations."""
    if exc.violations:
        return api_error(
            E.VALIDATION_CONSTRAINT,
            str(exc),
            status=status,
            details=exc.details,
            violations=[v.to_dict() for v in exc.violations],
        )
    code = E.VALIDATION_REQUIRED if "required" in exc.details.values() else E.VALIDATION_INVALID
    return api_error(code, str(exc), status=status, details=exc.details)


def authorization_error_response(exc):
    """Render an ``AuthorizationError`` as 423 WINDOW_CLOSED."""
    body = exc.to_dict()
    return api_error(E.WINDOW_CLOSED, body["error"], window=body["window"], now=body["now"])
