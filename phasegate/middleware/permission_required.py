"""
Role decorators for route protection.

Usage:
    @bp.route("/windows", methods=["POST"])
    @require_any_role(config_key="WINDOW_MANAGER_ROLES")
    def create_window():
        ...

    @bp.route("/windows/purge-ended", methods=["POST"])
    @require_any_role("admin")
    def purge_ended():
        ...

When no JWT principal is present the request is rejected with 401, unless
API_AUTH_ENABLED is false (development and tests), in which case the
decorator passes through.
"""

import functools
import logging
import os

from flask import current_app, request

from phasegate.auth import current_principal, has_any_role
from phasegate.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_FALSE = ("false", "0", "no", "off")


def is_auth_enabled() -> bool:
    """Check whether authentication is enforced (env var wins over app config)."""
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in _FALSE
    return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in _FALSE


def require_any_role(*roles: str, config_key: str | None = None):
    """
    Decorator: require the principal to hold at least ONE of the roles.

    Roles come from ``roles`` or, with ``config_key``, from that app-config
    entry at request time so deployments can change them without code edits.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            principal = current_principal()
            if principal is None:
                if not is_auth_enabled():
                    return f(*args, **kwargs)
                return api_error(E.UNAUTHORIZED, "Authentication required")

            allowed = roles or tuple(current_app.config.get(config_key, ()))
            if not has_any_role(*allowed)(principal):
                logger.warning(
                    "User %s denied: roles=%s need any of %s on %s %s",
                    principal.user_id, sorted(principal.roles), list(allowed),
                    request.method, request.path,
                )
                return api_error(
                    E.FORBIDDEN,
                    "Permission denied",
                    details={"required_any": list(allowed)},
                )

            return f(*args, **kwargs)
        return decorated
    return decorator
