"""
JWT Auth Middleware: parses a Bearer token and sets ``g.principal``.

An absent, expired or invalid token leaves ``g.principal`` as None; the
route decorators decide whether that is acceptable.
"""

import logging

import jwt as pyjwt
from flask import g, request

from phasegate.auth import Principal
from phasegate.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def principal_from_claims(payload: dict) -> Principal:
    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    elif not isinstance(roles, (list, tuple)):
        logger.warning("Ignoring malformed roles claim for sub=%s: %r", payload.get("sub"), roles)
        roles = []
    track = payload.get("track")
    return Principal(
        user_id=str(payload.get("sub")),
        roles=frozenset(roles),
        track=str(track).upper() if track else None,
    )


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.principal = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]
        try:
            g.principal = principal_from_claims(decode_access_token(token))
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s %s", request.method, path)
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Invalid access token on %s %s: %s", request.method, path, exc)
