"""
Phase Window Engine
Principal model and capability predicates.

Authentication itself happens upstream; ``middleware/jwt_auth.py`` turns a
verified Bearer token into a ``Principal`` on ``g.principal``. This module
offers:

    - Principal                the acting user as seen by the engine
    - current_principal()      g.principal or None
    - has_any_role(*roles)     capability predicate factory (principal -> bool)
    - configured_bypass()      predicate driven by WINDOW_BYPASS_ROLES config

Configuration:
    WINDOW_BYPASS_ROLES   roles that skip window enforcement
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app, g, has_app_context


@dataclass(frozen=True)
class Principal:
    """The authenticated actor.

    ``track`` is the eligibility hint supplied by the identity layer (the
    track the user is enrolled in), used as the last fallback when a gated
    request does not name a track.
    """

    user_id: str
    roles: frozenset = field(default_factory=frozenset)
    track: str | None = None


def current_principal() -> Principal | None:
    return getattr(g, "principal", None)


def has_any_role(*roles: str):
    """Build a capability predicate true when the principal holds any of ``roles``."""
    wanted = frozenset(roles)

    def predicate(principal: Principal | None) -> bool:
        return principal is not None and bool(principal.roles & wanted)

    predicate.__name__ = f"has_any_role({', '.join(sorted(wanted))})"
    return predicate


def configured_bypass():
    """Predicate reading WINDOW_BYPASS_ROLES at call time.

    Policy changes are a config edit; the gate never names roles itself.
    """
    def predicate(principal: Principal | None) -> bool:
        roles = current_app.config.get("WINDOW_BYPASS_ROLES", ()) if has_app_context() else ()
        return has_any_role(*roles)(principal)

    predicate.__name__ = "configured_bypass"
    return predicate
