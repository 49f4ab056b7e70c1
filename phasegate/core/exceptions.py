"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register one handler per type and
map them to HTTP status codes consistently:

    ValidationError     → 422 for window writes, 400 at the enforcement gate
    AuthorizationError  → 423 (window closed)
    NotFoundError       → 404
    StorageError        → 500, generic message only

Usage:
    from phasegate.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Window", resource_id=42)
    raise ValidationError("Window rejected", violations=violations)
"""

from __future__ import annotations

from datetime import datetime


class NotFoundError(Exception):
    """Raised when an edit/delete targets a window id that does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Window").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails a business rule.

    Window writes attach the full list of violations found by the
    validator so a caller can render every problem in one pass.

    Args:
        message: Human-readable summary.
        details: Optional field-level breakdown (field name → description).
        violations: Optional list of ``Violation`` records.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        violations: list | None = None,
    ) -> None:
        self.details = details or {}
        self.violations = list(violations or [])
        super().__init__(message)

    def to_dict(self) -> dict:
        body: dict = {"error": str(self)}
        if self.details:
            body["details"] = self.details
        if self.violations:
            body["violations"] = [v.to_dict() for v in self.violations]
        return body


class AuthorizationError(Exception):
    """Raised when an enforced window exists but ``now`` is outside it.

    Carries the window bounds and the instant of the check so the caller
    can tell the user when the window opens or when it closed.
    """

    def __init__(
        self,
        message: str,
        window: dict | None = None,
        now: datetime | None = None,
    ) -> None:
        self.window = window
        self.now = now
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "window": self.window,
            "now": self.now.isoformat() if self.now else None,
        }


class StorageError(Exception):
    """Raised when the store is unreachable or fails unexpectedly.

    The original exception is chained (``raise ... from exc``) and logged
    where it is caught; the message returned to clients stays generic.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Storage failure during {operation}")
