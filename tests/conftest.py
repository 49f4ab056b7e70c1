"""
Shared pytest fixtures for the Phase Window Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB reset + pinned clock (autouse)
    - clock: The FixedClock installed as app.config["CLOCK"]
    - client: Flask test client (function-scoped)
    - make_window: Insert a window row directly, skipping validation
    - auth_headers: Build Bearer headers for a principal
"""

from datetime import datetime, timedelta, timezone

import pytest

from phasegate import create_app
from phasegate.models import db as _db
from phasegate.models.window import PhaseWindow

# Every test starts at this instant unless it moves the clock
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Controllable clock: callable returning the pinned instant."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def set(self, value):
        self.now = value

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, pin the clock, recreate tables after."""
    app.config["CLOCK"] = FixedClock(NOW)
    app.config["WINDOW_REQUIRE_FUTURE_START"] = True
    app.config["WINDOW_BYPASS_ROLES"] = ("admin", "coordinator")
    app.config["API_AUTH_ENABLED"] = "false"
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
    app.config["CLOCK"] = None


@pytest.fixture()
def clock(app):
    return app.config["CLOCK"]


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_window():
    """Insert a window without running the validator.

    Used to set up states the validator would refuse to produce (e.g.
    windows already active "now").
    """
    def _make(phase_kind, track, start, end, cycle=None, enforced=True):
        window = PhaseWindow(
            phase_kind=phase_kind,
            track=track,
            cycle=cycle,
            start_at=start,
            end_at=end,
            enforced=enforced,
        )
        _db.session.add(window)
        _db.session.commit()
        return window
    return _make


@pytest.fixture()
def auth_headers():
    """Bearer headers for a principal with the given roles/track."""
    from phasegate.services.jwt_service import generate_access_token

    def _headers(roles=(), track=None, user_id="u-1"):
        token = generate_access_token(user_id, list(roles), track=track)
        return {"Authorization": f"Bearer {token}"}
    return _headers
