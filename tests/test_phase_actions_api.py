"""Gated phase actions: enforcement decorators over HTTP."""

from datetime import datetime, timedelta, timezone

from phasegate.core.exceptions import StorageError
from phasegate.services import window_store

# Matches the clock pinned by conftest
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _open(make_window, phase_kind, track="IDP", cycle=None, **kw):
    return make_window(phase_kind, track, NOW - timedelta(days=1), NOW + timedelta(days=1),
                       cycle=cycle, **kw)


def _closed(make_window, phase_kind, track="IDP", cycle=None, **kw):
    return make_window(phase_kind, track, NOW - timedelta(days=6), NOW - timedelta(days=3),
                       cycle=cycle, **kw)


class TestGatedEndpoints:
    def test_open_window_accepts(self, client, make_window):
        w = _open(make_window, "proposal")
        r = client.post("/api/v1/phases/proposals", json={"track": "IDP"})
        assert r.status_code == 202
        d = r.get_json()
        assert d["action"] == "proposal.submit"
        assert d["window"]["is_active"] is True
        assert d["window"]["matched_window"]["id"] == w.id
        assert d["window"]["seconds_remaining"] == 86400

    def test_closed_window_423(self, client, make_window):
        _closed(make_window, "application")
        r = client.post("/api/v1/phases/applications", json={"track": "IDP"})
        assert r.status_code == 423
        d = r.get_json()
        assert d["code"] == "WINDOW_CLOSED"
        assert d["window"]["end_at"] == (NOW - timedelta(days=3)).isoformat()
        assert d["now"] == NOW.isoformat()

    def test_no_window_is_open(self, client):
        r = client.post("/api/v1/phases/grades/release", json={"track": "CAPSTONE"})
        assert r.status_code == 202
        assert r.get_json()["window"]["reason"] == "no_window"

    def test_not_enforced_window_allows(self, client, make_window):
        _closed(make_window, "grade_release", enforced=False)
        r = client.post("/api/v1/phases/grades/release", json={"track": "IDP"})
        assert r.status_code == 202
        assert r.get_json()["window"]["enforced"] is False

    def test_missing_track_400(self, client):
        r = client.post("/api/v1/phases/proposals", json={})
        assert r.status_code == 400
        assert r.get_json()["details"] == {"track": "required"}

    def test_invalid_track_400(self, client):
        r = client.post("/api/v1/phases/proposals", json={"track": "MSC"})
        assert r.status_code == 400
        assert r.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_store_failure_500(self, client, monkeypatch):
        def _down(*args, **kwargs):
            raise StorageError("lookup")
        monkeypatch.setattr(window_store, "find_for_tuple", _down)
        r = client.post("/api/v1/phases/proposals", json={"track": "IDP"})
        assert r.status_code == 500
        assert r.get_json()["code"] == "WINDOW_CHECK_FAILED"


class TestTrackResolution:
    def test_project_type_alias(self, client, make_window):
        _closed(make_window, "proposal", track="UROP")
        r = client.post("/api/v1/phases/proposals", json={"project_type": "UROP"})
        assert r.status_code == 423

    def test_body_wins_over_path_and_query(self, client, make_window):
        _closed(make_window, "proposal", track="UROP")
        r = client.post("/api/v1/tracks/UROP/phases/proposals?track=UROP", json={"track": "IDP"})
        assert r.status_code == 202
        assert r.get_json()["window"]["track"] == "IDP"

    def test_path_wins_over_query(self, client, make_window):
        _closed(make_window, "proposal", track="UROP")
        r = client.post("/api/v1/tracks/UROP/phases/proposals?track=IDP", json={})
        assert r.status_code == 423

    def test_query_used_without_body(self, client, make_window):
        _closed(make_window, "proposal", track="CAPSTONE")
        r = client.post("/api/v1/phases/proposals?track=CAPSTONE")
        assert r.status_code == 423

    def test_principal_track_is_last_resort(self, client, make_window, auth_headers):
        _closed(make_window, "proposal", track="UROP")
        headers = auth_headers(["student"], track="urop")
        assert client.post("/api/v1/phases/proposals", json={}, headers=headers).status_code == 423
        r = client.post("/api/v1/phases/proposals", json={"track": "IDP"}, headers=headers)
        assert r.status_code == 202


class TestCycles:
    def test_cycle_from_body(self, client, make_window):
        _open(make_window, "submission", cycle="CLA-2")
        ok = client.post("/api/v1/phases/submissions", json={"track": "IDP", "cycle": "CLA-2"})
        assert ok.status_code == 202
        assert ok.get_json()["window"]["cycle"] == "CLA-2"

    def test_assessment_type_alias(self, client, make_window):
        _closed(make_window, "assessment", cycle="External")
        r = client.post("/api/v1/phases/assessments",
                        json={"track": "IDP", "assessment_type": "External"})
        assert r.status_code == 423

    def test_review_allowed_in_either_window(self, client, make_window):
        _closed(make_window, "submission", cycle="CLA-1")
        _open(make_window, "assessment", cycle="CLA-1")
        r = client.post("/api/v1/phases/reviews", json={"track": "IDP", "cycle": "CLA-1"})
        assert r.status_code == 202
        assert r.get_json()["window"]["phase_kind"] == "assessment"

    def test_review_denied_when_both_closed(self, client, make_window):
        _closed(make_window, "submission", cycle="CLA-1")
        make_window("assessment", "IDP", NOW + timedelta(days=2), NOW + timedelta(days=4), cycle="CLA-1")
        r = client.post("/api/v1/phases/reviews", json={"track": "IDP", "cycle": "CLA-1"})
        assert r.status_code == 423


class TestBypass:
    def test_coordinator_bypasses_closed_window(self, client, make_window, auth_headers):
        _closed(make_window, "proposal")
        r = client.post("/api/v1/phases/proposals", json={"track": "IDP"},
                        headers=auth_headers(["coordinator"]))
        assert r.status_code == 202
        d = r.get_json()["window"]
        assert d["bypassed"] is True
        assert d["is_active"] is None

    def test_student_does_not_bypass(self, client, make_window, auth_headers):
        _closed(make_window, "proposal")
        r = client.post("/api/v1/phases/proposals", json={"track": "IDP"},
                        headers=auth_headers(["student"]))
        assert r.status_code == 423

    def test_bypass_roles_are_configuration(self, app, client, make_window, auth_headers):
        _closed(make_window, "proposal")
        app.config["WINDOW_BYPASS_ROLES"] = ("faculty",)
        coordinator = auth_headers(["coordinator"])
        faculty = auth_headers(["faculty"])
        assert client.post("/api/v1/phases/proposals", json={"track": "IDP"},
                           headers=coordinator).status_code == 423
        assert client.post("/api/v1/phases/proposals", json={"track": "IDP"},
                           headers=faculty).status_code == 202

    def test_bypass_still_needs_a_track(self, client, auth_headers):
        r = client.post("/api/v1/phases/proposals", json={}, headers=auth_headers(["admin"]))
        assert r.status_code == 400


class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client, make_window):
        _open(make_window, "proposal")
        d = client.get("/api/v1/health/live").get_json()
        assert d["status"] == "healthy"
        assert d["checks"]["phase_windows"]["count"] == 1
        assert d["checks"]["clock"]["now"] == NOW.isoformat()
