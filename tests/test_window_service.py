"""Window service: create/update/delete flows against the store."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from phasegate.core.exceptions import NotFoundError, StorageError, ValidationError
from phasegate.models import db
from phasegate.models.window import PhaseWindow, WindowTrackLock
from phasegate.services import window_service as ws
from phasegate.services import window_store
from phasegate.services import window_validator as wv

# Matches the clock pinned by conftest
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _iso(days):
    return (NOW + timedelta(days=days)).isoformat().replace("+00:00", "Z")


def _payload(phase_kind="proposal", track="IDP", start=1, end=5, **extra):
    data = {"phase_kind": phase_kind, "track": track, "start_at": _iso(start), "end_at": _iso(end)}
    data.update(extra)
    return data


def _codes(exc_info):
    return [v.code for v in exc_info.value.violations]


class TestCreate:
    def test_create_persists_window(self):
        w = ws.create_window(_payload(), created_by="coord-1")
        assert w.id is not None
        assert w.track == "IDP"
        assert w.start == NOW + timedelta(days=1)
        assert w.enforced is True
        assert w.created_by == "coord-1"
        assert db.session.get(WindowTrackLock, "IDP") is not None

    def test_normalises_input(self):
        w = ws.create_window(_payload(phase_kind="Proposal", track="urop"))
        assert (w.phase_kind, w.track) == ("proposal", "UROP")

    def test_cycle_normalised(self):
        ws.create_window(_payload())
        ws.create_window(_payload("application", start=6, end=9))
        w = ws.create_window(_payload("submission", start=10, end=12, cycle="cla-1"))
        assert w.cycle == "CLA-1"

    def test_missing_dates(self):
        with pytest.raises(ValidationError) as exc:
            ws.create_window({"phase_kind": "proposal", "track": "IDP", "end_at": _iso(3)})
        assert exc.value.details == {"start_at": "required"}

    def test_bad_date(self):
        with pytest.raises(ValidationError) as exc:
            ws.create_window(_payload(start_at="next tuesday"))
        assert exc.value.details == {"start_at": "invalid"}

    def test_date_past_datetime_range(self):
        with pytest.raises(ValidationError) as exc:
            ws.create_window(_payload(end_at="9999-12-31T23:00:00-05:00"))
        assert exc.value.details == {"end_at": "invalid"}
        assert PhaseWindow.query.count() == 0

    def test_active_idp_proposal_blocks_other_tracks(self, make_window):
        idp = make_window("proposal", "IDP", NOW - timedelta(days=1), NOW + timedelta(days=2))
        with pytest.raises(ValidationError) as exc:
            ws.create_window(_payload(track="UROP", start=1, end=4))
        assert _codes(exc) == [wv.IDP_PROPOSAL_PRECEDENCE]
        assert exc.value.violations[0].related_window_id == idp.id
        assert PhaseWindow.query.filter_by(track="UROP").count() == 0

    def test_other_track_proposal_after_idp_proposal(self, make_window):
        make_window("proposal", "IDP", NOW - timedelta(days=1), NOW + timedelta(days=2))
        w = ws.create_window(_payload(track="UROP", start=3, end=5))
        assert w.track == "UROP"

    def test_duplicate_open_tuple_rejected(self):
        ws.create_window(_payload(track="CAPSTONE", start=1, end=3))
        with pytest.raises(ValidationError) as exc:
            ws.create_window(_payload(track="CAPSTONE", start=4, end=6))
        assert _codes(exc) == [wv.DUPLICATE_OPEN_WINDOW]
        assert PhaseWindow.query.filter_by(track="CAPSTONE").count() == 1

    def test_past_start_rejected_by_default(self):
        with pytest.raises(ValidationError) as exc:
            ws.create_window(_payload(start=-1, end=3))
        assert _codes(exc) == [wv.START_NOT_IN_FUTURE]
        assert PhaseWindow.query.count() == 0

    def test_past_start_allowed_when_policy_off(self, app):
        app.config["WINDOW_REQUIRE_FUTURE_START"] = False
        w = ws.create_window(_payload(start=-1, end=3))
        assert w.id is not None

    def test_overlap_rejected_across_phases(self):
        ws.create_window(_payload())
        ws.create_window(_payload("application", start=6, end=10))
        with pytest.raises(ValidationError) as exc:
            ws.create_window(_payload("submission", start=8, end=12, cycle="CLA-1"))
        assert wv.WINDOW_OVERLAP in _codes(exc)
        assert PhaseWindow.query.count() == 2

    def test_integrity_error_becomes_violation(self, monkeypatch):
        def _boom(window):
            raise IntegrityError("INSERT", {}, Exception("ex_phase_windows_track_no_overlap"))
        monkeypatch.setattr(window_store, "add", _boom)
        with pytest.raises(ValidationError) as exc:
            ws.create_window(_payload())
        assert _codes(exc) == [wv.CONCURRENT_MODIFICATION]


class TestUpdate:
    def test_shift_dates(self):
        w = ws.create_window(_payload())
        updated = ws.update_window(w.id, {"end_at": _iso(7)})
        assert updated.end == NOW + timedelta(days=7)

    def test_extend_active_window(self, clock):
        w = ws.create_window(_payload())
        clock.advance(days=2)
        updated = ws.update_window(w.id, {"end_at": _iso(9)})
        assert updated.end == NOW + timedelta(days=9)

    def test_moving_start_into_past_rejected(self, clock):
        w = ws.create_window(_payload(start=2, end=5))
        clock.advance(days=1)
        with pytest.raises(ValidationError) as exc:
            ws.update_window(w.id, {"start_at": _iso(0)})
        assert _codes(exc) == [wv.START_NOT_IN_FUTURE]

    def test_toggle_enforced_without_revalidation(self):
        w = ws.create_window(_payload())
        assert ws.update_window(w.id, {"enforced": False}).enforced is False

    def test_identity_is_immutable(self):
        w = ws.create_window(_payload())
        with pytest.raises(ValidationError) as exc:
            ws.update_window(w.id, {"track": "UROP"})
        assert exc.value.details == {"track": "immutable"}

    def test_same_identity_is_accepted(self):
        w = ws.create_window(_payload())
        updated = ws.update_window(w.id, {"track": "idp", "phase_kind": "proposal", "enforced": False})
        assert updated.enforced is False

    def test_update_respects_successor(self):
        p = ws.create_window(_payload())
        ws.create_window(_payload("application", start=6, end=10))
        with pytest.raises(ValidationError) as exc:
            ws.update_window(p.id, {"end_at": _iso(7)})
        assert wv.SUCCESSOR_STARTS_TOO_EARLY in _codes(exc)
        assert db.session.get(PhaseWindow, p.id).end == NOW + timedelta(days=5)

    def test_unknown_window(self):
        with pytest.raises(NotFoundError):
            ws.update_window(999, {"enforced": False})


class TestDelete:
    def test_delete(self):
        w = ws.create_window(_payload())
        ws.delete_window(w.id)
        assert PhaseWindow.query.count() == 0

    def test_delete_unknown(self):
        with pytest.raises(NotFoundError):
            ws.delete_window(42)

    def test_bulk_delete_ignores_unknown_ids(self):
        a = ws.create_window(_payload())
        b = ws.create_window(_payload(track="UROP"))
        assert ws.delete_windows([a.id, b.id, 999]) == 2

    def test_purge_removes_only_ended(self, clock, make_window):
        make_window("proposal", "IDP", NOW - timedelta(days=10), NOW - timedelta(days=5))
        make_window("proposal", "UROP", NOW - timedelta(days=10), NOW - timedelta(days=5))
        keep = make_window("application", "IDP", NOW - timedelta(days=1), NOW + timedelta(days=2))
        assert ws.purge_ended_windows("IDP") == 1
        assert ws.purge_ended_windows() == 1
        assert [w.id for w in PhaseWindow.query.all()] == [keep.id]


class TestQueries:
    def test_list_by_status(self, make_window):
        make_window("proposal", "IDP", NOW - timedelta(days=10), NOW - timedelta(days=5))
        active = make_window("application", "IDP", NOW - timedelta(days=1), NOW + timedelta(days=2))
        make_window("submission", "IDP", NOW + timedelta(days=3), NOW + timedelta(days=6), cycle="CLA-1")
        assert [w.id for w in ws.list_windows({"status": "active"})] == [active.id]
        assert [w.id for w in ws.list_windows({"is_active": "true"})] == [active.id]
        assert len(ws.list_windows({"is_active": "false"})) == 2
        assert len(ws.list_windows({"track": "idp", "phase_kind": "submission", "cycle": "CLA-1"})) == 1

    def test_list_range(self, make_window):
        make_window("proposal", "IDP", NOW + timedelta(days=1), NOW + timedelta(days=5))
        make_window("application", "IDP", NOW + timedelta(days=6), NOW + timedelta(days=9))
        windows = ws.list_windows({"from": _iso(5.5), "to": _iso(7)})
        assert [w.phase_kind for w in windows] == ["application"]

    def test_list_invalid_status(self):
        with pytest.raises(ValidationError):
            ws.list_windows({"status": "paused"})

    def test_active_window(self, make_window):
        make_window("submission", "IDP", NOW - timedelta(days=1), NOW + timedelta(days=1), cycle="CLA-2")
        assert ws.get_active_window("submission", "IDP").cycle == "CLA-2"
        assert ws.get_active_window("submission", "IDP", "CLA-1") is None
        assert ws.get_active_window("proposal", "IDP") is None

    def test_upcoming_default_limit(self, make_window):
        for n in range(7):
            make_window("proposal", "IDP", NOW + timedelta(days=10 * n + 1), NOW + timedelta(days=10 * n + 5))
        upcoming = ws.get_upcoming_windows("IDP")
        assert len(upcoming) == 5
        assert upcoming[0].start == NOW + timedelta(days=1)
        assert len(ws.get_upcoming_windows(limit=2)) == 2

    def test_check_window_dry_run(self):
        ws.create_window(_payload())
        violations = ws.check_window(_payload("application", start=3, end=8))
        assert wv.PREREQUISITE_NOT_ENDED in [v.code for v in violations]
        assert PhaseWindow.query.count() == 1

    def test_storage_failure_is_wrapped(self, monkeypatch):
        from sqlalchemy.exc import OperationalError

        def _down(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection refused"))
        monkeypatch.setattr(db.session, "execute", _down)
        with pytest.raises(StorageError):
            ws.list_windows({})
