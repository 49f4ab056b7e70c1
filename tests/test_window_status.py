"""Window status resolver: classification and remaining-time helpers."""

from datetime import datetime, timedelta, timezone

from phasegate.models.window import PhaseWindow
from phasegate.services import window_status as st

START = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)
END = datetime(2026, 4, 10, 17, 0, tzinfo=timezone.utc)


def _window(start=START, end=END):
    return PhaseWindow(phase_kind="proposal", track="IDP", start_at=start, end_at=end)


class TestClassify:
    def test_upcoming_before_start(self):
        assert st.classify(_window(), START - timedelta(seconds=1)) == st.UPCOMING

    def test_active_at_both_bounds(self):
        w = _window()
        assert st.classify(w, START) == st.ACTIVE
        assert st.classify(w, END) == st.ACTIVE

    def test_ended_after_end(self):
        assert st.classify(_window(), END + timedelta(seconds=1)) == st.ENDED

    def test_naive_values_are_utc(self):
        w = _window(START.replace(tzinfo=None), END.replace(tzinfo=None))
        assert st.classify(w, START + timedelta(hours=1)) == st.ACTIVE

    def test_is_pure(self):
        w = _window()
        now = START + timedelta(days=2)
        results = {st.classify(w, now) for _ in range(5)}
        assert results == {st.ACTIVE}
        assert w.start_at == START and w.end_at == END

    def test_monotonic_over_time(self):
        w = _window()
        order = [st.UPCOMING, st.ACTIVE, st.ENDED]
        seen = [
            st.classify(w, START + timedelta(hours=h))
            for h in range(-48, 24 * 12, 6)
        ]
        ranks = [order.index(s) for s in seen]
        assert ranks == sorted(ranks)


class TestRemaining:
    def test_seconds_remaining_only_while_active(self):
        w = _window()
        assert st.seconds_remaining(w, START - timedelta(days=1)) == 0
        assert st.seconds_remaining(w, END - timedelta(minutes=5)) == 300
        assert st.seconds_remaining(w, END + timedelta(days=1)) == 0

    def test_describe_remaining(self):
        w = _window()
        assert st.describe_remaining(w, END - timedelta(days=3, hours=2)) == "3 days remaining"
        assert st.describe_remaining(w, END - timedelta(hours=1, minutes=5)) == "1 hour remaining"
        assert st.describe_remaining(w, END - timedelta(minutes=1, seconds=30)) == "1 minute remaining"
        assert st.describe_remaining(w, END + timedelta(seconds=1)) == "Closed"

    def test_status_message(self):
        w = _window()
        assert st.status_message("Proposal", w, START - timedelta(days=1)) == \
            "Proposal window opens on 2026-04-01"
        assert st.status_message("Proposal", w, START) == "Proposal window is open"
        assert st.status_message("Proposal", w, END + timedelta(days=1)) == \
            "Proposal window has closed"
