"""Tests for deeptrace.ingest.teams — team windows and child attribution."""

from deeptrace.ingest.teams import build_team_windows, resolve_team


def _turn(ts, team=None, rtype="user"):
    record = {"type": rtype, "timestamp": f"2025-01-01T{ts}Z", "message": {"role": rtype, "content": "x"}}
    if team:
        record["teamName"] = team
    return record


RECORDS = [
    _turn("10:00:00", "alpha"),
    _turn("10:05:00", "alpha", "assistant"),
    {"type": "progress", "timestamp": "2025-01-01T10:07:00Z"},
    _turn("10:10:00"),
    _turn("10:20:00", "beta"),
    _turn("10:30:00", "beta", "assistant"),
]


class TestBuildTeamWindows:
    def test_contiguous_runs(self):
        windows = build_team_windows(RECORDS)
        assert [w.team_name for w in windows] == ["alpha", "beta"]
        assert windows[0].start.isoformat() == "2025-01-01T10:00:00+00:00"
        assert windows[0].end.isoformat() == "2025-01-01T10:05:00+00:00"
        assert windows[1].end.isoformat() == "2025-01-01T10:30:00+00:00"

    def test_turn_without_team_closes_run(self):
        records = [_turn("10:00:00", "alpha"), _turn("10:01:00"), _turn("10:02:00", "alpha")]
        windows = build_team_windows(records)
        assert len(windows) == 2
        assert all(w.team_name == "alpha" for w in windows)

    def test_no_teams(self):
        assert build_team_windows([_turn("10:00:00")]) == []


class TestResolveTeam:
    def setup_method(self):
        self.windows = build_team_windows(RECORDS)

    def test_inside_window(self):
        assert resolve_team(self.windows, "2025-01-01T10:02:00Z") == "alpha"
        assert resolve_team(self.windows, "2025-01-01T10:25:00Z") == "beta"

    def test_within_slack(self):
        assert resolve_team(self.windows, "2025-01-01T10:06:00Z") == "alpha"
        assert resolve_team(self.windows, "2025-01-01T10:18:45Z") == "beta"

    def test_nearest_window_fallback(self):
        assert resolve_team(self.windows, "2025-01-01T10:09:00Z") == "alpha"
        assert resolve_team(self.windows, "2025-01-01T10:34:00Z") == "beta"

    def test_too_far_from_any_window(self):
        assert resolve_team(self.windows, "2025-01-01T10:12:30Z") is None
        assert resolve_team(self.windows, "2025-01-01T12:00:00Z") is None

    def test_unusable_input(self):
        assert resolve_team([], "2025-01-01T10:02:00Z") is None
        assert resolve_team(self.windows, None) is None
        assert resolve_team(self.windows, "not a date") is None
