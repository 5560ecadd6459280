"""
Team windows — attribute child sessions to the team their parent was in.

Claude Code stamps ``teamName`` on the records of a parent transcript
while a team is active. A child (subagent) transcript carries no team of
its own, so it is matched by its first timestamp against the time ranges
in which the parent held each team.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence

from .timestamps import parse_timestamp

# Children start shortly after the team is set up, and clocks drift.
# Empirically tuned; recalibrate against real transcripts when they change.
TEAM_SLACK_SECONDS = 90
TEAM_NEAREST_SECONDS = 300

_TURN_TYPES = ("user", "assistant")


@dataclass
class TeamWindow:
    team_name: str
    start: datetime
    end: datetime


def build_team_windows(records: Sequence[Any]) -> List[TeamWindow]:
    """Collect contiguous runs of a constant teamName across turn records.

    A turn without the field closes the current run; a later run of the
    same team opens a new window.
    """
    windows: List[TeamWindow] = []
    current: Optional[TeamWindow] = None

    for record in records:
        if not isinstance(record, dict) or record.get("type") not in _TURN_TYPES:
            continue
        ts = parse_timestamp(record.get("timestamp"))
        team = record.get("teamName")
        if not isinstance(team, str) or not team:
            current = None
            continue
        if ts is None:
            continue
        if current is not None and current.team_name == team:
            current.end = max(current.end, ts)
            continue
        current = TeamWindow(team_name=team, start=ts, end=ts)
        windows.append(current)

    return windows


def resolve_team(windows: Sequence[TeamWindow], ts: Any) -> Optional[str]:
    """Team whose window contains ``ts`` (with slack), else the nearest close one."""
    when = ts if isinstance(ts, datetime) else parse_timestamp(ts)
    if when is None or not windows:
        return None

    slack = timedelta(seconds=TEAM_SLACK_SECONDS)
    for window in windows:
        if window.start - slack <= when <= window.end + slack:
            return window.team_name

    best: Optional[TeamWindow] = None
    best_gap: Optional[float] = None
    for window in windows:
        gap = min(
            abs((when - window.start).total_seconds()),
            abs((when - window.end).total_seconds()),
        )
        if best_gap is None or gap < best_gap:
            best, best_gap = window, gap

    if best is not None and best_gap is not None and best_gap <= TEAM_NEAREST_SECONDS:
        return best.team_name
    return None
