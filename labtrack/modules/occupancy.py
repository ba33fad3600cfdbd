"""
Occupancy Summary Module - Lab Presence Tracker

Aggregates a window of log entries into the admin dashboard figures.

Entries are matched to a day by prefix of their stored timestamp against the
ISO date ``YYYY-MM-DD``. That is exact only when timestamps are serialized in
the reporting timezone, which the backend guarantees by writing naive local
time.

The "currently present" figure is an estimate: today's entries minus today's
exits, floored at zero. Members who came in on an earlier day and have not
left yet are not counted.
"""

from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from labtrack.modules.models import Action, LogEntry


@dataclass(frozen=True)
class OccupancySummary:
    date: str
    today_entries: int
    today_exits: int
    currently_present_estimate: int
    total_members: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class OccupancySummarizer:
    """Pure aggregation over log entries."""

    def todays_entries(self, logs: Iterable[LogEntry], as_of: Optional[date] = None) -> List[LogEntry]:
        day = (as_of or date.today()).isoformat()
        return [entry for entry in logs if entry.timestamp and entry.timestamp.startswith(day)]

    def summarize(self, logs: Iterable[LogEntry], as_of: Optional[date] = None,
                  total_members: int = 0) -> OccupancySummary:
        """
        Summarize one calendar day.

        Args:
            logs: Log entries in any order
            as_of (date): Reporting day, local date by default
            total_members (int): Registered member count, reported as-is

        Returns:
            OccupancySummary: Counts for the day
        """
        as_of = as_of or date.today()
        todays = self.todays_entries(logs, as_of)

        entries = sum(1 for entry in todays if entry.action is Action.IN)
        exits = sum(1 for entry in todays if entry.action is Action.OUT)

        return OccupancySummary(
            date=as_of.isoformat(),
            today_entries=entries,
            today_exits=exits,
            currently_present_estimate=max(0, entries - exits),
            total_members=total_members
        )
