"""
Presence State Module - Lab Presence Tracker

Presence is never stored. It is inferred each time from the member's most
recent log entry: no entry or an OUT entry means the member is outside and
the next scan records IN; an IN entry means the member is inside and the next
scan records OUT.

Two scans that decide from the same stale "last entry" would both pick the
same action. Callers must serialize the read and the write per member (see
AttendanceManager) for the log to keep alternating.
"""

from typing import Optional

from labtrack.modules.models import Action, LogEntry, Member, PresenceState


class PresenceStateMachine:
    """Strict two-state toggle between OUTSIDE and INSIDE."""

    def current_state(self, last_entry: Optional[LogEntry]) -> PresenceState:
        if last_entry is None or last_entry.action is Action.OUT:
            return PresenceState.OUTSIDE
        return PresenceState.INSIDE

    def next_action(self, last_entry: Optional[LogEntry]) -> Action:
        """
        Decide the action the next scan records.

        Args:
            last_entry (LogEntry): The member's most recent entry, if any

        Returns:
            Action: IN when the member is outside, OUT when inside
        """
        if self.current_state(last_entry) is PresenceState.OUTSIDE:
            return Action.IN
        return Action.OUT

    def record_scan(self, member: Member, action: Action, recorded_by: str) -> LogEntry:
        """
        Build the entry for a scan without persisting it. ID and timestamp
        stay pending until the backend stores the entry.
        """
        return LogEntry(
            member_id=member.id,
            action=Action(action),
            recorded_by=recorded_by
        )
