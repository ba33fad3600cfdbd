"""
Attendance Manager Module - Lab Presence Tracker
Author: LabTrack Team
Date: October 2026

This module runs the scan pipeline and answers the dashboard queries.

A scan goes through: identity resolution, the station throttle, a per-member
serialized read of the last log entry, the presence state machine, and a
conditional insert keyed on the entry that was read. Every scan ends in
exactly one outcome: accepted, throttled, unknown member, or failed.

Features:
- One scan at a time per station
- Per-member single-writer serialization plus compare-and-append insert
- Bounded waits on locks and the database
- Throttle advanced only by accepted scans
- Occupancy summary and recent activity for the admin dashboard
"""

import logging
import threading
from collections import OrderedDict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Union

from labtrack.modules.exceptions import (
    BackendUnavailable,
    ConflictingWrite,
    MemberNotFound,
    StationLimitReached,
)
from labtrack.modules.identity_resolver import IdentityResolver
from labtrack.modules.models import (
    LogEntry,
    Member,
    ScanAccepted,
    ScanFailedBackend,
    ScanRejectedThrottled,
    ScanRejectedUnknownMember,
)
from labtrack.modules.occupancy import OccupancySummarizer, OccupancySummary
from labtrack.modules.presence_state import PresenceStateMachine
from labtrack.modules.qr_generator import QRGenerator
from labtrack.modules.scan_throttle import DEFAULT_COOLDOWN_MS, ScanThrottle, monotonic_ms

ScanOutcome = Union[ScanAccepted, ScanRejectedThrottled, ScanRejectedUnknownMember, ScanFailedBackend]

DEFAULT_STATION = 'system'
DEFAULT_MAX_STATIONS = 64


class StationState:
    """Scan lock and throttle of one station."""

    def __init__(self, throttle: ScanThrottle):
        self.lock = threading.Lock()
        self.throttle = throttle
        self.users = 0


class AttendanceManager:
    """
    Scan processing and presence analytics on top of a backend.
    """

    def __init__(self, database_manager, qr_generator: Optional[QRGenerator] = None,
                 cooldown_ms: float = DEFAULT_COOLDOWN_MS, timeout: float = 5.0,
                 strict_member_check: bool = False, recent_logs_limit: int = 50,
                 throttle_clock=monotonic_ms, max_stations: int = DEFAULT_MAX_STATIONS):
        """
        Initialize the attendance manager.

        Args:
            database_manager: Backend implementing the collaborator interface
            qr_generator (QRGenerator): Payload parser used for resolution
            cooldown_ms (float): Station throttle cooldown
            timeout (float): Seconds to wait for a station or member lock
            strict_member_check (bool): Reject payloads whose member ID mismatches
            recent_logs_limit (int): Entries shown in the recent activity feed
            throttle_clock: Millisecond clock shared by station throttles
            max_stations (int): Stations tracked at once; idle ones are evicted
        """
        self.db = database_manager
        self.qr_generator = qr_generator or QRGenerator()
        self.resolver = IdentityResolver(self.db, self.qr_generator, strict_member_check)
        self.state_machine = PresenceStateMachine()
        self.summarizer = OccupancySummarizer()
        self.logger = logging.getLogger(__name__)

        self.cooldown_ms = cooldown_ms
        self.timeout = timeout
        self.recent_logs_limit = recent_logs_limit
        self.throttle_clock = throttle_clock

        self.max_stations = max_stations

        self._registry_lock = threading.Lock()
        self._stations: 'OrderedDict[str, StationState]' = OrderedDict()
        self._member_locks: Dict[str, threading.Lock] = {}

    @property
    def station_count(self) -> int:
        with self._registry_lock:
            return len(self._stations)

    def get_station_throttle(self, station: str) -> ScanThrottle:
        with self._registry_lock:
            return self._station_state(station).throttle

    def _station_state(self, station: str) -> StationState:
        # Caller holds the registry lock
        state = self._stations.get(station)
        if state is not None:
            self._stations.move_to_end(station)
            return state

        if len(self._stations) >= self.max_stations:
            self._evict_idle_station()

        state = StationState(ScanThrottle(self.cooldown_ms, self.throttle_clock))
        self._stations[station] = state
        return state

    def _evict_idle_station(self) -> None:
        """
        Drop the least recently used station that has no scan in flight and
        whose cooldown has run out. A fresh throttle for it would decide the
        same way.
        """
        for name, state in self._stations.items():
            if state.users == 0 and state.throttle.check().allowed:
                del self._stations[name]
                self.logger.debug(f"Station {name} evicted from the registry")
                return

        raise StationLimitReached(
            f"More than {self.max_stations} stations are active, try again shortly"
        )

    def _checkout_station(self, station: str) -> StationState:
        with self._registry_lock:
            state = self._station_state(station)
            state.users += 1
            return state

    def _checkin_station(self, state: StationState) -> None:
        with self._registry_lock:
            state.users -= 1

    def _lock_for(self, registry: Dict[str, threading.Lock], key: str) -> threading.Lock:
        with self._registry_lock:
            if key not in registry:
                registry[key] = threading.Lock()
            return registry[key]

    def process_scan(self, payload: str, station: str = DEFAULT_STATION) -> ScanOutcome:
        """
        Process one scan from a station.

        Args:
            payload (str): Scanned QR payload or a bare external ID
            station (str): Identifier of the scanning station

        Returns:
            ScanOutcome: Accepted, throttled, unknown member or failed
        """
        station = station or DEFAULT_STATION
        try:
            state = self._checkout_station(station)
        except StationLimitReached as e:
            self.logger.error(f"Scan at station {station} refused: {str(e)}")
            return ScanFailedBackend(str(e), error_type='station_limit')

        try:
            if not state.lock.acquire(timeout=self.timeout):
                self.logger.error(f"Station {station} busy for more than {self.timeout}s")
                return ScanFailedBackend(f"Station {station} is still processing a previous scan")

            try:
                return self._process_station_scan(payload, station, state.throttle)
            finally:
                state.lock.release()
        finally:
            self._checkin_station(state)

    def _process_station_scan(self, payload: str, station: str, throttle: ScanThrottle) -> ScanOutcome:
        try:
            member = self.resolver.resolve(payload)
        except BackendUnavailable as e:
            self.logger.error(f"Member lookup failed at station {station}: {str(e)}")
            return ScanFailedBackend(str(e))

        if member is None:
            self.logger.warning(f"Unknown member scanned at station {station}")
            return ScanRejectedUnknownMember(payload)

        now = throttle.clock()
        decision = throttle.check(now)
        if not decision.allowed:
            self.logger.info(
                f"Scan of {member.external_id} at station {station} throttled, "
                f"{decision.remaining_ms:.0f} ms remaining"
            )
            return ScanRejectedThrottled(decision.remaining_ms)

        try:
            entry = self._toggle_presence(member, station)
        except ConflictingWrite as e:
            self.logger.warning(f"Scan of {member.external_id} refused: {str(e)}")
            return ScanFailedBackend(
                'Log changed while recording the scan, please scan again',
                error_type='conflicting_write'
            )
        except MemberNotFound:
            self.logger.warning(f"Member {member.id} disappeared while recording the scan")
            return ScanRejectedUnknownMember(payload)
        except BackendUnavailable as e:
            self.logger.error(f"Recording scan of {member.external_id} failed: {str(e)}")
            return ScanFailedBackend(str(e))

        throttle.mark_success(now)
        self.logger.info(
            f"Scan recorded: {member.external_id} {entry.action.value} at station {station}"
        )
        return ScanAccepted(member=member, action=entry.action, log_entry=entry)

    def _toggle_presence(self, member: Member, station: str) -> LogEntry:
        """
        Read the last entry and append the next one while holding the
        member's lock. The insert is conditional on the entry that was read.
        """
        member_lock = self._lock_for(self._member_locks, member.id)
        if not member_lock.acquire(timeout=self.timeout):
            raise BackendUnavailable(f"Timed out waiting to record a scan for {member.external_id}")

        try:
            last_entry = self.db.get_most_recent_log_entry(member.id)
            action = self.state_machine.next_action(last_entry)
            pending = self.state_machine.record_scan(member, action, station)

            return self.db.insert_log_entry(
                pending.member_id,
                pending.action,
                pending.recorded_by,
                expected_last_entry_id=last_entry.id if last_entry else None
            )
        finally:
            member_lock.release()

    def get_member_presence(self, member: Member) -> Dict[str, Any]:
        last_entry = self.db.get_most_recent_log_entry(member.id)
        return {
            'state': self.state_machine.current_state(last_entry).value,
            'next_action': self.state_machine.next_action(last_entry).value,
            'last_entry': last_entry.to_dict() if last_entry else None
        }

    def _day_window(self, as_of: date) -> List[LogEntry]:
        return self.db.list_log_entries_between(
            as_of.isoformat(), (as_of + timedelta(days=1)).isoformat()
        )

    def get_occupancy_summary(self, as_of: Optional[date] = None) -> OccupancySummary:
        as_of = as_of or date.today()
        return self.summarizer.summarize(
            self._day_window(as_of), as_of, self.db.count_members()
        )

    def with_members(self, entries: List[LogEntry]) -> List[Dict[str, Any]]:
        """Attach member names to log entries for display."""
        members = self.db.get_members(entry.member_id for entry in entries)
        rows = []
        for entry in entries:
            row = entry.to_dict()
            member = members.get(entry.member_id)
            row['member_name'] = member.display_name if member else None
            row['external_id'] = member.external_id if member else None
            rows.append(row)
        return rows

    def get_recent_activity(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        entries = self.db.list_recent_log_entries(limit or self.recent_logs_limit)
        return self.with_members(entries)

    def get_today_activity(self, as_of: Optional[date] = None) -> List[Dict[str, Any]]:
        as_of = as_of or date.today()
        entries = self.summarizer.todays_entries(self._day_window(as_of), as_of)
        return self.with_members(list(reversed(entries)))

    def get_dashboard(self, as_of: Optional[date] = None) -> Dict[str, Any]:
        return {
            'stats': self.get_occupancy_summary(as_of).to_dict(),
            'recent_activity': self.get_recent_activity()
        }
