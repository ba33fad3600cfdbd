"""
Data Models Module - Lab Presence Tracker

Plain data structures shared by the scan pipeline, the backend and the
web layer: members, log entries, the IN/OUT action and the outcomes a scan
reports back to the operator.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional


class Action(str, Enum):
    """Presence transition recorded by a log entry."""
    IN = 'IN'
    OUT = 'OUT'


class PresenceState(str, Enum):
    """Derived presence state of a member. Never stored."""
    OUTSIDE = 'OUTSIDE'
    INSIDE = 'INSIDE'


class Role(str, Enum):
    MEMBER = 'member'
    ADMIN = 'admin'


@dataclass
class Member:
    """Data class for a registered lab member."""
    id: str
    external_id: str
    first_name: str
    last_name: str
    middle_name: Optional[str] = None
    role: Role = Role.MEMBER
    qr_payload: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def display_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return ' '.join(part for part in parts if part)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Member':
        return cls(
            id=row['id'],
            external_id=row['external_id'],
            first_name=row['first_name'],
            last_name=row['last_name'],
            middle_name=row.get('middle_name'),
            role=Role(row.get('role') or Role.MEMBER.value),
            qr_payload=row.get('qr_payload'),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at')
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['role'] = self.role.value
        data['display_name'] = self.display_name
        return data


@dataclass
class LogEntry:
    """
    Data class for one recorded presence transition.

    ``id`` and ``timestamp`` are None while the entry is pending, i.e. built
    by the state machine but not yet assigned by the backend.
    """
    member_id: str
    action: Action
    recorded_by: str
    id: Optional[str] = None
    timestamp: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.id is None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'LogEntry':
        return cls(
            id=row['id'],
            member_id=row['member_id'],
            action=Action(row['action']),
            recorded_by=row['recorded_by'],
            timestamp=row['timestamp']
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'member_id': self.member_id,
            'action': self.action.value,
            'timestamp': self.timestamp,
            'recorded_by': self.recorded_by
        }


# Scan outcomes reported to the operator

@dataclass
class ScanAccepted:
    member: Member
    action: Action
    log_entry: LogEntry
    success: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        verb = 'entered' if self.action is Action.IN else 'left'
        return {
            'success': True,
            'message': f"{self.member.display_name} {verb} the lab",
            'action': self.action.value,
            'member': self.member.to_dict(),
            'log_entry': self.log_entry.to_dict()
        }


@dataclass
class ScanRejectedThrottled:
    remaining_ms: float
    success: bool = field(default=False, init=False)
    error_type: str = field(default='throttled', init=False)

    @property
    def remaining_seconds(self) -> int:
        # Whole seconds shown to the operator, rounded up
        return int(-(-self.remaining_ms // 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': False,
            'message': f"Please wait {self.remaining_seconds} seconds before scanning again",
            'error_type': self.error_type,
            'remaining_ms': self.remaining_ms
        }


@dataclass
class ScanRejectedUnknownMember:
    payload: str
    success: bool = field(default=False, init=False)
    error_type: str = field(default='unknown_member', init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': False,
            'message': 'QR code not recognized. Please register first.',
            'error_type': self.error_type
        }


@dataclass
class ScanFailedBackend:
    reason: str
    error_type: str = 'backend_unavailable'
    success: bool = field(default=False, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': False,
            'message': f"Failed to process scan: {self.reason}",
            'error_type': self.error_type
        }
