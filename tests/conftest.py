"""
Shared fixtures for the lab tracker tests.
"""

from datetime import datetime, timedelta

import pytest

from labtrack.modules.attendance_manager import AttendanceManager
from labtrack.modules.database_manager import DatabaseManager
from labtrack.modules.member_manager import MemberManager
from labtrack.modules.notification_system import NotificationSystem
from labtrack.modules.qr_generator import QRGenerator


class SteppingClock:
    """Datetime clock that advances a fixed step on every reading."""

    def __init__(self, start=datetime(2026, 10, 17, 9, 0, 0), step=timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current += self.step
        return value


class ManualClock:
    """Millisecond clock moved by hand."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def db_clock():
    return SteppingClock()


@pytest.fixture
def notifications():
    return NotificationSystem()


@pytest.fixture
def db(tmp_path, db_clock, notifications):
    manager = DatabaseManager(
        str(tmp_path / 'labtrack.db'),
        timeout=2.0,
        notification_system=notifications,
        clock=db_clock
    )
    yield manager
    manager.close_all_connections()


@pytest.fixture
def qr_generator():
    return QRGenerator()


@pytest.fixture
def station_clock():
    return ManualClock(now=1_000_000.0)


@pytest.fixture
def attendance(db, qr_generator, station_clock):
    return AttendanceManager(
        db,
        qr_generator,
        cooldown_ms=3000,
        timeout=2.0,
        throttle_clock=station_clock
    )


@pytest.fixture
def members(db, qr_generator):
    return MemberManager(db, qr_generator)


@pytest.fixture
def alice(members):
    return members.create_member({
        'external_id': 'STU001',
        'first_name': 'Alice',
        'last_name': 'Reyes'
    })


@pytest.fixture
def bob(members):
    return members.create_member({
        'external_id': 'STU002',
        'first_name': 'Bob',
        'middle_name': 'Jose',
        'last_name': 'Cruz'
    })
