"""
Tests for the SQLite backend.
"""

from datetime import datetime

import pytest

from labtrack.modules.database_manager import DatabaseManager
from labtrack.modules.exceptions import (
    BackendUnavailable,
    ConflictingWrite,
    MemberNotFound,
    MemberValidationError,
)
from labtrack.modules.models import Action, Role


def test_create_and_find_member(db):
    member = db.create_member('STU001', 'Alice', 'Reyes', middle_name='M', role=Role.ADMIN)

    found = db.find_member_by_external_id('STU001')
    assert found == member
    assert found.role is Role.ADMIN
    assert found.display_name == 'Alice M Reyes'
    assert db.get_member(member.id) == member
    assert db.count_members() == 1


def test_duplicate_external_id_rejected(db):
    db.create_member('STU001', 'Alice', 'Reyes')
    with pytest.raises(MemberValidationError):
        db.create_member('STU001', 'Other', 'Person')


def test_initialize_is_idempotent(db):
    db.create_member('STU001', 'Alice', 'Reyes')
    db.initialize_database()
    assert db.count_members() == 1


def test_unconditional_insert_and_most_recent(db, alice):
    assert db.get_most_recent_log_entry(alice.id) is None

    first = db.insert_log_entry(alice.id, Action.IN, 'desk')
    second = db.insert_log_entry(alice.id, Action.OUT, 'desk')

    assert first.id != second.id
    assert db.get_most_recent_log_entry(alice.id) == second


def test_conditional_insert_detects_stale_read(db, alice):
    # Two stations both read "no entries yet"
    stale = None
    db.insert_log_entry(alice.id, Action.IN, 'station-a', expected_last_entry_id=stale)

    with pytest.raises(ConflictingWrite) as excinfo:
        db.insert_log_entry(alice.id, Action.IN, 'station-b', expected_last_entry_id=stale)

    assert excinfo.value.expected_last_entry_id is None
    assert len(db.list_member_log_entries(alice.id)) == 1


def test_conditional_insert_succeeds_on_fresh_read(db, alice):
    first = db.insert_log_entry(alice.id, Action.IN, 'desk', expected_last_entry_id=None)
    second = db.insert_log_entry(alice.id, Action.OUT, 'desk', expected_last_entry_id=first.id)
    assert db.get_most_recent_log_entry(alice.id).id == second.id


def test_insert_for_unknown_member(db):
    with pytest.raises(MemberNotFound):
        db.insert_log_entry('missing', Action.IN, 'desk')


def test_timestamps_never_go_backwards(tmp_path, notifications):
    readings = iter([
        datetime(2026, 10, 17, 8, 0, 0),   # member created
        datetime(2026, 10, 17, 10, 0, 5),
        datetime(2026, 10, 17, 10, 0, 1),  # clock stepped back
    ])
    db = DatabaseManager(str(tmp_path / 'clock.db'), notification_system=notifications,
                         clock=lambda: next(readings))
    try:
        member = db.create_member('STU001', 'Alice', 'Reyes')
        first = db.insert_log_entry(member.id, Action.IN, 'desk')
        second = db.insert_log_entry(member.id, Action.OUT, 'desk')

        assert second.timestamp == first.timestamp
        # Insertion order breaks the tie
        assert db.get_most_recent_log_entry(member.id).id == second.id
    finally:
        db.close_all_connections()


def test_recent_entries_newest_first(db, alice, bob):
    db.insert_log_entry(alice.id, Action.IN, 'desk')
    db.insert_log_entry(bob.id, Action.IN, 'desk')
    db.insert_log_entry(alice.id, Action.OUT, 'desk')

    recent = db.list_recent_log_entries(2)

    assert [(e.member_id, e.action) for e in recent] == [(alice.id, Action.OUT), (bob.id, Action.IN)]
    assert len(db.list_member_log_entries(alice.id, limit=20)) == 2


def test_entries_between(db, alice):
    db.insert_log_entry(alice.id, Action.IN, 'desk')

    assert len(db.list_log_entries_between('2026-10-17', '2026-10-18')) == 1
    assert db.list_log_entries_between('2026-10-18', '2026-10-19') == []


def test_update_member(db, alice):
    updated = db.update_member(alice.id, {'first_name': 'Alicia', 'role': Role.ADMIN})

    assert updated.first_name == 'Alicia'
    assert updated.role is Role.ADMIN
    assert updated.updated_at > alice.updated_at


def test_update_member_errors(db, alice, bob):
    with pytest.raises(MemberNotFound):
        db.update_member('missing', {'first_name': 'X'})
    with pytest.raises(MemberValidationError):
        db.update_member(alice.id, {'password': 'x'})
    with pytest.raises(MemberValidationError):
        db.update_member(alice.id, {'external_id': bob.external_id})


def test_insert_notifies_subscribers(db, alice):
    received = []
    with db.subscribe_to_log_entry_changes(received.append):
        entry = db.insert_log_entry(alice.id, Action.IN, 'desk')

    db.insert_log_entry(alice.id, Action.OUT, 'desk')

    assert received == [entry]


def test_failed_insert_does_not_notify(db, alice):
    received = []
    with db.subscribe_to_log_entry_changes(received.append):
        with pytest.raises(ConflictingWrite):
            db.insert_log_entry(alice.id, Action.IN, 'desk', expected_last_entry_id='nope')

    assert received == []


def test_unreachable_database(tmp_path):
    with pytest.raises(BackendUnavailable):
        DatabaseManager(str(tmp_path))
