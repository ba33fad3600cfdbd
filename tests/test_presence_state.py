"""
Tests for IN/OUT inference from the last log entry.
"""

from labtrack.modules.models import Action, LogEntry, Member, PresenceState
from labtrack.modules.presence_state import PresenceStateMachine


def _entry(action):
    return LogEntry(member_id='m1', action=action, recorded_by='desk', id='e1',
                    timestamp='2026-10-17T09:00:00.000000')


def test_no_history_means_outside_and_next_in():
    machine = PresenceStateMachine()
    assert machine.current_state(None) is PresenceState.OUTSIDE
    assert machine.next_action(None) is Action.IN


def test_last_out_means_next_in():
    machine = PresenceStateMachine()
    assert machine.current_state(_entry(Action.OUT)) is PresenceState.OUTSIDE
    assert machine.next_action(_entry(Action.OUT)) is Action.IN


def test_last_in_means_next_out():
    machine = PresenceStateMachine()
    assert machine.current_state(_entry(Action.IN)) is PresenceState.INSIDE
    assert machine.next_action(_entry(Action.IN)) is Action.OUT


def test_repeated_toggles_alternate_starting_with_in():
    machine = PresenceStateMachine()
    member = Member(id='m1', external_id='STU001', first_name='A', last_name='B')

    last = None
    actions = []
    for i in range(6):
        action = machine.next_action(last)
        last = machine.record_scan(member, action, 'desk')
        last.id = f"e{i}"
        actions.append(action)

    assert actions == [Action.IN, Action.OUT] * 3


def test_record_scan_builds_pending_entry():
    machine = PresenceStateMachine()
    member = Member(id='m1', external_id='STU001', first_name='A', last_name='B')

    entry = machine.record_scan(member, Action.IN, 'front-door')

    assert entry.member_id == 'm1'
    assert entry.action is Action.IN
    assert entry.recorded_by == 'front-door'
    assert entry.is_pending
    assert entry.timestamp is None
