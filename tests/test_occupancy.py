"""
Tests for the daily occupancy summary.
"""

from datetime import date

from labtrack.modules.models import Action, LogEntry
from labtrack.modules.occupancy import OccupancySummarizer

DAY = date(2026, 10, 17)


def _entry(action, timestamp, member_id='m1'):
    return LogEntry(member_id=member_id, action=action, recorded_by='desk',
                    id=f"{member_id}-{timestamp}", timestamp=timestamp)


def test_empty_logs_give_zero_counts():
    summary = OccupancySummarizer().summarize([], DAY, total_members=12)

    assert summary.today_entries == 0
    assert summary.today_exits == 0
    assert summary.currently_present_estimate == 0
    assert summary.total_members == 12


def test_in_out_in_same_day():
    logs = [
        _entry(Action.IN, '2026-10-17T08:00:00.000000'),
        _entry(Action.OUT, '2026-10-17T10:00:00.000000'),
        _entry(Action.IN, '2026-10-17T13:00:00.000000'),
    ]

    summary = OccupancySummarizer().summarize(logs, DAY, total_members=3)

    assert summary.today_entries == 2
    assert summary.today_exits == 1
    assert summary.currently_present_estimate == 1
    assert summary.date == '2026-10-17'


def test_other_days_are_ignored():
    logs = [
        _entry(Action.IN, '2026-10-16T17:00:00.000000'),
        _entry(Action.OUT, '2026-10-17T08:30:00.000000'),
        _entry(Action.IN, '2026-10-18T08:00:00.000000'),
    ]

    summary = OccupancySummarizer().summarize(logs, DAY)

    assert summary.today_entries == 0
    assert summary.today_exits == 1


def test_estimate_never_negative():
    # Someone who came in yesterday leaves today: known undercount
    logs = [_entry(Action.OUT, '2026-10-17T08:30:00.000000')]

    summary = OccupancySummarizer().summarize(logs, DAY)

    assert summary.currently_present_estimate == 0


def test_todays_entries_filter_keeps_order():
    logs = [
        _entry(Action.IN, '2026-10-17T08:00:00.000000', 'a'),
        _entry(Action.IN, '2026-10-16T08:00:00.000000', 'b'),
        _entry(Action.OUT, '2026-10-17 09:00:00', 'a'),
    ]

    todays = OccupancySummarizer().todays_entries(logs, DAY)

    assert [entry.member_id for entry in todays] == ['a', 'a']


def test_summary_to_dict():
    summary = OccupancySummarizer().summarize([], DAY, total_members=1)
    assert summary.to_dict() == {
        'date': '2026-10-17',
        'today_entries': 0,
        'today_exits': 0,
        'currently_present_estimate': 0,
        'total_members': 1
    }
