"""
Tests for the per-station scan throttle.
"""

import pytest

from labtrack.modules.scan_throttle import ScanThrottle, allow


def test_first_scan_is_allowed():
    assert allow(5000, None, 3000).allowed


def test_rejected_inside_cooldown_with_exact_remaining():
    decision = allow(now=10_500, last_successful_scan_at=10_000, cooldown_ms=3000)
    assert not decision.allowed
    assert decision.remaining_ms == 2500


def test_allowed_exactly_at_cooldown_boundary():
    assert allow(13_000, 10_000, 3000).allowed
    assert not allow(12_999, 10_000, 3000).allowed


def test_remaining_decreases_as_time_advances():
    remaining = [allow(10_000 + step, 10_000, 3000).remaining_ms for step in range(0, 3000, 500)]
    assert remaining == [3000, 2500, 2000, 1500, 1000, 500]
    assert remaining == sorted(remaining, reverse=True)


def test_zero_cooldown_never_rejects():
    assert allow(10_000, 10_000, 0).allowed


def test_station_throttle_only_moves_on_success():
    now = [0.0]
    throttle = ScanThrottle(cooldown_ms=3000, clock=lambda: now[0])

    assert throttle.check().allowed
    throttle.mark_success()

    now[0] = 1000
    decision = throttle.check()
    assert not decision.allowed
    assert decision.remaining_ms == 2000

    # A rejected check does not restart the cooldown
    now[0] = 3000
    assert throttle.check().allowed


def test_station_throttle_reset():
    throttle = ScanThrottle(cooldown_ms=3000, clock=lambda: 0.0)
    throttle.mark_success()
    throttle.reset()
    assert throttle.check().allowed


def test_negative_cooldown_rejected():
    with pytest.raises(ValueError):
        ScanThrottle(cooldown_ms=-1)
