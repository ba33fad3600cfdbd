"""
Scan Throttle Module - Lab Presence Tracker

Debounces a station: after a successful scan, every scan on the same station
is rejected until the cooldown has elapsed, whichever badge is presented.
Only successful scans move the throttle forward.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

DEFAULT_COOLDOWN_MS = 3000


def monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass(frozen=True)
class ThrottleDecision:
    allowed: bool
    remaining_ms: float = 0

    @classmethod
    def accept(cls) -> 'ThrottleDecision':
        return cls(allowed=True)

    @classmethod
    def reject(cls, remaining_ms: float) -> 'ThrottleDecision':
        return cls(allowed=False, remaining_ms=remaining_ms)


def allow(now: float, last_successful_scan_at: Optional[float],
          cooldown_ms: float = DEFAULT_COOLDOWN_MS) -> ThrottleDecision:
    """
    Decide whether a scan at ``now`` may proceed.

    Args:
        now (float): Station clock reading in milliseconds
        last_successful_scan_at (float): Clock reading of the last successful scan
        cooldown_ms (float): Minimum gap between successful scans

    Returns:
        ThrottleDecision: Rejected iff now - last < cooldown, carrying
        cooldown - (now - last) milliseconds still to wait
    """
    if last_successful_scan_at is None:
        return ThrottleDecision.accept()

    elapsed = now - last_successful_scan_at
    if elapsed < cooldown_ms:
        return ThrottleDecision.reject(cooldown_ms - elapsed)
    return ThrottleDecision.accept()


class ScanThrottle:
    """
    Per-station throttle state: the instant of the last successful scan.
    """

    def __init__(self, cooldown_ms: float = DEFAULT_COOLDOWN_MS,
                 clock: Callable[[], float] = monotonic_ms):
        if cooldown_ms < 0:
            raise ValueError('cooldown_ms must not be negative')

        self.cooldown_ms = cooldown_ms
        self.clock = clock
        self.last_successful_scan_at: Optional[float] = None
        self._lock = threading.Lock()

    def check(self, now: Optional[float] = None) -> ThrottleDecision:
        if now is None:
            now = self.clock()
        with self._lock:
            return allow(now, self.last_successful_scan_at, self.cooldown_ms)

    def mark_success(self, now: Optional[float] = None) -> None:
        if now is None:
            now = self.clock()
        with self._lock:
            self.last_successful_scan_at = now

    def reset(self) -> None:
        with self._lock:
            self.last_successful_scan_at = None
