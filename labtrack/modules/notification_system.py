"""
Notification System Module - Lab Presence Tracker
Author: LabTrack Team
Date: October 2026

This module pushes log-entry changes to interested listeners such as the
admin dashboard's live feed. Listeners subscribe with a callback and get back
a Subscription handle that must be torn down explicitly, either by calling
``unsubscribe()`` or by using it as a context manager.

Features:
- Subscribe/unsubscribe lifecycle with guaranteed teardown
- Synchronous fan-out of inserted log entries
- Operator-facing notification rendering with Jinja2 templates
"""

import itertools
import logging
import threading
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from jinja2 import Template

from labtrack.modules.models import Action, LogEntry, Member

LogEntryCallback = Callable[[LogEntry], None]


@dataclass
class NotificationData:
    """Data structure for notification information."""
    id: str
    type: str
    title: str
    message: str
    severity: str
    data: Dict[str, Any]
    created_at: str


class Subscription:
    """Handle for one registered listener."""

    def __init__(self, notifier: 'NotificationSystem', subscription_id: int,
                 callback: LogEntryCallback):
        self._notifier = notifier
        self.id = subscription_id
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._notifier._remove(self.id)
            self.active = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()
        return False


class NotificationSystem:
    """
    Registry of log-entry listeners.
    Callbacks run on the thread that published the entry.
    """

    ENTRY_TEMPLATE = "{{ member.display_name }} - {{ 'Entered' if action == 'IN' else 'Left' }} lab"
    TITLE_TEMPLATE = "{{ 'Entry' if action == 'IN' else 'Exit' }} Recorded"

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._subscriptions: Dict[int, Subscription] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

        self.templates = {
            'title': Template(self.TITLE_TEMPLATE),
            'message': Template(self.ENTRY_TEMPLATE)
        }

    def subscribe(self, callback: LogEntryCallback) -> Subscription:
        """
        Register a callback for every inserted log entry.

        Args:
            callback: Called with the stored LogEntry

        Returns:
            Subscription: Handle used to cancel the subscription
        """
        with self._lock:
            subscription = Subscription(self, next(self._ids), callback)
            self._subscriptions[subscription.id] = subscription

        self.logger.debug(f"Log entry subscription {subscription.id} opened")
        return subscription

    def _remove(self, subscription_id: int) -> None:
        with self._lock:
            self._subscriptions.pop(subscription_id, None)
        self.logger.debug(f"Log entry subscription {subscription_id} closed")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish_log_entry(self, entry: LogEntry) -> int:
        """
        Deliver a stored entry to all current subscribers.

        A failing subscriber is logged and does not affect the others or the
        scan that produced the entry.

        Returns:
            int: Number of subscribers that received the entry
        """
        with self._lock:
            subscriptions = list(self._subscriptions.values())

        delivered = 0
        for subscription in subscriptions:
            try:
                subscription.callback(entry)
                delivered += 1
            except Exception:
                self.logger.exception(
                    f"Log entry subscriber {subscription.id} failed for entry {entry.id}"
                )

        return delivered

    def build_scan_notification(self, member: Member, entry: LogEntry,
                                created_at: Optional[str] = None) -> NotificationData:
        """Render the notification shown to operators for a recorded scan."""
        context = {'member': member, 'action': entry.action.value}
        return NotificationData(
            id=f"scan_{entry.id}",
            type='scan_recorded',
            title=self.templates['title'].render(**context),
            message=self.templates['message'].render(**context),
            severity='success' if entry.action is Action.IN else 'info',
            data={'member': member.to_dict(), 'log_entry': entry.to_dict()},
            created_at=created_at or datetime.now().isoformat()
        )

    @staticmethod
    def notification_to_dict(notification: NotificationData) -> Dict[str, Any]:
        return asdict(notification)
