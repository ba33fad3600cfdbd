"""
Database Manager Module - Lab Presence Tracker
Author: LabTrack Team
Date: October 2026

This module is the persistence backend of the lab tracker. It stores members
and their presence log in SQLite and exposes the collaborator interface the
scan pipeline depends on: member lookup, most-recent log entry, conditional
log insertion, counting, recent-log listing, change subscriptions and member
updates.

Features:
- Thread-local SQLite connection management
- Idempotent schema creation
- Conditional (compare-and-append) log insertion inside an immediate transaction
- Server-assigned, non-decreasing log timestamps
- Change notification on every inserted log entry
- sqlite3 errors surfaced as BackendUnavailable
"""

import logging
import os
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from labtrack.modules.exceptions import (
    BackendUnavailable,
    ConflictingWrite,
    MemberNotFound,
    MemberValidationError,
)
from labtrack.modules.models import Action, LogEntry, Member, Role
from labtrack.modules.notification_system import NotificationSystem, Subscription

# Sentinel for an unconditional insert
UNCHECKED = object()


class DatabaseManager:
    """
    SQLite-backed implementation of the lab tracker backend.
    Each thread gets its own connection; writes that must be atomic run in
    explicit transactions.
    """

    MEMBER_FIELDS = ('external_id', 'first_name', 'middle_name', 'last_name', 'role', 'qr_payload')

    def __init__(self, db_path, timeout: float = 5.0,
                 notification_system: Optional[NotificationSystem] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file
            timeout (float): Seconds to wait for a locked database
            notification_system (NotificationSystem): Receives inserted log entries
            clock: Source of server-side timestamps (naive local time)
        """
        self.db_path = str(db_path)
        self.timeout = timeout
        self.notifications = notification_system or NotificationSystem()
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()
        self._connections = []
        self._connections_lock = threading.Lock()

        directory = os.path.dirname(self.db_path)
        if self.db_path != ':memory:' and directory:
            os.makedirs(directory, exist_ok=True)

        self.initialize_database()

    def _connect(self) -> sqlite3.Connection:
        try:
            connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=self.timeout
            )
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            self.logger.error(f"Cannot open database {self.db_path}: {str(e)}")
            raise BackendUnavailable(f"Cannot open database: {e}") from e

        with self._connections_lock:
            self._connections.append(connection)
        return connection

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        Provides thread-local connections for thread safety.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = self._connect()

        connection = self._local.connection
        try:
            yield connection
        except sqlite3.IntegrityError:
            connection.rollback()
            raise
        except sqlite3.Error as e:
            connection.rollback()
            self.logger.error(f"Database operation failed: {str(e)}")
            raise BackendUnavailable(str(e)) from e
        except Exception:
            connection.rollback()
            raise

    @contextmanager
    def transaction(self, immediate: bool = False):
        """
        Context manager for database transactions with automatic rollback on error.

        Args:
            immediate (bool): Take the write lock up front (BEGIN IMMEDIATE)

        Yields:
            sqlite3.Connection: Database connection within transaction
        """
        with self.get_connection() as conn:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def initialize_database(self):
        """
        Create all tables and indexes. Safe to call repeatedly.
        """
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS members (
                    id TEXT PRIMARY KEY,
                    external_id VARCHAR(32) UNIQUE NOT NULL,
                    first_name VARCHAR(50) NOT NULL,
                    middle_name VARCHAR(50),
                    last_name VARCHAR(50) NOT NULL,
                    role VARCHAR(10) NOT NULL DEFAULT 'member',
                    qr_payload VARCHAR(255) UNIQUE,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            # seq preserves insertion order for entries sharing a timestamp
            conn.execute("""
                CREATE TABLE IF NOT EXISTS log_entries (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT UNIQUE NOT NULL,
                    member_id TEXT NOT NULL,
                    action VARCHAR(3) NOT NULL CHECK (action IN ('IN', 'OUT')),
                    timestamp TEXT NOT NULL,
                    recorded_by VARCHAR(100) NOT NULL,
                    FOREIGN KEY (member_id) REFERENCES members(id)
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_log_member ON log_entries(member_id, timestamp)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_log_timestamp ON log_entries(timestamp)")

        self.logger.info(f"Database initialized at {self.db_path}")

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        with self.get_connection() as conn:
            cursor = conn.execute(query, params or ())

            if fetch_all:
                return [dict(row) for row in cursor.fetchall()]

            row = cursor.fetchone()
            return dict(row) if row else None

    def _now(self) -> str:
        return self.clock().isoformat(timespec='microseconds')

    # Members

    def create_member(self, external_id: str, first_name: str, last_name: str,
                      middle_name: Optional[str] = None, role: Role = Role.MEMBER) -> Member:
        """
        Insert a new member.

        Raises:
            MemberValidationError: external_id already taken
        """
        member_id = uuid.uuid4().hex
        now = self._now()
        try:
            with self.transaction() as conn:
                conn.execute(
                    """INSERT INTO members (id, external_id, first_name, middle_name, last_name,
                                            role, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (member_id, external_id, first_name, middle_name, last_name,
                     Role(role).value, now, now)
                )
        except sqlite3.IntegrityError as e:
            raise MemberValidationError(f"External ID already exists: {external_id}") from e

        self.logger.info(f"Member created: {external_id} (ID: {member_id})")
        return self.get_member(member_id)

    def get_member(self, member_id: str) -> Optional[Member]:
        row = self.execute_query(
            "SELECT * FROM members WHERE id = ?", (member_id,), fetch_all=False
        )
        return Member.from_row(row) if row else None

    def get_members(self, member_ids: Iterable[str]) -> Dict[str, Member]:
        ids = list(set(member_ids))
        if not ids:
            return {}

        placeholders = ', '.join('?' for _ in ids)
        rows = self.execute_query(
            f"SELECT * FROM members WHERE id IN ({placeholders})", tuple(ids)
        )
        return {row['id']: Member.from_row(row) for row in rows}

    def find_member_by_external_id(self, external_id: str) -> Optional[Member]:
        row = self.execute_query(
            "SELECT * FROM members WHERE external_id = ?", (external_id,), fetch_all=False
        )
        return Member.from_row(row) if row else None

    def list_members(self) -> List[Member]:
        rows = self.execute_query("SELECT * FROM members ORDER BY last_name, first_name")
        return [Member.from_row(row) for row in rows]

    def count_members(self) -> int:
        result = self.execute_query("SELECT COUNT(*) AS count FROM members", fetch_all=False)
        return result['count']

    def update_member(self, member_id: str, fields: Dict[str, Any]) -> Member:
        """
        Update member columns.

        Args:
            member_id (str): Member ID
            fields (Dict[str, Any]): Columns to change; unknown keys are rejected

        Returns:
            Member: The updated member

        Raises:
            MemberNotFound: No member with this ID
            MemberValidationError: Unknown field or uniqueness violation
        """
        unknown = set(fields) - set(self.MEMBER_FIELDS)
        if unknown:
            raise MemberValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not fields:
            raise MemberValidationError('No valid fields to update')

        update_fields = []
        params = []
        for name in self.MEMBER_FIELDS:
            if name in fields:
                value = fields[name]
                if isinstance(value, Role):
                    value = value.value
                update_fields.append(f"{name} = ?")
                params.append(value)

        update_fields.append("updated_at = ?")
        params.extend([self._now(), member_id])

        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    f"UPDATE members SET {', '.join(update_fields)} WHERE id = ?", params
                )
                affected_rows = cursor.rowcount
        except sqlite3.IntegrityError as e:
            raise MemberValidationError(f"Member update rejected: {e}") from e

        if affected_rows == 0:
            raise MemberNotFound(f"Member not found: {member_id}")

        self.logger.info(f"Member {member_id} updated: {', '.join(sorted(fields))}")
        return self.get_member(member_id)

    # Log entries

    def get_most_recent_log_entry(self, member_id: str) -> Optional[LogEntry]:
        row = self.execute_query(
            """SELECT * FROM log_entries WHERE member_id = ?
               ORDER BY timestamp DESC, seq DESC LIMIT 1""",
            (member_id,),
            fetch_all=False
        )
        return LogEntry.from_row(row) if row else None

    def insert_log_entry(self, member_id: str, action: Action, recorded_by: str,
                         expected_last_entry_id=UNCHECKED) -> LogEntry:
        """
        Append a log entry for a member.

        When ``expected_last_entry_id`` is given the insert only happens if
        the member's most recent entry still has that ID (None meaning the
        member has no entries). The check and the insert share one immediate
        transaction, so no other writer can slip in between.

        Args:
            member_id (str): Owning member ID
            action (Action): IN or OUT
            recorded_by (str): Scanning station identifier
            expected_last_entry_id: Last entry ID the caller based its decision on

        Returns:
            LogEntry: The stored entry with its assigned ID and timestamp

        Raises:
            ConflictingWrite: The member's log changed since the caller read it
            MemberNotFound: The member does not exist
            BackendUnavailable: The database could not be written
        """
        action = Action(action)
        entry_id = uuid.uuid4().hex

        try:
            with self.transaction(immediate=True) as conn:
                if expected_last_entry_id is not UNCHECKED:
                    row = conn.execute(
                        """SELECT id FROM log_entries WHERE member_id = ?
                           ORDER BY timestamp DESC, seq DESC LIMIT 1""",
                        (member_id,)
                    ).fetchone()
                    actual_last_entry_id = row['id'] if row else None
                    if actual_last_entry_id != expected_last_entry_id:
                        raise ConflictingWrite(member_id, expected_last_entry_id, actual_last_entry_id)

                # Timestamps never go backwards in insertion order
                timestamp = self._now()
                latest = conn.execute("SELECT MAX(timestamp) AS latest FROM log_entries").fetchone()
                if latest['latest'] and latest['latest'] > timestamp:
                    timestamp = latest['latest']

                conn.execute(
                    """INSERT INTO log_entries (id, member_id, action, timestamp, recorded_by)
                       VALUES (?, ?, ?, ?, ?)""",
                    (entry_id, member_id, action.value, timestamp, recorded_by)
                )
        except sqlite3.IntegrityError as e:
            raise MemberNotFound(f"Member not found: {member_id}") from e

        entry = LogEntry(
            id=entry_id,
            member_id=member_id,
            action=action,
            recorded_by=recorded_by,
            timestamp=timestamp
        )
        self.logger.debug(f"Log entry {entry_id} stored: member {member_id} {action.value}")

        self.notifications.publish_log_entry(entry)
        return entry

    def list_recent_log_entries(self, limit: int = 50) -> List[LogEntry]:
        rows = self.execute_query(
            "SELECT * FROM log_entries ORDER BY timestamp DESC, seq DESC LIMIT ?",
            (limit,)
        )
        return [LogEntry.from_row(row) for row in rows]

    def list_member_log_entries(self, member_id: str, limit: int = 20) -> List[LogEntry]:
        rows = self.execute_query(
            """SELECT * FROM log_entries WHERE member_id = ?
               ORDER BY timestamp DESC, seq DESC LIMIT ?""",
            (member_id, limit)
        )
        return [LogEntry.from_row(row) for row in rows]

    def list_log_entries_between(self, start: str, end: str) -> List[LogEntry]:
        """Entries with start <= timestamp < end, oldest first."""
        rows = self.execute_query(
            """SELECT * FROM log_entries WHERE timestamp >= ? AND timestamp < ?
               ORDER BY timestamp, seq""",
            (start, end)
        )
        return [LogEntry.from_row(row) for row in rows]

    def subscribe_to_log_entry_changes(self, callback: Callable[[LogEntry], None]) -> Subscription:
        return self.notifications.subscribe(callback)

    def close_all_connections(self):
        """Close every connection opened by this manager."""
        with self._connections_lock:
            connections, self._connections = self._connections, []

        for connection in connections:
            try:
                connection.close()
            except sqlite3.Error as e:
                self.logger.error(f"Error closing connection: {str(e)}")

        if hasattr(self._local, 'connection'):
            del self._local.connection
