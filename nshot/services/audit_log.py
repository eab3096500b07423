"""
Audit log service for nshot - records operation metadata only, never payload content
"""

import sqlite3
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Dict, Any
from contextlib import contextmanager

from ..config.database import Database
from ..errors import StorageError
from ..models.audit_event import AuditEvent
from ..utils.identifiers import MAX_ENTRY_ID_LENGTH


logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 10000
DEFAULT_RETENTION_DAYS = 90


class AuditLogService:
    """
    Bounded record of push, fetch and admin operations

    Events carry the identifier, the outcome, the remaining budget and the
    caller's fetch token so a spent identifier can be traced back to the
    fetches that consumed it.

    The table keeps at most max_events rows, and cleanup_old_events() drops
    rows older than a retention window.
    """

    def __init__(self, database: Database, max_events: int = DEFAULT_MAX_EVENTS):
        """
        Initialize the audit log

        Args:
            database: Shared database handle
            max_events: Rows kept; older events are dropped as new ones arrive
        """
        if max_events <= 0:
            raise ValueError("max_events must be positive")

        self.database = database
        self.max_events = max_events
        self._init_database()

    def _init_database(self) -> None:
        """Initialize the audit_events table and indexes"""
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS audit_events (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        event_id TEXT NOT NULL UNIQUE,
                        timestamp TEXT NOT NULL,
                        action TEXT NOT NULL,
                        entry_id TEXT NOT NULL,
                        outcome TEXT NOT NULL,
                        remaining INTEGER,
                        token TEXT,
                        payload_size INTEGER NOT NULL DEFAULT 0,
                        CONSTRAINT chk_payload_size CHECK (payload_size >= 0)
                    )
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_audit_entry
                    ON audit_events(entry_id, seq DESC)
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_audit_timestamp
                    ON audit_events(timestamp)
                """)

                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize audit tables: {e}")
            raise StorageError(f"Audit log initialization failed: {e}") from e

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections"""
        with self.database.get_connection() as conn:
            yield conn

    def _row_to_event(self, row) -> AuditEvent:
        """Convert database row to AuditEvent instance"""
        return AuditEvent.from_dict(row)

    async def record(self, action: str, entry_id: str, outcome: str,
                     remaining: Optional[int] = None, token: Optional[str] = None,
                     payload_size: int = 0) -> str:
        """
        Append one event

        Args:
            action: Operation name
            entry_id: Target identifier
            outcome: "ok" or an error code
            remaining: Budget after the operation, if known
            token: Fetch token supplied by the caller
            payload_size: Bytes moved by the operation

        Returns:
            event_id of the stored event

        Raises:
            ValueError: If the event fails validation
            StorageError: If the write fails
        """
        # Identifiers and tokens come straight from request paths
        event = AuditEvent.create_new(
            action=action,
            entry_id=_clip(entry_id),
            outcome=outcome,
            remaining=remaining,
            token=_clip(token),
            payload_size=payload_size
        )
        if not event.validate():
            raise ValueError(f"Invalid audit event for {action} on {entry_id!r}")

        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO audit_events
                    (event_id, timestamp, action, entry_id, outcome, remaining, token, payload_size)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    event.event_id,
                    event.timestamp.isoformat(),
                    event.action,
                    event.entry_id,
                    event.outcome,
                    event.remaining,
                    event.token,
                    event.payload_size
                ))
                conn.execute("""
                    DELETE FROM audit_events
                    WHERE seq <= (SELECT MAX(seq) FROM audit_events) - ?
                """, (self.max_events,))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Audit write failed: {e}") from e

        return event.event_id

    async def list_events(self, entry_id: Optional[str] = None, limit: int = 100) -> List[AuditEvent]:
        """
        Get recent events, newest first

        Args:
            entry_id: Restrict to one identifier
            limit: Maximum number of events (1-1000)

        Returns:
            List of AuditEvent instances
        """
        limit = max(1, min(limit, 1000))
        try:
            with self._get_connection() as conn:
                if entry_id is None:
                    cursor = conn.execute("""
                        SELECT * FROM audit_events ORDER BY seq DESC LIMIT ?
                    """, (limit,))
                else:
                    cursor = conn.execute("""
                        SELECT * FROM audit_events WHERE entry_id = ? ORDER BY seq DESC LIMIT ?
                    """, (entry_id, limit))
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to list audit events: {e}")
            raise StorageError(f"Audit read failed: {e}") from e

        return [self._row_to_event(row) for row in rows]

    async def get_outcome_counts(self, entry_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Count events per (action, outcome)

        Returns:
            Mapping like {"fetch": {"ok": 2, "EXHAUSTED": 1}}
        """
        try:
            with self._get_connection() as conn:
                if entry_id is None:
                    cursor = conn.execute("""
                        SELECT action, outcome, COUNT(*) as n FROM audit_events
                        GROUP BY action, outcome
                    """)
                else:
                    cursor = conn.execute("""
                        SELECT action, outcome, COUNT(*) as n FROM audit_events
                        WHERE entry_id = ? GROUP BY action, outcome
                    """, (entry_id,))
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Audit read failed: {e}") from e

        counts: Dict[str, Any] = {}
        for row in rows:
            counts.setdefault(row['action'], {})[row['outcome']] = row['n']
        return counts

    async def cleanup_old_events(self, days_to_keep: int = DEFAULT_RETENTION_DAYS) -> int:
        """
        Delete events older than the retention window

        Args:
            days_to_keep: Number of days of events to retain

        Returns:
            Number of events deleted

        Raises:
            ValueError: If days_to_keep is not positive
            StorageError: If the delete fails
        """
        if days_to_keep <= 0:
            raise ValueError("Days to keep must be positive")

        cutoff = datetime.now(timezone.utc) - timedelta(days=days_to_keep)
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    DELETE FROM audit_events WHERE timestamp < ?
                """, (cutoff.isoformat(),))
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to clean up audit events: {e}")
            raise StorageError(f"Audit cleanup failed: {e}") from e

        deleted = cursor.rowcount
        if deleted > 0:
            logger.info(f"Cleaned up {deleted} audit events older than {days_to_keep} days")
        return deleted


def _clip(value: Optional[str]) -> Optional[str]:
    if value is None or len(value) <= MAX_ENTRY_ID_LENGTH:
        return value
    return value[:MAX_ENTRY_ID_LENGTH]
