"""
Identifier registry - authoritative set of identifiers and their remaining budgets
"""

import sqlite3
import logging
from typing import List, Optional, Dict, Any
from contextlib import contextmanager

from ..config.database import Database
from ..errors import NotFoundError, ExhaustedError, AlreadyExistsError, InvalidRequestError, StorageError
from ..models.access_entry import AccessEntry
from ..models.registry_snapshot import RegistrySnapshot
from ..utils.identifiers import validate_entry_id


logger = logging.getLogger(__name__)


class IdentifierRegistry:
    """
    Registry of access-limited identifiers backed by SQLite

    Every budget change is a single SQL statement committed before the
    method returns, so counters survive a restart and never go negative
    even with several writers on the same file.
    """

    def __init__(self, database: Database):
        """
        Initialize the registry

        Args:
            database: Shared database handle
        """
        self.database = database
        self._init_database()

    def _init_database(self) -> None:
        """Initialize the access_entries table"""
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS access_entries (
                        entry_id TEXT PRIMARY KEY,
                        remaining INTEGER NOT NULL,
                        budget INTEGER NOT NULL,
                        created_at TEXT NOT NULL,
                        CONSTRAINT chk_remaining CHECK (remaining >= 0),
                        CONSTRAINT chk_budget CHECK (budget > 0)
                    )
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_entries_remaining
                    ON access_entries(remaining)
                """)

                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize registry tables: {e}")
            raise StorageError(f"Registry initialization failed: {e}") from e

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections"""
        with self.database.get_connection() as conn:
            yield conn

    def _row_to_entry(self, row) -> AccessEntry:
        """Convert database row to AccessEntry instance"""
        return AccessEntry.from_dict(row)

    def lookup(self, entry_id: str) -> Optional[AccessEntry]:
        """
        Look up an identifier

        Args:
            entry_id: Identifier to look up

        Returns:
            AccessEntry if registered, None otherwise
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT * FROM access_entries WHERE entry_id = ?
                """, (entry_id,))
                row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to look up {entry_id}: {e}")
            raise StorageError(f"Lookup failed: {e}") from e

        if row is None:
            return None
        return self._row_to_entry(row)

    def decrement(self, entry_id: str) -> int:
        """
        Atomically consume one unit of an identifier's budget

        Args:
            entry_id: Identifier to charge

        Returns:
            Remaining budget after the decrement

        Raises:
            NotFoundError: If the identifier is not registered
            ExhaustedError: If the budget was already zero
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    UPDATE access_entries
                    SET remaining = remaining - 1
                    WHERE entry_id = ? AND remaining > 0
                """, (entry_id,))

                if cursor.rowcount == 0:
                    conn.rollback()
                    row = conn.execute("""
                        SELECT remaining FROM access_entries WHERE entry_id = ?
                    """, (entry_id,)).fetchone()
                    if row is None:
                        raise NotFoundError(entry_id)
                    logger.warning(f"Rejected decrement on exhausted identifier {entry_id}")
                    raise ExhaustedError(entry_id)

                # Still inside the write transaction, so this reads our own update
                row = conn.execute("""
                    SELECT remaining FROM access_entries WHERE entry_id = ?
                """, (entry_id,)).fetchone()
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to decrement {entry_id}: {e}")
            raise StorageError(f"Decrement failed: {e}") from e

        remaining = row['remaining']
        logger.debug(f"Decremented {entry_id}, {remaining} remaining")
        return remaining

    def insert(self, entry_id: str, budget: int) -> AccessEntry:
        """
        Register a new identifier with a full budget

        Args:
            entry_id: Identifier to register
            budget: Fetch budget, also the value a reset restores

        Returns:
            The stored AccessEntry

        Raises:
            InvalidRequestError: If the identifier or budget is invalid
            AlreadyExistsError: If the identifier is already registered
        """
        if not validate_entry_id(entry_id):
            raise InvalidRequestError(f"Invalid identifier: {entry_id!r}")

        entry = AccessEntry.create_new(budget=budget, entry_id=entry_id)
        if not entry.validate():
            raise InvalidRequestError(f"Budget must be a positive integer, got {budget!r}")

        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO access_entries (entry_id, remaining, budget, created_at)
                    VALUES (?, ?, ?, ?)
                """, (
                    entry.entry_id,
                    entry.remaining,
                    entry.budget,
                    entry.created_at.isoformat()
                ))
                conn.commit()
        except sqlite3.IntegrityError:
            raise AlreadyExistsError(entry_id)
        except sqlite3.Error as e:
            logger.error(f"Failed to insert {entry_id}: {e}")
            raise StorageError(f"Insert failed: {e}") from e

        logger.info(f"Registered identifier {entry_id} with budget {budget}")
        return entry

    def delete(self, entry_id: str) -> None:
        """
        Remove an identifier

        Raises:
            NotFoundError: If the identifier is not registered
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    DELETE FROM access_entries WHERE entry_id = ?
                """, (entry_id,))
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to delete {entry_id}: {e}")
            raise StorageError(f"Delete failed: {e}") from e

        if cursor.rowcount == 0:
            raise NotFoundError(entry_id)
        logger.info(f"Deleted identifier {entry_id}")

    def reset(self, entry_id: str, budget: Optional[int] = None) -> AccessEntry:
        """
        Re-arm an identifier's budget

        Args:
            entry_id: Identifier to re-arm
            budget: New budget; defaults to the identifier's original budget

        Returns:
            The updated AccessEntry

        Raises:
            InvalidRequestError: If budget is not a positive integer
            NotFoundError: If the identifier is not registered
        """
        if budget is not None and (not isinstance(budget, int) or isinstance(budget, bool) or budget <= 0):
            raise InvalidRequestError(f"Budget must be a positive integer, got {budget!r}")

        try:
            with self._get_connection() as conn:
                if budget is None:
                    cursor = conn.execute("""
                        UPDATE access_entries SET remaining = budget WHERE entry_id = ?
                    """, (entry_id,))
                else:
                    cursor = conn.execute("""
                        UPDATE access_entries SET remaining = ?, budget = ? WHERE entry_id = ?
                    """, (budget, budget, entry_id))

                if cursor.rowcount == 0:
                    conn.rollback()
                    raise NotFoundError(entry_id)

                row = conn.execute("""
                    SELECT * FROM access_entries WHERE entry_id = ?
                """, (entry_id,)).fetchone()
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to reset {entry_id}: {e}")
            raise StorageError(f"Reset failed: {e}") from e

        entry = self._row_to_entry(row)
        logger.info(f"Reset identifier {entry_id} to {entry.remaining}")
        return entry

    def list_entries(self) -> List[AccessEntry]:
        """
        List all registered identifiers

        Returns:
            AccessEntry instances ordered by creation time
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT * FROM access_entries ORDER BY created_at, entry_id
                """)
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to list identifiers: {e}")
            raise StorageError(f"Listing failed: {e}") from e

        return [self._row_to_entry(row) for row in rows]

    def list_exhausted(self) -> List[str]:
        """Return identifiers whose budget is spent"""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT entry_id FROM access_entries WHERE remaining = 0 ORDER BY entry_id
                """)
                return [row['entry_id'] for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.error(f"Failed to list exhausted identifiers: {e}")
            raise StorageError(f"Listing failed: {e}") from e

    def load_snapshot(self, snapshot: RegistrySnapshot) -> int:
        """
        Seed the registry from a provisioned snapshot

        Identifiers already present keep their current counters, so loading
        the same snapshot on every start never re-arms a spent budget.

        Args:
            snapshot: Snapshot produced by the provisioning generator

        Returns:
            Number of identifiers newly added
        """
        if not snapshot.validate():
            raise InvalidRequestError("Registry snapshot failed validation")

        created_at = snapshot.created_at.isoformat()
        try:
            with self._get_connection() as conn:
                before = conn.total_changes
                conn.executemany("""
                    INSERT OR IGNORE INTO access_entries (entry_id, remaining, budget, created_at)
                    VALUES (?, ?, ?, ?)
                """, [
                    (entry_id, snapshot.budget, snapshot.budget, created_at)
                    for entry_id in snapshot.entry_ids
                ])
                added = conn.total_changes - before
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to load registry snapshot: {e}")
            raise StorageError(f"Snapshot load failed: {e}") from e

        logger.info(f"Loaded registry snapshot: {added} new of {len(snapshot)} identifiers")
        return added

    def get_stats(self) -> Dict[str, Any]:
        """
        Get registry statistics

        Returns:
            Dictionary with registry statistics
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute("""
                    SELECT
                        COUNT(*) as total_entries,
                        COUNT(CASE WHEN remaining = 0 THEN 1 END) as exhausted_entries,
                        COALESCE(SUM(remaining), 0) as remaining_fetches
                    FROM access_entries
                """).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to read registry stats: {e}")
            raise StorageError(f"Stats failed: {e}") from e

        return {
            'total_entries': row['total_entries'],
            'exhausted_entries': row['exhausted_entries'],
            'remaining_fetches': row['remaining_fetches']
        }
