"""
Database configuration for nshot
One SQLite file holds the registry, the blob store and the audit log
"""

import os
import sqlite3
import logging
from contextlib import contextmanager
from typing import Generator

from ..errors import StorageError

logger = logging.getLogger(__name__)


class Database:
    """SQLite database handle shared by the nshot services"""

    def __init__(self, db_path: str, timeout: float = 5.0):
        """
        Open (and create if needed) the database file

        Args:
            db_path: Path to the SQLite file
            timeout: Seconds a connection waits for a competing writer

        Raises:
            StorageError: If the file cannot be opened or configured
        """
        if not db_path or db_path == ":memory:":
            raise StorageError("A file path is required; in-memory databases do not survive a restart")

        self.db_path = db_path
        self.timeout = timeout
        self._init_database()

    def _init_database(self) -> None:
        """Create the parent directory and switch the file to WAL journaling"""
        parent = os.path.dirname(os.path.abspath(self.db_path))
        try:
            os.makedirs(parent, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
            try:
                # journal_mode is persistent, set once per file
                mode = conn.execute("PRAGMA journal_mode=WAL").fetchone()[0]
                conn.execute("SELECT 1").fetchone()
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Failed to open database at {self.db_path}: {e}")
            raise StorageError(f"Cannot open database at {self.db_path}: {e}") from e

        logger.info(f"Opened database at {self.db_path} (journal_mode={mode})")

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for one database connection"""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row  # Enable column access by name
        conn.execute("PRAGMA synchronous = FULL")
        try:
            yield conn
        finally:
            conn.close()
