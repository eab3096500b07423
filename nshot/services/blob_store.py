"""
Blob store - durable mapping from identifier to opaque payload bytes
"""

import sqlite3
import logging
from datetime import datetime
from typing import Optional, Dict, Any
from contextlib import contextmanager

from ..config.database import Database
from ..config.settings import DEFAULT_MAX_PAYLOAD_BYTES
from ..errors import PayloadTooLargeError, InvalidRequestError, StorageError
from ..models.stored_blob import StoredBlob
from ..utils.locks import KeyedLocks


logger = logging.getLogger(__name__)


class BlobStore:
    """
    Durable payload storage

    Each put/get/delete runs under the identifier's lock and commits before
    returning. Different identifiers never share a lock.
    """

    def __init__(self, database: Database, max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES):
        """
        Initialize the blob store

        Args:
            database: Shared database handle
            max_payload_bytes: Largest payload accepted by put
        """
        self.database = database
        self.max_payload_bytes = max_payload_bytes
        self._locks = KeyedLocks(timeout=database.timeout)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize the stored_blobs table"""
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS stored_blobs (
                        entry_id TEXT PRIMARY KEY,
                        payload BLOB NOT NULL,
                        size INTEGER NOT NULL,
                        updated_at TEXT NOT NULL,
                        CONSTRAINT chk_size CHECK (size >= 0)
                    )
                """)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize blob tables: {e}")
            raise StorageError(f"Blob store initialization failed: {e}") from e

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections"""
        with self.database.get_connection() as conn:
            yield conn

    def put(self, entry_id: str, payload: bytes) -> StoredBlob:
        """
        Store a payload, replacing any previous one for the identifier

        Args:
            entry_id: Identifier the payload belongs to
            payload: Opaque bytes

        Returns:
            The stored blob

        Raises:
            InvalidRequestError: If payload is not bytes
            PayloadTooLargeError: If payload exceeds the size cap
        """
        if not isinstance(payload, (bytes, bytearray)):
            raise InvalidRequestError("Payload must be bytes")
        if len(payload) > self.max_payload_bytes:
            raise PayloadTooLargeError(entry_id, len(payload), self.max_payload_bytes)

        blob = StoredBlob.create_new(entry_id, bytes(payload))
        with self._locks.hold(entry_id):
            try:
                with self._get_connection() as conn:
                    conn.execute("""
                        INSERT OR REPLACE INTO stored_blobs (entry_id, payload, size, updated_at)
                        VALUES (?, ?, ?, ?)
                    """, (
                        blob.entry_id,
                        sqlite3.Binary(blob.payload),
                        blob.size,
                        blob.updated_at.isoformat()
                    ))
                    conn.commit()
            except sqlite3.Error as e:
                logger.error(f"Failed to store payload for {entry_id}: {e}")
                raise StorageError(f"Put failed: {e}") from e

        logger.debug(f"Stored {blob.size} bytes for {entry_id}")
        return blob

    def get_blob(self, entry_id: str) -> Optional[StoredBlob]:
        """
        Read the stored blob for an identifier

        Returns:
            StoredBlob if present, None otherwise
        """
        with self._locks.hold(entry_id):
            try:
                with self._get_connection() as conn:
                    row = conn.execute("""
                        SELECT entry_id, payload, updated_at FROM stored_blobs WHERE entry_id = ?
                    """, (entry_id,)).fetchone()
            except sqlite3.Error as e:
                logger.error(f"Failed to read payload for {entry_id}: {e}")
                raise StorageError(f"Get failed: {e}") from e

        if row is None:
            return None
        return StoredBlob(
            entry_id=row['entry_id'],
            payload=bytes(row['payload']),
            updated_at=datetime.fromisoformat(row['updated_at'])
        )

    def get(self, entry_id: str) -> Optional[bytes]:
        """Read the payload for an identifier, None if nothing is stored"""
        blob = self.get_blob(entry_id)
        return blob.payload if blob is not None else None

    def delete(self, entry_id: str) -> bool:
        """
        Delete the payload for an identifier; a missing payload is not an error

        Returns:
            True if a payload was removed, False otherwise
        """
        with self._locks.hold(entry_id):
            try:
                with self._get_connection() as conn:
                    cursor = conn.execute("""
                        DELETE FROM stored_blobs WHERE entry_id = ?
                    """, (entry_id,))
                    conn.commit()
            except sqlite3.Error as e:
                logger.error(f"Failed to delete payload for {entry_id}: {e}")
                raise StorageError(f"Delete failed: {e}") from e

        deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Deleted payload for {entry_id}")
        return deleted

    def get_stats(self) -> Dict[str, Any]:
        """
        Get storage statistics

        Returns:
            Dictionary with storage statistics
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute("""
                    SELECT COUNT(*) as total_blobs, COALESCE(SUM(size), 0) as total_bytes
                    FROM stored_blobs
                """).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Stats failed: {e}") from e

        return {
            'total_blobs': row['total_blobs'],
            'total_bytes': row['total_bytes'],
            'max_payload_bytes': self.max_payload_bytes
        }
