"""
StoredBlob data model for opaque payloads held under an identifier
"""

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass
class StoredBlob:
    """
    Represents the payload stored for one identifier

    Attributes:
        entry_id: Identifier the payload belongs to
        payload: Opaque bytes, never interpreted by the service
        updated_at: Timestamp of the last put
    """
    entry_id: str
    payload: bytes
    updated_at: datetime

    @classmethod
    def create_new(cls, entry_id: str, payload: bytes) -> 'StoredBlob':
        """Create a new StoredBlob stamped with the current time"""
        return cls(
            entry_id=entry_id,
            payload=payload,
            updated_at=datetime.now(timezone.utc)
        )

    @property
    def size(self) -> int:
        return len(self.payload)
