"""
AuditEvent data model for metadata-only records of store operations
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import uuid


@dataclass
class AuditEvent:
    """
    Represents one recorded operation against the store, without payload content

    Attributes:
        event_id: Unique identifier for the event
        timestamp: When the operation completed
        action: Operation name (push, fetch, reset, revoke, inspect, create, purge)
        entry_id: Identifier the operation targeted ("*" for all)
        outcome: "ok" or the error code of the failure
        remaining: Budget left after the operation, when known
        token: Caller-supplied fetch token, passed through untouched
        payload_size: Size of the payload moved, in bytes
    """
    event_id: str
    timestamp: datetime
    action: str
    entry_id: str
    outcome: str
    remaining: Optional[int] = None
    token: Optional[str] = None
    payload_size: int = 0

    @classmethod
    def create_new(cls, action: str, entry_id: str, outcome: str,
                   remaining: Optional[int] = None, token: Optional[str] = None,
                   payload_size: int = 0) -> 'AuditEvent':
        """Create a new AuditEvent with generated ID and timestamp"""
        return cls(
            event_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            action=action,
            entry_id=entry_id,
            outcome=outcome,
            remaining=remaining,
            token=token,
            payload_size=payload_size
        )

    def validate(self) -> bool:
        """Validate the AuditEvent instance"""
        if not self.event_id or not isinstance(self.event_id, str):
            return False
        if not isinstance(self.timestamp, datetime):
            return False
        if not self.action or not isinstance(self.action, str):
            return False
        if not self.entry_id or not isinstance(self.entry_id, str):
            return False
        if not self.outcome or not isinstance(self.outcome, str):
            return False
        if self.remaining is not None and (not isinstance(self.remaining, int) or self.remaining < 0):
            return False
        if not isinstance(self.payload_size, int) or self.payload_size < 0:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        """Create AuditEvent from dictionary"""
        return cls(
            event_id=data['event_id'],
            timestamp=datetime.fromisoformat(data['timestamp']),
            action=data['action'],
            entry_id=data['entry_id'],
            outcome=data['outcome'],
            remaining=data['remaining'],
            token=data['token'],
            payload_size=data['payload_size']
        )
