"""
AccessEntry data model for identifiers and their remaining fetch budget
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import uuid


@dataclass
class AccessEntry:
    """
    Represents one access-limited identifier

    Attributes:
        entry_id: Opaque unique identifier handed to a client
        remaining: Number of fetches still permitted, never negative
        budget: Originally configured budget, restored by a reset
        created_at: Timestamp when the identifier was registered
    """
    entry_id: str
    remaining: int
    budget: int
    created_at: datetime

    @classmethod
    def create_new(cls, budget: int, entry_id: Optional[str] = None) -> 'AccessEntry':
        """Create a new AccessEntry with a full budget and a generated ID if none is given"""
        return cls(
            entry_id=entry_id or str(uuid.uuid4()),
            remaining=budget,
            budget=budget,
            created_at=datetime.now(timezone.utc)
        )

    def validate(self) -> bool:
        """Validate the AccessEntry instance"""
        if not self.entry_id or not isinstance(self.entry_id, str):
            return False
        if not isinstance(self.budget, int) or isinstance(self.budget, bool) or self.budget <= 0:
            return False
        if not isinstance(self.remaining, int) or self.remaining < 0:
            return False
        if not isinstance(self.created_at, datetime):
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat()
        data['exhausted'] = self.is_exhausted()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AccessEntry':
        """Create AccessEntry from dictionary"""
        return cls(
            entry_id=data['entry_id'],
            remaining=data['remaining'],
            budget=data['budget'],
            created_at=datetime.fromisoformat(data['created_at'])
        )

    def is_exhausted(self) -> bool:
        """Check whether the budget is spent"""
        return self.remaining == 0
