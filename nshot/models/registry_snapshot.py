"""
RegistrySnapshot data model: the persisted set of provisioned identifiers
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Union

from ..errors import ConfigurationError
from ..utils.identifiers import validate_entry_id


SNAPSHOT_VERSION = 1


@dataclass
class RegistrySnapshot:
    """
    Represents a batch of identifiers provisioned together

    Attributes:
        budget: Per-identifier fetch budget the batch was generated with
        entry_ids: Identifiers in generation order, all unique
        created_at: Timestamp when the batch was generated
    """
    budget: int
    entry_ids: List[str]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def validate(self) -> bool:
        """Validate the RegistrySnapshot instance"""
        if not isinstance(self.budget, int) or isinstance(self.budget, bool) or self.budget <= 0:
            return False
        if not isinstance(self.entry_ids, list):
            return False
        if not all(validate_entry_id(entry_id) for entry_id in self.entry_ids):
            return False
        if len(set(self.entry_ids)) != len(self.entry_ids):
            return False
        if not isinstance(self.created_at, datetime):
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'version': SNAPSHOT_VERSION,
            'budget': self.budget,
            'created_at': self.created_at.isoformat(),
            'entry_ids': list(self.entry_ids)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RegistrySnapshot':
        """
        Create RegistrySnapshot from dictionary

        Raises:
            ConfigurationError: If required fields are missing or the snapshot is invalid
        """
        try:
            snapshot = cls(
                budget=data['budget'],
                entry_ids=list(data['entry_ids']),
                created_at=datetime.fromisoformat(data['created_at'])
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed registry snapshot: {e}") from e

        if not snapshot.validate():
            raise ConfigurationError("Registry snapshot failed validation (bad budget or duplicate identifiers)")
        return snapshot

    def save(self, path: Union[str, Path]) -> Path:
        """Write the snapshot as JSON, replacing the destination atomically"""
        path = Path(path)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        tmp_path.replace(path)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'RegistrySnapshot':
        """
        Read a snapshot written by save()

        Raises:
            ConfigurationError: If the file is unreadable or malformed
        """
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read registry snapshot {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Registry snapshot {path} must contain a JSON object")
        return cls.from_dict(raw)

    def __len__(self) -> int:
        return len(self.entry_ids)
