"""
Operation types for the access coordinator: admin commands, metering policy and results
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

from ..errors import UnsupportedCommandError
from .access_entry import AccessEntry


class AdminCommand(Enum):
    """Closed set of privileged registry operations"""
    RESET = "reset"
    REVOKE = "revoke"
    INSPECT = "inspect"
    CREATE = "create"

    @classmethod
    def parse(cls, name: str) -> 'AdminCommand':
        """
        Resolve a command name received at the request boundary

        Raises:
            UnsupportedCommandError: If the name is not a known command
        """
        normalized = (name or "").strip().lower()
        for command in cls:
            if command.value == normalized:
                return command
        raise UnsupportedCommandError(name)


class MeteringPolicy(Enum):
    """Which operations consume budget"""
    FETCH_ONLY = "fetch_only"
    PUSH_AND_FETCH = "push_and_fetch"

    @classmethod
    def from_flag(cls, meter_push: bool) -> 'MeteringPolicy':
        return cls.PUSH_AND_FETCH if meter_push else cls.FETCH_ONLY


@dataclass
class PushResult:
    """Outcome of a successful push"""
    entry_id: str
    size: int
    remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entry_id': self.entry_id,
            'size': self.size,
            'remaining': self.remaining
        }


@dataclass
class FetchResult:
    """Payload returned by a successful fetch, bound to the post-decrement budget and the caller's token"""
    entry_id: str
    payload: bytes
    remaining: int
    token: str

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0


@dataclass
class AdminResult:
    """
    Outcome of an admin command

    Attributes:
        command: Command that was executed
        entry_id: Target identifier, None for inspect-all
        changed: Whether the registry was modified
        entries: Entries touched or reported by the command
    """
    command: AdminCommand
    entry_id: Optional[str]
    changed: bool
    entries: List[AccessEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'command': self.command.value,
            'entry_id': self.entry_id,
            'changed': self.changed,
            'entries': [entry.to_dict() for entry in self.entries]
        }
