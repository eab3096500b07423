"""
Core data models for nshot
"""

from .access_entry import AccessEntry
from .stored_blob import StoredBlob
from .registry_snapshot import RegistrySnapshot
from .audit_event import AuditEvent
from .operations import AdminCommand, MeteringPolicy, PushResult, FetchResult, AdminResult

__all__ = [
    "AccessEntry",
    "StoredBlob",
    "RegistrySnapshot",
    "AuditEvent",
    "AdminCommand",
    "MeteringPolicy",
    "PushResult",
    "FetchResult",
    "AdminResult"
]
