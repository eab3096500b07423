"""
Core services for nshot
"""

from .identifier_registry import IdentifierRegistry
from .blob_store import BlobStore
from .audit_log import AuditLogService
from .access_coordinator import AccessCoordinator
from .provisioning import generate, write_snapshot, read_snapshot

__all__ = ['IdentifierRegistry', 'BlobStore', 'AuditLogService', 'AccessCoordinator',
           'generate', 'write_snapshot', 'read_snapshot']
