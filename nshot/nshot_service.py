"""
Main NShotService class - builds and owns the registry, blob store, audit log and coordinator
"""

import logging
from dataclasses import replace
from typing import Dict, Any, Optional, List

from .config.database import Database
from .config.settings import Settings, load_settings
from .models.audit_event import AuditEvent
from .models.operations import AdminCommand, AdminResult, FetchResult, MeteringPolicy, PushResult
from .models.registry_snapshot import RegistrySnapshot
from .services.access_coordinator import AccessCoordinator
from .services.audit_log import AuditLogService
from .services.blob_store import BlobStore
from .services.identifier_registry import IdentifierRegistry
from .services.provisioning import read_snapshot


logger = logging.getLogger(__name__)


class NShotService:
    """
    Process-lifetime owner of the access-counted store

    Construct once at startup and pass the instance into every request
    handler; call close() at exit.
    """

    def __init__(self, snapshot: RegistrySnapshot, settings: Optional[Settings] = None):
        """
        Open the store and seed it from a snapshot

        Args:
            snapshot: Provisioned identifiers; existing counters are kept
            settings: Runtime settings (loaded from the environment if None)

        Raises:
            StorageError: If the database cannot be opened or initialized
        """
        self.settings = settings or load_settings()
        self.snapshot = snapshot

        self.database = Database(self.settings.db_path, timeout=self.settings.db_timeout)
        self.registry = IdentifierRegistry(self.database)
        self.blob_store = BlobStore(self.database, max_payload_bytes=self.settings.max_payload_bytes)
        self.audit_log = AuditLogService(self.database, max_events=self.settings.audit_max_events)
        self.coordinator = AccessCoordinator(
            registry=self.registry,
            blob_store=self.blob_store,
            audit_log=self.audit_log,
            default_budget=snapshot.budget,
            metering=MeteringPolicy.from_flag(self.settings.meter_push),
            purge_on_exhaust=self.settings.purge_exhausted,
            lock_timeout=self.settings.db_timeout
        )

        added = self.registry.load_snapshot(snapshot)
        self._closed = False
        logger.info(f"NShotService ready: {len(snapshot)} identifiers in snapshot, {added} newly registered, "
                    f"database {self.settings.db_path}")

    @classmethod
    def open(cls, config_path: str, db_path: Optional[str] = None,
             settings: Optional[Settings] = None) -> 'NShotService':
        """
        Build the service from a snapshot file and a store path

        Args:
            config_path: Registry snapshot written by the provisioning generator
            db_path: SQLite file; overrides settings.db_path when given
            settings: Runtime settings (loaded from the environment if None)

        Raises:
            ConfigurationError: If the snapshot cannot be read
            StorageError: If the database cannot be opened
        """
        settings = replace(settings or load_settings(), config_path=config_path)
        if db_path:
            settings = replace(settings, db_path=db_path)
        snapshot = read_snapshot(config_path)
        return cls(snapshot, settings)

    async def push(self, entry_id: str, payload: bytes) -> PushResult:
        """Store a payload under a registered identifier"""
        return await self.coordinator.push(entry_id, payload)

    async def fetch(self, entry_id: str, token: str) -> FetchResult:
        """Read a payload, consuming one unit of budget"""
        return await self.coordinator.fetch(entry_id, token)

    async def admin(self, command: AdminCommand, argument: Optional[str] = None) -> AdminResult:
        """Run a privileged registry operation"""
        return await self.coordinator.admin(command, argument)

    async def list_events(self, entry_id: Optional[str] = None, limit: int = 100) -> List[AuditEvent]:
        """Return recent audit events"""
        return await self.coordinator.audit_trail(entry_id=entry_id, limit=limit)

    async def purge_exhausted(self) -> int:
        """Delete the payloads of exhausted identifiers, returning how many went"""
        return await self.coordinator.purge_exhausted()

    async def cleanup_audit(self) -> int:
        """Drop audit events older than the configured retention window"""
        return await self.audit_log.cleanup_old_events(self.settings.audit_retention_days)

    async def get_outcome_counts(self, entry_id: Optional[str] = None) -> Dict[str, Any]:
        """Audit event counts per action and outcome"""
        return await self.audit_log.get_outcome_counts(entry_id=entry_id)

    def get_stats(self) -> Dict[str, Any]:
        """Combined registry and storage statistics"""
        stats = {'database_path': self.settings.db_path, 'budget': self.snapshot.budget}
        stats.update(self.registry.get_stats())
        stats.update(self.blob_store.get_stats())
        return stats

    async def close(self) -> None:
        """Mark the service closed; every write is already committed"""
        if self._closed:
            return
        self._closed = True
        logger.info("NShotService closed")
