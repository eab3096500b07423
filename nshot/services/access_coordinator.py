"""
Access coordinator for nshot - ties registry budget checks to blob store operations
"""

import logging
from typing import List, Optional

from ..errors import NShotError, NotFoundError, ExhaustedError, InvalidRequestError, PayloadTooLargeError, StorageError
from ..models.audit_event import AuditEvent
from ..models.operations import AdminCommand, AdminResult, FetchResult, MeteringPolicy, PushResult
from ..utils.identifiers import INSPECT_ALL_ALIASES, generate_entry_id
from ..utils.locks import KeyedLocks
from .audit_log import AuditLogService
from .blob_store import BlobStore
from .identifier_registry import IdentifierRegistry


logger = logging.getLogger(__name__)


class AccessCoordinator:
    """
    Transactional layer over the identifier registry and the blob store

    Every operation on an identifier runs under that identifier's lock, so a
    fetch's budget check, decrement and read are indivisible with respect to
    other pushes, fetches and revokes on the same identifier. Nothing is
    cached between calls.

    The async methods run their sqlite statements and lock waits inline on
    the calling thread, so a contended identifier blocks the event loop for
    up to lock_timeout seconds.
    """

    def __init__(self, registry: IdentifierRegistry, blob_store: BlobStore,
                 audit_log: Optional[AuditLogService] = None,
                 default_budget: int = 1,
                 metering: MeteringPolicy = MeteringPolicy.FETCH_ONLY,
                 purge_on_exhaust: bool = False,
                 lock_timeout: float = 5.0):
        """
        Initialize the coordinator

        Args:
            registry: Identifier registry
            blob_store: Payload store
            audit_log: Audit log service (events are skipped if None)
            default_budget: Budget given to identifiers created by the admin create command
            metering: Which operations consume budget
            purge_on_exhaust: Delete the payload when a fetch spends the last unit
            lock_timeout: Seconds to wait for an identifier's lock
        """
        if default_budget <= 0:
            raise ValueError("default_budget must be a positive integer")

        self.registry = registry
        self.blob_store = blob_store
        self.audit_log = audit_log
        self.default_budget = default_budget
        self.metering = metering
        self.purge_on_exhaust = purge_on_exhaust
        self._locks = KeyedLocks(timeout=lock_timeout)

    async def _audit(self, action: str, entry_id: str, outcome: str, **kwargs) -> None:
        """Record an audit event; failures are logged and never fail the operation"""
        if self.audit_log is None:
            return
        try:
            await self.audit_log.record(action, entry_id or "-", outcome, **kwargs)
        except (StorageError, ValueError) as e:
            logger.warning(f"Failed to record audit event {action} on {entry_id}: {e}")

    async def push(self, entry_id: str, payload: bytes) -> PushResult:
        """
        Store a payload under a registered identifier

        Args:
            entry_id: Registered identifier
            payload: Opaque bytes

        Returns:
            PushResult with the stored size and the identifier's budget

        Raises:
            NotFoundError: If the identifier is not registered
            ExhaustedError: If push is metered and the budget is spent
            PayloadTooLargeError: If the payload exceeds the size cap
        """
        size = len(payload) if isinstance(payload, (bytes, bytearray)) else 0
        try:
            with self._locks.hold(entry_id):
                entry = self.registry.lookup(entry_id)
                if entry is None:
                    raise NotFoundError(entry_id)

                if size > self.blob_store.max_payload_bytes:
                    raise PayloadTooLargeError(entry_id, size, self.blob_store.max_payload_bytes)

                metered = self.metering is MeteringPolicy.PUSH_AND_FETCH
                if metered and entry.is_exhausted():
                    raise ExhaustedError(entry_id)

                self.blob_store.put(entry_id, payload)
                remaining = self.registry.decrement(entry_id) if metered else entry.remaining
        except NShotError as e:
            await self._audit("push", entry_id, e.error_code, payload_size=size)
            raise

        logger.info(f"Pushed {size} bytes to {entry_id}")
        await self._audit("push", entry_id, "ok", remaining=remaining, payload_size=size)
        return PushResult(entry_id=entry_id, size=size, remaining=remaining)

    async def fetch(self, entry_id: str, token: str) -> FetchResult:
        """
        Read a payload, consuming one unit of the identifier's budget

        A fetch against an identifier with nothing stored fails without
        touching the budget. Once the budget reaches zero every later fetch
        fails with ExhaustedError until an admin reset.

        Args:
            entry_id: Registered identifier
            token: Caller-supplied value echoed in the result and the audit log

        Returns:
            FetchResult with the payload and the budget left after this fetch

        Raises:
            InvalidRequestError: If token is empty
            NotFoundError: If the identifier is unknown or has no payload
            ExhaustedError: If the budget is spent
        """
        if not isinstance(token, str) or not token.strip():
            await self._audit("fetch", entry_id, InvalidRequestError.error_code)
            raise InvalidRequestError("Fetch token must be a non-empty string")

        try:
            with self._locks.hold(entry_id):
                payload = self.blob_store.get(entry_id)
                if payload is None:
                    entry = self.registry.lookup(entry_id)
                    if entry is None:
                        raise NotFoundError(entry_id)
                    if entry.is_exhausted():
                        logger.warning(f"Rejected fetch on exhausted identifier {entry_id}")
                        raise ExhaustedError(entry_id)
                    raise NotFoundError(entry_id, "no payload stored")

                remaining = self.registry.decrement(entry_id)

                if remaining == 0 and self.purge_on_exhaust:
                    self.blob_store.delete(entry_id)
        except NShotError as e:
            await self._audit("fetch", entry_id, e.error_code, token=token)
            raise

        if remaining == 0:
            logger.info(f"Identifier {entry_id} exhausted")
        await self._audit("fetch", entry_id, "ok", remaining=remaining, token=token,
                          payload_size=len(payload))
        return FetchResult(entry_id=entry_id, payload=payload, remaining=remaining, token=token)

    async def admin(self, command: AdminCommand, argument: Optional[str] = None) -> AdminResult:
        """
        Run a privileged registry operation

        Args:
            command: Resolved admin command
            argument: Target identifier; optional for inspect and create

        Returns:
            AdminResult describing what changed

        Raises:
            InvalidRequestError: If a required identifier is missing
            NotFoundError: If reset or inspect targets an unknown identifier
            AlreadyExistsError: If create targets a registered identifier
        """
        if not isinstance(command, AdminCommand):
            raise TypeError(f"command must be an AdminCommand, got {type(command).__name__}")

        argument = (argument or "").strip()
        try:
            if command is AdminCommand.INSPECT:
                result = self._inspect(argument)
            elif command is AdminCommand.CREATE:
                entry_id = argument or generate_entry_id()
                with self._locks.hold(entry_id):
                    entry = self.registry.insert(entry_id, self.default_budget)
                result = AdminResult(command=command, entry_id=entry_id, changed=True, entries=[entry])
            else:
                if not argument:
                    raise InvalidRequestError(f"Admin command '{command.value}' requires an identifier")
                with self._locks.hold(argument):
                    if command is AdminCommand.RESET:
                        entry = self.registry.reset(argument)
                        result = AdminResult(command=command, entry_id=argument, changed=True, entries=[entry])
                    else:
                        result = self._revoke(argument)
        except NShotError as e:
            await self._audit(command.value, argument or "*", e.error_code)
            raise

        if result.changed:
            logger.info(f"Admin {command.value} on {result.entry_id}")
        remaining = result.entries[0].remaining if result.entry_id and result.entries else None
        await self._audit(command.value, result.entry_id or "*", "ok", remaining=remaining)
        return result

    def _inspect(self, argument: str) -> AdminResult:
        if not argument or argument.lower() in INSPECT_ALL_ALIASES:
            return AdminResult(command=AdminCommand.INSPECT, entry_id=None, changed=False,
                               entries=self.registry.list_entries())

        entry = self.registry.lookup(argument)
        if entry is None:
            raise NotFoundError(argument)
        return AdminResult(command=AdminCommand.INSPECT, entry_id=argument, changed=False, entries=[entry])

    def _revoke(self, entry_id: str) -> AdminResult:
        # Revoking an absent identifier is a no-op
        entry = self.registry.lookup(entry_id)
        if entry is not None:
            try:
                self.registry.delete(entry_id)
            except NotFoundError:
                logger.debug(f"Identifier {entry_id} was removed concurrently")
                entry = None
        blob_deleted = self.blob_store.delete(entry_id)
        return AdminResult(
            command=AdminCommand.REVOKE,
            entry_id=entry_id,
            changed=entry is not None or blob_deleted,
            entries=[entry] if entry is not None else []
        )

    async def purge_exhausted(self) -> int:
        """
        Delete the payloads of all exhausted identifiers, keeping the entries

        Returns:
            Number of payloads deleted
        """
        purged = 0
        for entry_id in self.registry.list_exhausted():
            with self._locks.hold(entry_id):
                entry = self.registry.lookup(entry_id)
                # Re-check under the lock; a reset may have re-armed it
                if entry is not None and entry.is_exhausted() and self.blob_store.delete(entry_id):
                    purged += 1

        if purged:
            logger.info(f"Purged {purged} exhausted payloads")
        await self._audit("purge", "*", "ok", payload_size=0)
        return purged

    async def audit_trail(self, entry_id: Optional[str] = None, limit: int = 100) -> List[AuditEvent]:
        """Return recent audit events, newest first"""
        if self.audit_log is None:
            return []
        return await self.audit_log.list_events(entry_id=entry_id, limit=limit)
