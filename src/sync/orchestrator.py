"""
Sync Orchestrator

Drives the normalizer, the local store, the remote store and the merge
engine once at startup and once after every accepted local mutation.

Decision procedure for one attempt:

    Idle --(trigger, not in flight, signed in)--> Fetching
    fetch fails                        -> Idle, local untouched
    no remote record, local has data   -> push local as the initial record
    no remote record, local empty      -> nothing to do
    both sides have data               -> merge, adopt locally, push
    only cloud has data                -> adopt cloud
    only local has data                -> push local (remote is empty)
    neither side has data              -> nothing to do

CRITICAL: A non-empty remote record is never overwritten with an empty local
state, and a populated local state is never discarded for an empty remote.

Single-flight: while an attempt is running, new requests are dropped, not
queued. The next mutation or startup tries again.
"""

import asyncio
import threading
from enum import Enum
from typing import Optional
from uuid import UUID

import structlog

from src.audit import AuditLogger, create_correlation_id
from src.ledger import LedgerStore
from src.models.state import CanonicalState
from src.services.auth import IdentityProvider
from src.services.storage.interface import RemoteStoreInterface, StorageError
from src.sync.merge import merge
from src.validation import normalize


logger = structlog.get_logger(__name__)


class SyncPhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


class SyncOutcome(str, Enum):
    """How one sync request ended."""
    SKIPPED_IN_FLIGHT = "skipped_in_flight"
    SKIPPED_DISABLED = "skipped_disabled"
    SKIPPED_UNAUTHENTICATED = "skipped_unauthenticated"
    UNAVAILABLE = "unavailable"
    PUSHED_INITIAL = "pushed_initial"
    PUSHED_LOCAL = "pushed_local"
    MERGED = "merged"
    ADOPTED_CLOUD = "adopted_cloud"
    IN_SYNC = "in_sync"
    NOOP = "noop"


class SyncOrchestrator:
    """
    Reconciles the local ledger with the user's remote record.

    Usage:
        orchestrator = SyncOrchestrator(ledger, remote, identity)
        ledger.attach_sync(orchestrator.trigger)
        await orchestrator.run()          # startup
        await orchestrator.pull()         # after sign-in
    """

    def __init__(
        self,
        ledger: LedgerStore,
        remote: RemoteStoreInterface,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
        enabled: bool = True,
    ):
        self._ledger = ledger
        self._remote = remote
        self._identity = identity
        self._audit = audit_logger or AuditLogger()
        self._enabled = enabled

        # Test-and-set flag; a non-blocking acquire either takes it or fails
        self._in_flight = threading.Lock()
        self._phase = SyncPhase.IDLE
        self._background: set[asyncio.Task] = set()

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def trigger(self, prefer_cloud: bool = False) -> Optional[asyncio.Task]:
        """
        Start a sync in the background and return immediately.

        Safe to call from synchronous mutation code. Returns the task, or
        None when the request was dropped (already in flight, or no running
        event loop to schedule it on).
        """
        if self.in_flight:
            self._audit.log_sync_skipped(reason="already in flight")
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._audit.log_sync_skipped(reason="no running event loop")
            return None

        task = loop.create_task(self._run_in_background(prefer_cloud))
        # Keep a reference so the task is not garbage collected mid-flight
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def run(self, prefer_cloud: bool = False) -> SyncOutcome:
        """
        Run one sync attempt and wait for it.

        Args:
            prefer_cloud: Let cloud data win when only one side has data
                          (explicit pull, e.g. right after sign-in)
        """
        if not self._in_flight.acquire(blocking=False):
            self._audit.log_sync_skipped(reason="already in flight")
            return SyncOutcome.SKIPPED_IN_FLIGHT
        try:
            return await self._attempt(prefer_cloud)
        finally:
            self._phase = SyncPhase.IDLE
            self._in_flight.release()

    async def pull(self) -> SyncOutcome:
        """Explicit pull after sign-in: cloud data wins when only it has data."""
        return await self.run(prefer_cloud=True)

    async def _run_in_background(self, prefer_cloud: bool) -> SyncOutcome:
        try:
            return await self.run(prefer_cloud)
        except Exception as e:
            # Fire-and-forget: nobody awaits this task, so log instead of raising
            logger.exception("background_sync_failed")
            self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"prefer_cloud": prefer_cloud},
            )
            return SyncOutcome.UNAVAILABLE

    # =========================================================================
    # DECISION PROCEDURE
    # =========================================================================

    async def _attempt(self, prefer_cloud: bool) -> SyncOutcome:
        if not self._enabled:
            self._audit.log_sync_skipped(reason="sync disabled")
            return SyncOutcome.SKIPPED_DISABLED

        owner = self._identity.current_identity()
        if owner is None:
            self._audit.log_sync_skipped(reason="not signed in")
            return SyncOutcome.SKIPPED_UNAUTHENTICATED

        correlation_id = create_correlation_id()
        self._phase = SyncPhase.FETCHING
        self._audit.log_sync_started(
            owner=owner,
            prefer_cloud=prefer_cloud,
            correlation_id=correlation_id,
        )

        try:
            record = await self._remote.fetch_remote()
        except StorageError as e:
            self._audit.log_sync_unavailable(
                owner=owner,
                stage="fetch",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return SyncOutcome.UNAVAILABLE

        # Read local only after the fetch so mutations made meanwhile are kept
        local = self._ledger.state

        if record is None:
            if local.has_data():
                outcome = await self._push(local, owner, correlation_id, initial=True)
            else:
                outcome = SyncOutcome.NOOP
        else:
            cloud = normalize(record.payload)
            outcome = await self._reconcile(local, cloud, prefer_cloud, owner, correlation_id)

        self._audit.log_sync_completed(
            owner=owner,
            outcome=outcome.value,
            correlation_id=correlation_id,
        )
        return outcome

    async def _reconcile(
        self,
        local: CanonicalState,
        cloud: CanonicalState,
        prefer_cloud: bool,
        owner: str,
        correlation_id: UUID,
    ) -> SyncOutcome:
        local_has = local.has_data()
        cloud_has = cloud.has_data()

        if local_has and cloud_has:
            merged = merge(local, cloud)
            content = merged.content()
            if content == local.content() and content == cloud.content():
                return SyncOutcome.IN_SYNC
            adopted = self._adopt(merged, owner, correlation_id)
            if adopted is None:
                return SyncOutcome.UNAVAILABLE
            self._audit.log_state_merged(
                owner=owner,
                counts=adopted.counts(),
                correlation_id=correlation_id,
            )
            outcome = await self._push(adopted, owner, correlation_id)
            return SyncOutcome.MERGED if outcome is SyncOutcome.PUSHED_LOCAL else outcome

        if cloud_has and (prefer_cloud or not local_has):
            adopted = self._adopt(cloud, owner, correlation_id)
            if adopted is None:
                return SyncOutcome.UNAVAILABLE
            self._audit.log_cloud_adopted(
                owner=owner,
                counts=adopted.counts(),
                correlation_id=correlation_id,
            )
            return SyncOutcome.ADOPTED_CLOUD

        if local_has:
            # Remote record exists but is empty, so overwriting it is safe
            return await self._push(local, owner, correlation_id)

        return SyncOutcome.NOOP

    def _adopt(
        self,
        state: CanonicalState,
        owner: str,
        correlation_id: UUID,
    ) -> Optional[CanonicalState]:
        """Replace the ledger state; None when it could not be saved locally."""
        try:
            return self._ledger.adopt(state)
        except StorageError as e:
            self._audit.log_sync_unavailable(
                owner=owner,
                stage="adopt",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return None

    async def _push(
        self,
        state: CanonicalState,
        owner: str,
        correlation_id: UUID,
        initial: bool = False,
    ) -> SyncOutcome:
        if not state.has_data():
            self._audit.log_sync_skipped(
                reason="refusing to push an empty state",
                correlation_id=correlation_id,
            )
            return SyncOutcome.NOOP
        try:
            await self._remote.push_remote(state)
        except StorageError as e:
            self._audit.log_sync_unavailable(
                owner=owner,
                stage="push",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return SyncOutcome.UNAVAILABLE

        self._audit.log_local_pushed(
            owner=owner,
            initial=initial,
            correlation_id=correlation_id,
        )
        return SyncOutcome.PUSHED_INITIAL if initial else SyncOutcome.PUSHED_LOCAL
