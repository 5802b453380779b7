"""
Application Wiring for Tuition Ledger

This module ties together all the components:
1. Local store -> LedgerStore (the single writer of the canonical state)
2. Identity + remote store -> SyncOrchestrator
3. Every accepted mutation -> background sync

DESIGN DECISION: The remote replica is optional. Without Google Sheets
credentials the app keeps working from its local copy and sync is disabled.
"""

from typing import Optional

from src.audit import AuditLogger, configure_logging
from src.config import get_settings
from src.ledger import LedgerStore
from src.services.auth import IdentityProvider
from src.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    LocalStateStore,
    RemoteStoreInterface,
)
from src.sync import SyncOrchestrator, SyncOutcome


def create_app_components(
    use_remote: bool = True,
    identity: Optional[IdentityProvider] = None,
) -> tuple[LedgerStore, SyncOrchestrator, IdentityProvider]:
    """
    Factory function to create all application components.

    Args:
        use_remote: Whether to connect the Google Sheets replica.
                    Set to False to run purely locally.
        identity: Identity provider to use (a signed-out one by default)

    Returns:
        (ledger, orchestrator, identity)

    Call `await orchestrator.run()` once at startup.
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)
    audit_logger = AuditLogger()
    identity = identity or IdentityProvider()

    local_store = LocalStateStore.from_settings(settings.local_store, audit_logger)
    ledger = LedgerStore(local_store, audit_logger)

    sync_enabled = use_remote and settings.sync.enabled
    remote: RemoteStoreInterface
    if sync_enabled:
        try:
            remote = GoogleSheetsRemoteStore(
                identity,
                client=GoogleSheetsClient(settings.google_sheets),
                sync_settings=settings.sync,
            )
        except Exception as e:
            # Remote not configured - continue with the local copy only
            audit_logger.log_error(
                error_type="remote_not_configured",
                error_message=str(e),
            )
            remote = InMemoryRemoteStore(identity)
            sync_enabled = False
    else:
        remote = InMemoryRemoteStore(identity)

    orchestrator = SyncOrchestrator(
        ledger,
        remote,
        identity,
        audit_logger=audit_logger,
        enabled=sync_enabled,
    )
    ledger.attach_sync(orchestrator.trigger)

    return ledger, orchestrator, identity


async def sign_in_and_pull(
    identity: IdentityProvider,
    orchestrator: SyncOrchestrator,
    user_id: str,
) -> SyncOutcome:
    """
    Sign in and immediately pull, letting cloud data win when only the cloud
    has any.
    """
    identity.sign_in(user_id)
    return await orchestrator.pull()
