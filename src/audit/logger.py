"""
Audit Logger

DESIGN DECISION: Every sync decision and every accepted mutation is logged.
This provides:
1. Complete traceability of replica changes
2. Debugging capability when two devices disagree
3. Correlation of all events belonging to one sync attempt

The audit logger:
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route the structured log to stderr at the given level.

    Call once at startup, typically with get_settings().app.log_level.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )


_LEVELS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "critical",
}


class AuditLogger:
    """
    Central audit logging service.

    Writes each event to the structured local log at the event's severity.
    """

    def __init__(self, logger_name: str = "tuition_ledger.audit"):
        self._logger = structlog.get_logger(logger_name)

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the log write failed. Never raises.
        """
        try:
            method = getattr(self._logger, _LEVELS[event.severity])
            method("audit_event", **event.to_log_dict())
            return True
        except Exception as e:
            # Logging must not break the sync or mutation path
            print(f"WARNING: Failed to write audit event: {e}", file=sys.stderr)
            return False

    def log_sync_started(
        self,
        owner: str,
        prefer_cloud: bool,
        correlation_id: UUID,
    ) -> None:
        """Log the start of a sync attempt."""
        self.log(AuditEventBuilder.sync_started(
            owner=owner,
            prefer_cloud=prefer_cloud,
            correlation_id=correlation_id,
        ))

    def log_sync_skipped(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a sync request that did not run."""
        self.log(AuditEventBuilder.sync_skipped(
            reason=reason,
            correlation_id=correlation_id,
        ))

    def log_sync_unavailable(
        self,
        owner: str,
        stage: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a transport or authorization failure."""
        self.log(AuditEventBuilder.sync_unavailable(
            owner=owner,
            stage=stage,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def log_sync_completed(
        self,
        owner: str,
        outcome: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.sync_completed(
            owner=owner,
            outcome=outcome,
            correlation_id=correlation_id,
        ))

    def log_state_merged(
        self,
        owner: str,
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.state_merged(
            owner=owner,
            counts=counts,
            correlation_id=correlation_id,
        ))

    def log_cloud_adopted(
        self,
        owner: str,
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.cloud_adopted(
            owner=owner,
            counts=counts,
            correlation_id=correlation_id,
        ))

    def log_local_pushed(
        self,
        owner: str,
        initial: bool,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.local_pushed(
            owner=owner,
            initial=initial,
            correlation_id=correlation_id,
        ))

    def log_legacy_migrated(
        self,
        legacy_key: str,
        version: int,
        current_key: str,
    ) -> None:
        """Log a one-time migration from a legacy storage key."""
        self.log(AuditEventBuilder.legacy_migrated(
            legacy_key=legacy_key,
            version=version,
            current_key=current_key,
        ))

    def log_local_blob_corrupt(self, key: str, error_message: str) -> None:
        self.log(AuditEventBuilder.local_blob_corrupt(
            key=key,
            error_message=error_message,
        ))

    def log_state_mutated(
        self,
        operation: str,
        entity_type: str,
        entity_id: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.state_mutated(
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
        ))

    def log_backup_imported(self, counts: dict[str, int]) -> None:
        self.log(AuditEventBuilder.backup_imported(counts=counts))

    def log_backup_rejected(self, error_message: str) -> None:
        self.log(AuditEventBuilder.backup_rejected(error_message=error_message))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a sync attempt.
    Pass it through all subsequent operations.
    """
    return uuid4()
