"""
Audit Models for Tuition Ledger

Every decision the reconciliation engine takes is logged as a typed event.
This provides:
1. Traceability of why a replica was overwritten, merged or left alone
2. Debugging information when devices disagree
3. Ability to reconstruct what happened during one sync attempt

DESIGN DECISION: Events are built through AuditEventBuilder so the same
decision is always described the same way.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every branch of the sync decision procedure has its own event type.
    """
    # Sync attempts
    SYNC_STARTED = "sync_started"
    SYNC_SKIPPED = "sync_skipped"
    SYNC_UNAVAILABLE = "sync_unavailable"
    SYNC_COMPLETED = "sync_completed"

    # Replica changes
    STATE_MERGED = "state_merged"
    CLOUD_ADOPTED = "cloud_adopted"
    LOCAL_PUSHED = "local_pushed"

    # Local storage
    LEGACY_MIGRATED = "legacy_migrated"
    LOCAL_BLOB_CORRUPT = "local_blob_corrupt"

    # User actions
    STATE_MUTATED = "state_mutated"
    BACKUP_IMPORTED = "backup_imported"
    BACKUP_REJECTED = "backup_rejected"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every sync decision creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'replica', 'student', 'backup')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one sync attempt)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.sync_started(owner, prefer_cloud, correlation_id)
        event = AuditEventBuilder.state_merged(owner, counts, correlation_id)
    """

    @staticmethod
    def sync_started(
        owner: str,
        prefer_cloud: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            severity=AuditSeverity.DEBUG,
            entity_type="replica",
            entity_id=owner,
            correlation_id=correlation_id,
            description="Sync attempt started",
            details={"prefer_cloud": prefer_cloud},
        )

    @staticmethod
    def sync_skipped(
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_SKIPPED,
            severity=AuditSeverity.DEBUG,
            correlation_id=correlation_id,
            description=f"Sync skipped: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def sync_unavailable(
        owner: str,
        stage: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_UNAVAILABLE,
            severity=AuditSeverity.WARNING,
            entity_type="replica",
            entity_id=owner,
            correlation_id=correlation_id,
            description=f"Remote store unavailable during {stage}",
            error_message=error_message,
            details={"stage": stage},
        )

    @staticmethod
    def sync_completed(
        owner: str,
        outcome: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            entity_type="replica",
            entity_id=owner,
            correlation_id=correlation_id,
            description=f"Sync finished: {outcome}",
            details={"outcome": outcome},
        )

    @staticmethod
    def state_merged(
        owner: str,
        counts: dict[str, int],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_MERGED,
            entity_type="replica",
            entity_id=owner,
            correlation_id=correlation_id,
            description="Local and cloud replicas merged by id",
            details=counts,
        )

    @staticmethod
    def cloud_adopted(
        owner: str,
        counts: dict[str, int],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLOUD_ADOPTED,
            entity_type="replica",
            entity_id=owner,
            correlation_id=correlation_id,
            description="Cloud replica adopted as local state",
            details=counts,
        )

    @staticmethod
    def local_pushed(
        owner: str,
        initial: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_PUSHED,
            entity_type="replica",
            entity_id=owner,
            correlation_id=correlation_id,
            description=(
                "Local state pushed as the initial remote record"
                if initial else "Local state pushed to remote record"
            ),
            details={"initial": initial},
        )

    @staticmethod
    def legacy_migrated(
        legacy_key: str,
        version: int,
        current_key: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEGACY_MIGRATED,
            entity_type="storage_key",
            entity_id=current_key,
            description=f"Migrated local data from {legacy_key}",
            details={"legacy_key": legacy_key, "version": version},
        )

    @staticmethod
    def local_blob_corrupt(
        key: str,
        error_message: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_BLOB_CORRUPT,
            severity=AuditSeverity.WARNING,
            entity_type="storage_key",
            entity_id=key,
            description=f"Stored blob under {key} is not valid JSON",
            error_message=error_message,
        )

    @staticmethod
    def state_mutated(
        operation: str,
        entity_type: str,
        entity_id: Optional[str] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_MUTATED,
            severity=AuditSeverity.DEBUG,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{operation} {entity_type}",
            details={"operation": operation},
            is_user_action=True,
        )

    @staticmethod
    def backup_imported(
        counts: dict[str, int]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_IMPORTED,
            entity_type="backup",
            description="Backup document imported",
            details=counts,
            is_user_action=True,
        )

    @staticmethod
    def backup_rejected(
        error_message: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            description="Backup document rejected",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
