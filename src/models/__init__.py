"""
Data Models Package

This package contains all Pydantic models used in the Tuition Ledger system.
All data flowing through the system must conform to these schemas.
"""

from src.models.state import (
    EPOCH,
    CanonicalState,
    Gender,
    Payment,
    RemoteRecord,
    Session,
    SessionRow,
    StateMeta,
    Student,
    advance_clock,
)
from src.models.totals import (
    LedgerTotals,
    SessionTotals,
    StudentBalance,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # State models
    "EPOCH",
    "CanonicalState",
    "Gender",
    "Payment",
    "RemoteRecord",
    "Session",
    "SessionRow",
    "StateMeta",
    "Student",
    "advance_clock",
    # Calculation results
    "LedgerTotals",
    "SessionTotals",
    "StudentBalance",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
