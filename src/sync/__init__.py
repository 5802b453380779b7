"""Replica reconciliation: merge engine and sync orchestrator."""

from src.sync.merge import merge
from src.sync.orchestrator import SyncOrchestrator, SyncOutcome, SyncPhase

__all__ = [
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncPhase",
    "merge",
]
