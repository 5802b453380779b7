"""
Storage Services Package

Provides abstract interfaces and concrete implementations for both replicas:
the device-local blob and the single remote record per user.
"""

from src.services.storage.interface import (
    KeyValueBackend,
    LocalStoreError,
    RemoteStoreInterface,
    StorageError,
    SyncUnavailableError,
)
from src.services.storage.local_store import (
    InMemoryBackend,
    JsonFileBackend,
    LegacySource,
    LocalStateStore,
    legacy_sources_from_keys,
)
from src.services.storage.memory import InMemoryRemoteStore
from src.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
)

__all__ = [
    # Interfaces
    "KeyValueBackend",
    "RemoteStoreInterface",
    # Exceptions
    "LocalStoreError",
    "StorageError",
    "SyncUnavailableError",
    # Local replica
    "InMemoryBackend",
    "JsonFileBackend",
    "LegacySource",
    "LocalStateStore",
    "legacy_sources_from_keys",
    # Remote replica
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
]
