"""Services package."""

from src.services.auth import IdentityProvider
from src.services.export import (
    ImportRejectedError,
    export_backup,
    parse_backup,
    payments_csv,
    sessions_csv,
    students_csv,
)
from src.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryBackend,
    InMemoryRemoteStore,
    JsonFileBackend,
    KeyValueBackend,
    LegacySource,
    LocalStateStore,
    LocalStoreError,
    RemoteStoreInterface,
    StorageError,
    SyncUnavailableError,
)

__all__ = [
    # Authentication boundary
    "IdentityProvider",
    # Export collaborators
    "ImportRejectedError",
    "export_backup",
    "parse_backup",
    "payments_csv",
    "sessions_csv",
    "students_csv",
    # Storage services
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryBackend",
    "InMemoryRemoteStore",
    "JsonFileBackend",
    "KeyValueBackend",
    "LegacySource",
    "LocalStateStore",
    "LocalStoreError",
    "RemoteStoreInterface",
    "StorageError",
    "SyncUnavailableError",
]
