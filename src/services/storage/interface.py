"""
Abstract Storage Interfaces

DESIGN DECISION: We define abstract interfaces for both replicas.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the reconciliation logic decoupled from storage implementation

The interfaces are intentionally tiny. The device stores one blob under a
versioned key; the remote keeps one opaque record per user.
"""

from abc import ABC, abstractmethod
from typing import Optional

from src.models.state import CanonicalState, RemoteRecord


class KeyValueBackend(ABC):
    """
    Durable string storage on the device.

    Mirrors what a browser's localStorage offers: get and set by key.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under a key.

        Returns:
            The stored string, or None if the key was never written
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Durably store a value under a key, replacing any previous value.

        Raises:
            LocalStoreError: If the write fails
        """
        pass


class RemoteStoreInterface(ABC):
    """
    Access to the single remote record of the current user.

    Implementations are scoped to an authenticated identity. They never
    interpret the payload; they only store it with its timestamp.
    """

    @abstractmethod
    async def fetch_remote(self) -> Optional[RemoteRecord]:
        """
        Fetch the current user's record.

        Returns:
            The record, or None when unauthenticated or no record exists yet

        Raises:
            SyncUnavailableError: On any transport or authorization failure
        """
        pass

    @abstractmethod
    async def push_remote(self, state: CanonicalState) -> None:
        """
        Upsert the current user's record.

        The record's updated_at is set to state.meta.updated_at.

        Raises:
            SyncUnavailableError: On any transport or authorization failure,
                                  including when nobody is signed in
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class LocalStoreError(StorageError):
    """The device storage could not be read or written."""
    pass


class SyncUnavailableError(StorageError):
    """The remote store could not be reached or refused the request."""
    pass
