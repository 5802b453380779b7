"""
In-Memory Remote Store

Same contract as the Google Sheets store, backed by a dictionary keyed by
user id. Used by tests and when running without remote credentials.
"""

import copy
from typing import Optional

from src.models.state import CanonicalState, RemoteRecord
from src.services.auth import IdentityProvider
from src.services.storage.interface import RemoteStoreInterface, SyncUnavailableError


class InMemoryRemoteStore(RemoteStoreInterface):
    """
    Remote replica held in process memory.

    Several IdentityProviders may share one `records` dict to simulate
    several devices talking to the same server.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        records: Optional[dict[str, RemoteRecord]] = None,
    ):
        self._identity = identity
        self.records: dict[str, RemoteRecord] = records if records is not None else {}

    async def fetch_remote(self) -> Optional[RemoteRecord]:
        owner = self._identity.current_identity()
        if owner is None:
            return None
        record = self.records.get(owner)
        return record.model_copy(deep=True) if record else None

    async def push_remote(self, state: CanonicalState) -> None:
        owner = self._identity.current_identity()
        if owner is None:
            raise SyncUnavailableError("Not signed in")
        self.records[owner] = RemoteRecord(
            owner=owner,
            payload=copy.deepcopy(state.to_document()),
            updated_at=state.updated_at,
        )
