"""Shared test fixtures."""

import pytest

from src.ledger import LedgerStore
from src.services.auth import IdentityProvider
from src.services.storage import (
    InMemoryBackend,
    InMemoryRemoteStore,
    LocalStateStore,
    legacy_sources_from_keys,
)
from src.sync import SyncOrchestrator


CURRENT_KEY = "tuition_accounts_v3"
LEGACY_KEYS = ["tuition_accounts_v2", "tuition_accounts_v1"]


@pytest.fixture
def backend():
    """Device storage held in memory."""
    return InMemoryBackend()


@pytest.fixture
def local_store(backend):
    return LocalStateStore(
        backend,
        current_key=CURRENT_KEY,
        legacy_sources=legacy_sources_from_keys(LEGACY_KEYS),
    )


@pytest.fixture
def ledger(local_store):
    return LedgerStore(local_store)


@pytest.fixture
def identity():
    """A signed-in user."""
    return IdentityProvider("user-1")


@pytest.fixture
def remote_records():
    """The server side: one record per user id."""
    return {}


@pytest.fixture
def remote(identity, remote_records):
    return InMemoryRemoteStore(identity, remote_records)


@pytest.fixture
def orchestrator(ledger, remote, identity):
    return SyncOrchestrator(ledger, remote, identity)
