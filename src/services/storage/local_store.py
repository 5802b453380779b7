"""
Local Store Adapter

Keeps the canonical state on the device under a single versioned key.

On first load after an upgrade, older schema versions are found by probing
a fixed list of legacy keys, newest first. The first one holding any record
is normalized, stamped and written under the current key. Legacy keys are
never modified or deleted, so a downgrade can still read them.

Without any stored data the state starts empty with its clock at the epoch,
so any real remote record wins a comparison against it.
"""

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from src.audit import AuditLogger
from src.config import LocalStoreSettings
from src.models.state import EPOCH, CanonicalState, utc_now
from src.services.storage.interface import KeyValueBackend, LocalStoreError
from src.validation import normalize


COLLECTIONS = ("students", "sessions", "payments")


class JsonFileBackend(KeyValueBackend):
    """
    One file per key under a data directory.

    Writes go to a temporary file first and are moved into place, so a crash
    mid-write leaves the previous value intact.
    """

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir).expanduser()

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise LocalStoreError(f"Failed to read {path}: {e}")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=f".{key}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except OSError as e:
            raise LocalStoreError(f"Failed to write {path}: {e}")


class InMemoryBackend(KeyValueBackend):
    """Dictionary-backed storage for tests and throwaway sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


@dataclass(frozen=True)
class LegacySource:
    """A storage key written by an older schema version."""
    key: str
    version: int


def legacy_sources_from_keys(keys: list[str]) -> list[LegacySource]:
    """
    Build legacy sources from keys listed newest first.

    Versions count down so the first key gets the highest number.
    """
    return [
        LegacySource(key=key, version=len(keys) - index)
        for index, key in enumerate(keys)
    ]


def _holds_records(raw: Any) -> bool:
    """True when the raw payload has at least one entry in any collection."""
    if not isinstance(raw, dict):
        return False
    return any(
        isinstance(raw.get(name), list) and len(raw[name]) > 0
        for name in COLLECTIONS
    )


class LocalStateStore:
    """
    Durable single-key storage of the canonical state.

    Usage:
        store = LocalStateStore.from_settings(get_settings().local_store)
        state = store.load_local()
        store.save_local(state)
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        current_key: str,
        legacy_sources: Optional[list[LegacySource]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._backend = backend
        self._current_key = current_key
        self._legacy_sources = list(legacy_sources or [])
        self._audit = audit_logger or AuditLogger()

    @classmethod
    def from_settings(
        cls,
        settings: LocalStoreSettings,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "LocalStateStore":
        return cls(
            backend=JsonFileBackend(settings.data_dir),
            current_key=settings.current_key,
            legacy_sources=legacy_sources_from_keys(settings.legacy_keys_list),
            audit_logger=audit_logger,
        )

    @property
    def current_key(self) -> str:
        return self._current_key

    def _read_json(self, key: str) -> Optional[Any]:
        """Parsed value under key; None when absent or not valid JSON."""
        text = self._backend.get(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            self._audit.log_local_blob_corrupt(key=key, error_message=str(e))
            return None

    def load_local(self) -> CanonicalState:
        """
        Load the canonical state from the device.

        Order of preference:
        1. The current-version key
        2. The first legacy key holding any record (migrated once)
        3. An empty state with its clock at the epoch
        """
        raw = self._read_json(self._current_key)
        if raw is not None:
            return normalize(raw)

        for source in self._legacy_sources:
            legacy_raw = self._read_json(source.key)
            if not _holds_records(legacy_raw):
                continue

            state = normalize(legacy_raw)
            if state.updated_at <= EPOCH:
                state = state.with_clock(utc_now())
            self.save_local(state)
            self._audit.log_legacy_migrated(
                legacy_key=source.key,
                version=source.version,
                current_key=self._current_key,
            )
            return state

        return CanonicalState()

    def save_local(self, state: CanonicalState) -> None:
        """Persist the state under the current key."""
        self._backend.set(self._current_key, json.dumps(state.to_document()))
