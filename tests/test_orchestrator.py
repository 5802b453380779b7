"""
Tests for the sync orchestrator.

All remote stores here are in memory. Async entry points are driven with
asyncio.run so no event-loop plugin is needed.
"""

import asyncio
from datetime import date, datetime, timezone

import pytest

from src.config import get_settings
from src.ledger import LedgerStore
from src.models.state import (
    CanonicalState,
    RemoteRecord,
    Session,
    SessionRow,
    Student,
)
from src.orchestrator import create_app_components, sign_in_and_pull
from src.services.auth import IdentityProvider
from src.services.storage import (
    InMemoryBackend,
    InMemoryRemoteStore,
    LocalStateStore,
    LocalStoreError,
    SyncUnavailableError,
)
from src.sync import SyncOrchestrator, SyncOutcome, SyncPhase


T1 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
FAR_FUTURE = datetime(2100, 1, 1, tzinfo=timezone.utc)


def _record(owner, state=None, payload=None, updated_at=T1):
    if payload is None:
        payload = state.to_document()
    return RemoteRecord(owner=owner, payload=payload, updated_at=updated_at)


def _session(session_id, student_id, duration):
    return Session(
        id=session_id,
        date=date(2024, 5, 1),
        rows=[SessionRow(student_id=student_id, duration=duration, rate=300)],
    )


class FailingRemote(InMemoryRemoteStore):
    """Remote whose fetch or push fails with the given error."""

    def __init__(self, identity, fetch_error=None, push_error=None, records=None):
        super().__init__(identity, records)
        self.fetch_error = fetch_error
        self.push_error = push_error

    async def fetch_remote(self):
        if self.fetch_error is not None:
            raise self.fetch_error
        return await super().fetch_remote()

    async def push_remote(self, state):
        if self.push_error is not None:
            raise self.push_error
        await super().push_remote(state)


class FullDiskBackend(InMemoryBackend):
    """Device storage that refuses writes once `full` is set."""

    full = False

    def set(self, key, value):
        if self.full:
            raise LocalStoreError("disk full")
        super().set(key, value)


class BlockingRemote(InMemoryRemoteStore):
    """Remote whose fetch waits until the test releases it."""

    def __init__(self, identity, records=None):
        super().__init__(identity, records)
        self.fetch_started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_remote(self):
        self.fetch_started.set()
        await self.release.wait()
        return await super().fetch_remote()


class TestSyncScenarios:
    """The three reference scenarios for a signed-in device."""

    def test_local_only_data_pushed_as_initial_record(self, ledger, orchestrator, remote_records):
        ledger.upsert_student("Amit", student_id="s1")

        outcome = asyncio.run(orchestrator.run())

        assert outcome is SyncOutcome.PUSHED_INITIAL
        payload = remote_records["user-1"].payload
        assert [st["id"] for st in payload["students"]] == ["s1"]
        assert payload["sessions"] == []
        assert remote_records["user-1"].updated_at == ledger.state.updated_at

    def test_cloud_only_data_adopted_on_pull(self, ledger, local_store, orchestrator, remote_records):
        remote_records["user-1"] = _record("user-1", payload={
            "students": [],
            "sessions": [],
            "payments": [{"id": "p1", "date": "2024-05-04", "amount": 500}],
        })

        outcome = asyncio.run(orchestrator.pull())

        assert outcome is SyncOutcome.ADOPTED_CLOUD
        assert [(p.id, p.amount) for p in ledger.state.payments] == [("p1", 500)]
        # Adopted state is persisted locally too
        assert local_store.load_local().payments[0].id == "p1"

    def test_both_sides_merged_with_local_precedence(self, ledger, orchestrator, remote_records):
        """Test local's x survives and cloud's y is added, whatever the clocks say."""
        ledger.upsert_student("Amit", student_id="s1")
        ledger.upsert_session("2024-05-01", [("s1", 1.0)], session_id="x")
        cloud = CanonicalState(
            students=[Student(id="s1", name="Amit")],
            sessions=[_session("x", "s1", 2.0), _session("y", "s1", 1.5)],
        ).with_clock(FAR_FUTURE)
        remote_records["user-1"] = _record("user-1", cloud, updated_at=FAR_FUTURE)

        outcome = asyncio.run(orchestrator.run())

        assert outcome is SyncOutcome.MERGED
        durations = {sess.id: sess.rows[0].duration for sess in ledger.state.sessions}
        assert durations == {"x": 1.0, "y": 1.5}
        assert ledger.state.updated_at > FAR_FUTURE

        pushed = remote_records["user-1"].payload
        assert {sess["id"] for sess in pushed["sessions"]} == {"x", "y"}
        assert pushed == ledger.state.to_document()


class TestFixedPoint:

    def test_second_sync_after_push_is_in_sync(self, ledger, orchestrator, remote_records):
        ledger.upsert_student("Amit", student_id="s1")
        asyncio.run(orchestrator.run())
        before = remote_records["user-1"]

        assert asyncio.run(orchestrator.run()) is SyncOutcome.IN_SYNC
        assert remote_records["user-1"] == before

    def test_second_sync_after_merge_is_in_sync(self, ledger, orchestrator, remote_records):
        ledger.upsert_student("Amit", student_id="s1")
        cloud = CanonicalState(students=[Student(id="s2", name="Riya")])
        remote_records["user-1"] = _record("user-1", cloud)

        assert asyncio.run(orchestrator.run()) is SyncOutcome.MERGED
        clock = ledger.state.updated_at
        assert asyncio.run(orchestrator.run()) is SyncOutcome.IN_SYNC
        assert ledger.state.updated_at == clock


class TestOversizedRemoteValues:

    def test_huge_numbers_in_cloud_payload_are_zeroed(self, ledger, orchestrator, remote_records):
        remote_records["user-1"] = _record("user-1", payload={
            "globalRate": 10**400,
            "students": [],
            "sessions": [],
            "payments": [{"id": "p1", "date": "2024-05-04", "amount": 10**400}],
            "meta": {"updatedAt": 10**400},
        })

        assert asyncio.run(orchestrator.pull()) is SyncOutcome.ADOPTED_CLOUD
        assert ledger.state.payments[0].amount == 0
        assert ledger.state.global_rate == 0


class TestEmptySides:
    """Data is never lost to an empty replica."""

    def test_empty_remote_record_is_overwritten(self, ledger, orchestrator, remote_records):
        remote_records["user-1"] = _record("user-1", payload={})
        ledger.upsert_student("Amit", student_id="s1")

        outcome = asyncio.run(orchestrator.run())

        assert outcome is SyncOutcome.PUSHED_LOCAL
        assert remote_records["user-1"].payload["students"][0]["id"] == "s1"

    def test_empty_local_never_overwrites_remote(self, ledger, orchestrator, remote_records):
        cloud = CanonicalState(students=[Student(id="s1", name="Amit")])
        remote_records["user-1"] = _record("user-1", cloud)
        before = remote_records["user-1"]

        outcome = asyncio.run(orchestrator.run())

        assert outcome is SyncOutcome.ADOPTED_CLOUD
        assert remote_records["user-1"] == before
        assert ledger.state.students[0].id == "s1"

    def test_nothing_anywhere_is_noop(self, orchestrator, remote_records):
        assert asyncio.run(orchestrator.run()) is SyncOutcome.NOOP
        assert remote_records == {}

    def test_empty_record_and_empty_local_is_noop(self, orchestrator, remote_records):
        remote_records["user-1"] = _record("user-1", payload={"students": []})
        assert asyncio.run(orchestrator.run()) is SyncOutcome.NOOP
        assert remote_records["user-1"].payload == {"students": []}

    def test_unreadable_cloud_payload_counts_as_empty(self, ledger, orchestrator, remote_records):
        remote_records["user-1"] = _record("user-1", payload={"students": "???"})
        ledger.upsert_student("Amit", student_id="s1")
        assert asyncio.run(orchestrator.run()) is SyncOutcome.PUSHED_LOCAL


class TestSkipsAndFailures:

    def test_signed_out_does_nothing(self, ledger, orchestrator, identity, remote_records):
        ledger.upsert_student("Amit", student_id="s1")
        identity.sign_out()

        assert asyncio.run(orchestrator.run()) is SyncOutcome.SKIPPED_UNAUTHENTICATED
        assert remote_records == {}

    def test_disabled_does_nothing(self, ledger, remote, identity, remote_records):
        ledger.upsert_student("Amit", student_id="s1")
        orchestrator = SyncOrchestrator(ledger, remote, identity, enabled=False)

        assert asyncio.run(orchestrator.run()) is SyncOutcome.SKIPPED_DISABLED
        assert remote_records == {}

    def test_fetch_failure_leaves_local_untouched(self, ledger, identity):
        ledger.upsert_student("Amit", student_id="s1")
        before = ledger.state
        remote = FailingRemote(identity, fetch_error=SyncUnavailableError("offline"))
        orchestrator = SyncOrchestrator(ledger, remote, identity)

        assert asyncio.run(orchestrator.run()) is SyncOutcome.UNAVAILABLE
        assert ledger.state is before
        assert orchestrator.phase is SyncPhase.IDLE

    def test_push_failure_keeps_local_data(self, ledger, identity):
        ledger.upsert_student("Amit", student_id="s1")
        remote = FailingRemote(identity, push_error=SyncUnavailableError("quota"))
        orchestrator = SyncOrchestrator(ledger, remote, identity)

        assert asyncio.run(orchestrator.run()) is SyncOutcome.UNAVAILABLE
        assert ledger.state.students[0].id == "s1"
        assert remote.records == {}

    def test_local_save_failure_on_cloud_adoption_is_unavailable(self, identity):
        backend = FullDiskBackend()
        backend.full = True
        ledger = LedgerStore(LocalStateStore(backend, current_key="k"))
        records = {"user-1": _record("user-1", payload={
            "students": [],
            "sessions": [],
            "payments": [{"id": "p1", "date": "2024-05-04", "amount": 500}],
        })}
        orchestrator = SyncOrchestrator(ledger, InMemoryRemoteStore(identity, records), identity)

        assert asyncio.run(orchestrator.pull()) is SyncOutcome.UNAVAILABLE
        assert ledger.state.has_data() is False
        assert orchestrator.in_flight is False

    def test_local_save_failure_on_merge_pushes_nothing(self, identity):
        """Test a merge that cannot be saved locally leaves both replicas as they were."""
        backend = FullDiskBackend()
        ledger = LedgerStore(LocalStateStore(backend, current_key="k"))
        ledger.upsert_student("Amit", student_id="s1")
        ledger.upsert_session("2024-05-01", [("s1", 1.0)], session_id="x")
        before = ledger.state
        cloud = CanonicalState(
            students=[Student(id="s1", name="Amit")],
            sessions=[_session("y", "s1", 1.5)],
        )
        record = _record("user-1", cloud)
        records = {"user-1": record}
        orchestrator = SyncOrchestrator(ledger, InMemoryRemoteStore(identity, records), identity)
        backend.full = True

        assert asyncio.run(orchestrator.run()) is SyncOutcome.UNAVAILABLE
        assert ledger.state is before
        assert records["user-1"] is record
        assert [sess.id for sess in ledger.state.sessions] == ["x"]

    def test_unexpected_error_propagates_and_releases_flag(self, ledger, identity):
        remote = FailingRemote(identity, fetch_error=RuntimeError("boom"))
        orchestrator = SyncOrchestrator(ledger, remote, identity)

        with pytest.raises(RuntimeError):
            asyncio.run(orchestrator.run())

        assert orchestrator.in_flight is False
        assert orchestrator.phase is SyncPhase.IDLE

    def test_background_error_is_logged_not_raised(self, ledger, identity):
        remote = FailingRemote(identity, fetch_error=RuntimeError("boom"))
        orchestrator = SyncOrchestrator(ledger, remote, identity)

        async def scenario():
            return await orchestrator.trigger()

        assert asyncio.run(scenario()) is SyncOutcome.UNAVAILABLE
        assert orchestrator.in_flight is False


class TestSingleFlight:
    """Tests for dropping requests while an attempt is running."""

    def test_concurrent_requests_are_dropped(self, ledger, identity):
        ledger.upsert_student("Amit", student_id="s1")

        async def scenario():
            remote = BlockingRemote(identity)
            orchestrator = SyncOrchestrator(ledger, remote, identity)
            first = asyncio.create_task(orchestrator.run())
            await remote.fetch_started.wait()

            assert orchestrator.in_flight is True
            assert orchestrator.phase is SyncPhase.FETCHING
            second = await orchestrator.run()
            dropped = orchestrator.trigger()

            remote.release.set()
            return await first, second, dropped, orchestrator

        first, second, dropped, orchestrator = asyncio.run(scenario())

        assert first is SyncOutcome.PUSHED_INITIAL
        assert second is SyncOutcome.SKIPPED_IN_FLIGHT
        assert dropped is None
        assert orchestrator.in_flight is False

    def test_mutation_during_fetch_is_pushed(self, ledger, identity):
        """Test local state is read after the fetch, not before."""

        async def scenario():
            remote = BlockingRemote(identity)
            orchestrator = SyncOrchestrator(ledger, remote, identity)
            task = asyncio.create_task(orchestrator.run())
            await remote.fetch_started.wait()
            ledger.upsert_student("Late", student_id="late")
            remote.release.set()
            return await task, remote

        outcome, remote = asyncio.run(scenario())

        assert outcome is SyncOutcome.PUSHED_INITIAL
        assert remote.records["user-1"].payload["students"][0]["id"] == "late"


class TestTrigger:

    def test_trigger_without_event_loop_is_dropped(self, orchestrator):
        assert orchestrator.trigger() is None
        assert orchestrator.in_flight is False

    def test_mutation_triggers_background_sync(self, ledger, orchestrator, remote_records):
        tasks = []
        ledger.attach_sync(lambda: tasks.append(orchestrator.trigger()))

        async def scenario():
            ledger.upsert_student("Amit", student_id="s1")
            return await tasks[0]

        assert asyncio.run(scenario()) is SyncOutcome.PUSHED_INITIAL
        assert remote_records["user-1"].payload["students"][0]["name"] == "Amit"

    def test_adopting_cloud_does_not_trigger(self, ledger, orchestrator, remote_records):
        calls = []
        ledger.attach_sync(lambda: calls.append(1))
        cloud = CanonicalState(students=[Student(id="s1", name="Amit")])
        remote_records["user-1"] = _record("user-1", cloud)

        asyncio.run(orchestrator.run())

        assert calls == []


class TestDevices:
    """Two devices of one user sharing the remote record."""

    def _device(self, remote_records):
        identity = IdentityProvider("user-1")
        ledger = LedgerStore(LocalStateStore(InMemoryBackend(), current_key="k"))
        orchestrator = SyncOrchestrator(
            ledger, InMemoryRemoteStore(identity, remote_records), identity
        )
        return ledger, orchestrator

    def test_devices_converge(self, remote_records):
        ledger_a, sync_a = self._device(remote_records)
        ledger_b, sync_b = self._device(remote_records)

        ledger_a.upsert_student("Amit", student_id="a")
        assert asyncio.run(sync_a.run()) is SyncOutcome.PUSHED_INITIAL

        ledger_b.upsert_student("Riya", student_id="b")
        assert asyncio.run(sync_b.run()) is SyncOutcome.MERGED

        asyncio.run(sync_a.run())

        ids_a = {st.id for st in ledger_a.state.students}
        ids_b = {st.id for st in ledger_b.state.students}
        assert ids_a == ids_b == {"a", "b"}

    def test_sign_in_and_pull(self, remote_records):
        cloud = CanonicalState(students=[Student(id="s1", name="Amit")])
        remote_records["user-2"] = _record("user-2", cloud)
        identity = IdentityProvider()
        ledger = LedgerStore(LocalStateStore(InMemoryBackend(), current_key="k"))
        orchestrator = SyncOrchestrator(
            ledger, InMemoryRemoteStore(identity, remote_records), identity
        )

        outcome = asyncio.run(sign_in_and_pull(identity, orchestrator, "user-2"))

        assert outcome is SyncOutcome.ADOPTED_CLOUD
        assert identity.current_identity() == "user-2"
        assert ledger.state.students[0].name == "Amit"


class TestAppComponents:

    @pytest.fixture(autouse=True)
    def local_dir(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("LEDGER_LOCAL_DATA_DIR", str(tmp_path / "data"))
        get_settings.cache_clear()
        yield tmp_path / "data"
        get_settings.cache_clear()

    def test_local_only_wiring(self, local_dir):
        ledger, orchestrator, identity = create_app_components(use_remote=False)

        ledger.upsert_student("Amit", student_id="s1")

        assert (local_dir / "tuition_accounts_v3.json").exists()
        assert identity.is_authenticated is False
        assert asyncio.run(orchestrator.run()) is SyncOutcome.SKIPPED_DISABLED

    def test_missing_sheets_config_disables_sync(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        ledger, orchestrator, _ = create_app_components(
            identity=IdentityProvider("user-1")
        )

        assert asyncio.run(orchestrator.run()) is SyncOutcome.SKIPPED_DISABLED
