"""Tests for the state reconciliation engine."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from study_sync.config import SyncConfig
from study_sync.engine import ReconciliationEngine, SyncState
from study_sync.exceptions import AuthError, NetworkError, ValidationError
from study_sync.features import add_task
from study_sync.identity import IdentityState, StaticIdentityProvider
from study_sync.local import SNAPSHOT_KEY, MemoryLocalStore, load_snapshot, save_snapshot
from study_sync.snapshot import Event, Snapshot, Task

USER = IdentityState.authenticated("user-1")
OTHER_USER = IdentityState.authenticated("user-2")


@pytest.fixture
def engine(local_store, remote_store) -> ReconciliationEngine:
    """Engine wired to the in-memory stores."""
    return ReconciliationEngine(local_store, remote_store)


class TestInitialize:
    """Tests for the load sequence."""

    async def test_anonymous_loads_local_and_opens_gate(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """Anonymous sessions trust local data and never touch the remote store."""
        local = Snapshot.build(tasks=[Task(1, "local task")])
        await save_snapshot(local_store, local)

        await engine.initialize(IdentityState.anonymous())

        assert engine.get_snapshot() == local
        assert engine.gate_open is True
        assert remote_store.reads == []

    async def test_unknown_identity_loads_local_only(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """An unresolved session shows local data but keeps the gate closed."""
        local = Snapshot.build(login_streak=3)
        await save_snapshot(local_store, local)

        await engine.initialize(IdentityState.unknown())

        assert engine.get_snapshot() == local
        assert engine.gate_open is False
        assert remote_store.reads == []
        assert remote_store.writes == []

    async def test_remote_document_wins(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """Remote data replaces every local slice and is re-persisted locally."""
        local = Snapshot.build(
            tasks=[Task(1, "stale")],
            study_durations={"2024-01-01": 60},
            login_streak=9,
        )
        remote = Snapshot.build(
            tasks=[Task(2, "fresh")],
            scheduled_events={"2024-02-01": [Event(5, "exam", "09:00")]},
        )
        await save_snapshot(local_store, local)
        remote_store.documents["user-1"] = remote

        await engine.initialize(USER)

        assert engine.get_snapshot() == remote
        assert await load_snapshot(local_store) == remote
        assert engine.gate_open is True
        assert remote_store.writes == []

    async def test_missing_remote_document_keeps_local(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """A new account starts from whatever the device already had."""
        local = Snapshot.build(tasks=[Task(1, "offline work")])
        await save_snapshot(local_store, local)

        await engine.initialize(USER)

        assert engine.get_snapshot() == local
        assert engine.gate_open is True
        assert remote_store.writes == []

    async def test_push_local_on_new_identity(
        self, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """With push enabled, a new account receives the local snapshot right away."""
        local = Snapshot.build(tasks=[Task(1, "offline work")])
        await save_snapshot(local_store, local)
        engine = ReconciliationEngine(
            local_store, remote_store, SyncConfig(push_local_on_new_identity=True)
        )

        await engine.initialize(USER)

        assert remote_store.writes == [("user-1", local)]

    async def test_concurrent_initialize_reads_once(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """Re-entering initialize for the same identity joins the in-flight load."""
        await asyncio.gather(engine.initialize(USER), engine.initialize(USER))
        await engine.initialize(USER)

        assert remote_store.reads == ["user-1"]

    async def test_corrupt_local_data_starts_empty(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, caplog
    ) -> None:
        """Unreadable local data is logged and replaced by an empty snapshot."""
        await local_store.write(SNAPSHOT_KEY, b"{not json")

        with caplog.at_level(logging.ERROR):
            await engine.initialize(IdentityState.anonymous())

        assert engine.get_snapshot() == Snapshot.empty()
        assert "Could not load local snapshot" in caplog.text

    @pytest.mark.parametrize(
        "document",
        [
            b'{"todos": [{"id": "abc", "text": "x"}]}',
            b'{"todos": [{"id": 1, "text": "x", "priority": "high"}]}',
            b'{"events": {"2024-01-01": 5}}',
            b"[1, 2]",
        ],
    )
    async def test_malformed_local_values_start_empty(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, document: bytes
    ) -> None:
        """Well-formed JSON with bad values is treated like any corrupt cache."""
        await local_store.write(SNAPSHOT_KEY, document)

        await engine.initialize(IdentityState.anonymous())

        assert engine.get_snapshot() == Snapshot.empty()
        assert engine.gate_open is True

    async def test_without_remote_store_gate_opens(self, local_store: MemoryLocalStore) -> None:
        """Signed-in users without a configured account store stay local."""
        engine = ReconciliationEngine(local_store)

        await engine.initialize(USER)
        await engine.mutate({"login_streak": 2})

        assert engine.gate_open is True
        assert (await load_snapshot(local_store)).login_streak == 2


class TestReadFailure:
    """Tests for remote read failures."""

    async def test_fail_open_keeps_local_and_logs(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store, caplog
    ) -> None:
        """A failed read still opens the gate with the local snapshot."""
        local = Snapshot.build(tasks=[Task(1, "local")])
        await save_snapshot(local_store, local)
        remote_store.read_error = NetworkError("read_document", "user-1")

        with caplog.at_level(logging.WARNING):
            await engine.initialize(USER)

        assert engine.gate_open is True
        assert engine.get_snapshot() == local
        assert engine.get_sync_status().state == SyncState.ERROR
        assert "continuing with local data" in caplog.text

    async def test_fail_open_allows_writes(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """After a failed-but-handled read, mutations reach the remote store."""
        remote_store.read_error = AuthError("user-1", "token expired")
        await engine.initialize(USER)
        remote_store.read_error = None

        await engine.mutate({"login_streak": 1})

        assert len(remote_store.writes) == 1

    async def test_fail_closed_blocks_until_successful_read(
        self, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """With fail-closed policy the gate only opens after a successful read."""
        engine = ReconciliationEngine(
            local_store, remote_store, SyncConfig(fail_open_on_read_error=False)
        )
        remote_store.read_error = NetworkError("read_document", "user-1")

        await engine.initialize(USER)
        await engine.mutate({"login_streak": 1})

        assert engine.gate_open is False
        assert remote_store.writes == []
        assert engine.blocked_writes == 1

        remote_store.read_error = None
        await engine.initialize(USER)
        await engine.mutate({"login_streak": 2})

        assert engine.gate_open is True
        assert remote_store.reads == ["user-1", "user-1"]
        assert len(remote_store.writes) == 1


class TestGate:
    """Tests for the anti-clobber gate."""

    async def test_no_remote_write_before_read_resolves(
        self, engine: ReconciliationEngine, remote_store, caplog
    ) -> None:
        """Mutations during the first remote read are kept off the remote store."""
        release = remote_store.hold_reads("user-1")
        init = asyncio.create_task(engine.initialize(USER))
        await remote_store.read_started["user-1"].wait()

        with caplog.at_level(logging.WARNING):
            await engine.mutate({"tasks": [Task(1, "early")]})
            await engine.mutate({"login_streak": 4})

        assert remote_store.writes == []
        assert engine.blocked_writes == 2
        assert "Sync blocked" in caplog.text

        release.set()
        await init

        await engine.mutate({"tasks": [Task(2, "after")]})
        await engine.mutate({"login_streak": 5})

        assert len(remote_store.writes) == 2

    async def test_gate_rearmed_by_identity_transition(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """Signing in as someone else closes the gate until their read completes."""
        await engine.initialize(USER)
        release = remote_store.hold_reads("user-2")
        init = asyncio.create_task(engine.initialize(OTHER_USER))
        await remote_store.read_started["user-2"].wait()

        assert engine.gate_open is False
        await engine.mutate({"login_streak": 1})
        assert remote_store.writes == []

        release.set()
        await init
        assert engine.gate_open is True

    async def test_anonymous_mutations_never_blocked(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """Without an account there is nothing to block or warn about."""
        await engine.initialize(IdentityState.anonymous())
        await engine.mutate({"login_streak": 1})

        assert engine.blocked_writes == 0
        assert remote_store.writes == []


class TestMutate:
    """Tests for the mutation sequence."""

    async def test_mutation_during_first_local_read_kept(
        self, slow_local_store, remote_store
    ) -> None:
        """An edit made while the cache is still loading survives the load."""
        await save_snapshot(slow_local_store, Snapshot.build(login_streak=4))
        engine = ReconciliationEngine(slow_local_store, remote_store)

        init = asyncio.create_task(engine.initialize(IdentityState.anonymous()))
        await asyncio.sleep(0.005)
        await engine.mutate({"tasks": [Task(1, "read ch.1")]})
        await init

        snapshot = engine.get_snapshot()
        assert snapshot.tasks == (Task(1, "read ch.1"),)
        assert snapshot.login_streak == 4
        assert await load_snapshot(slow_local_store) == snapshot

    async def test_mutation_before_initialize_kept(self, slow_local_store, remote_store) -> None:
        """Edits made before the first load are merged into the cached data."""
        await save_snapshot(slow_local_store, Snapshot.build(login_streak=4))
        engine = ReconciliationEngine(slow_local_store, remote_store)

        await engine.mutate({"study_durations": {"2024-01-01": 30}})
        await engine.initialize(IdentityState.anonymous())

        snapshot = engine.get_snapshot()
        assert snapshot.study_durations == {"2024-01-01": 30}
        assert snapshot.login_streak == 4
        assert await load_snapshot(slow_local_store) == snapshot

    async def test_mutation_during_reload_kept(self, slow_local_store, remote_store) -> None:
        """Resolving an unknown session does not roll back edits made meanwhile."""
        await save_snapshot(slow_local_store, Snapshot.build(login_streak=4))
        engine = ReconciliationEngine(slow_local_store, remote_store)
        await engine.initialize(IdentityState.unknown())

        init = asyncio.create_task(engine.initialize(IdentityState.anonymous()))
        await asyncio.sleep(0.005)
        await engine.mutate({"tasks": [Task(1, "read ch.1")]})
        await init

        snapshot = engine.get_snapshot()
        assert snapshot.tasks == (Task(1, "read ch.1"),)
        assert snapshot.login_streak == 4
        assert await load_snapshot(slow_local_store) == snapshot

        await engine.mutate({"login_streak": 5})
        assert (await load_snapshot(slow_local_store)).tasks == (Task(1, "read ch.1"),)

    async def test_invalid_event_bucket_rejected(self, engine: ReconciliationEngine) -> None:
        await engine.initialize(IdentityState.anonymous())

        with pytest.raises(ValidationError):
            await engine.mutate({"scheduled_events": {"2024-01-01": 5}})

        assert engine.get_snapshot() == Snapshot.empty()

    async def test_untouched_slices_carried_over(self, engine: ReconciliationEngine) -> None:
        """Replacing one slice leaves every other slice as it was."""
        await engine.initialize(IdentityState.anonymous())
        events = {"2024-03-01": [Event(1, "lab", "14:00")]}
        await engine.mutate({"tasks": [Task(1, "T1")], "scheduled_events": events})

        await engine.mutate({"tasks": [Task(2, "T2")]})

        snapshot = engine.get_snapshot()
        assert snapshot.tasks == (Task(2, "T2"),)
        assert snapshot.scheduled_events == {"2024-03-01": (Event(1, "lab", "14:00"),)}

    async def test_snapshot_updated_before_io(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """Readers see the mutation while the remote write is still in flight."""
        await engine.initialize(USER)
        remote_store.write_delays = [0.05]

        pending = asyncio.create_task(engine.mutate({"login_streak": 7}))
        await asyncio.sleep(0.01)

        assert engine.get_snapshot().login_streak == 7
        assert engine.get_sync_status().is_syncing is True
        await pending

    async def test_local_written_before_return(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """The local copy holds the new snapshot even when the remote write fails."""
        await engine.initialize(USER)
        remote_store.write_error = NetworkError("write_document", "user-1")

        await engine.mutate({"study_durations": {"2024-01-02": 30}})

        assert (await load_snapshot(local_store)).study_durations == {"2024-01-02": 30}

    async def test_local_failure_does_not_raise(
        self, failing_local_store, remote_store, caplog
    ) -> None:
        """A failed local write is logged; memory and remote still get the update."""
        engine = ReconciliationEngine(failing_local_store, remote_store)
        await engine.initialize(USER)

        with caplog.at_level(logging.ERROR):
            await engine.mutate({"login_streak": 3})

        assert engine.get_snapshot().login_streak == 3
        assert remote_store.documents["user-1"].login_streak == 3
        assert "Local persist failed" in caplog.text

    async def test_invalid_partial_changes_nothing(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore
    ) -> None:
        """Unknown slice names are rejected before any state changes."""
        await engine.initialize(IdentityState.anonymous())

        with pytest.raises(ValidationError):
            await engine.mutate({"todos": []})

        assert engine.get_snapshot() == Snapshot.empty()
        assert await local_store.read(SNAPSHOT_KEY) is None

    async def test_remote_write_failure_sets_error_status(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """Write failures only show up in the status, and clear on the next success."""
        await engine.initialize(USER)
        remote_store.write_error = NetworkError("write_document", "user-1")

        await engine.mutate({"login_streak": 1})

        status = engine.get_sync_status()
        assert status.state == SyncState.ERROR
        assert status.last_error is not None

        remote_store.write_error = None
        await engine.mutate({"login_streak": 2})

        status = engine.get_sync_status()
        assert status.state == SyncState.IDLE
        assert status.last_error is None
        assert status.last_synced_at is not None
        assert remote_store.documents["user-1"].login_streak == 2


class TestOrdering:
    """Tests for remote write ordering under concurrency."""

    async def test_later_mutation_wins_over_slow_earlier_write(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """A slow first write cannot land after a faster second one."""
        await engine.initialize(USER)
        remote_store.write_delays = [0.05, 0.0]

        first = asyncio.create_task(engine.mutate({"tasks": [Task(1, "A")]}))
        second = asyncio.create_task(engine.mutate({"tasks": [Task(2, "B")]}))
        await asyncio.gather(first, second)

        assert remote_store.documents["user-1"].tasks == (Task(2, "B"),)
        assert [s.tasks for _, s in remote_store.completed_writes] == [
            (Task(1, "A"),),
            (Task(2, "B"),),
        ]

    async def test_each_mutation_attempts_one_write(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """Rapid mutations are all pushed, in call order."""
        await engine.initialize(USER)
        remote_store.write_delays = [0.02, 0.01, 0.0]

        await asyncio.gather(*(engine.mutate({"login_streak": n}) for n in (1, 2, 3)))

        assert [s.login_streak for _, s in remote_store.writes] == [1, 2, 3]
        assert engine.get_sync_status().pending_writes == 0

    async def test_stale_write_after_transition_discarded(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """Queued writes for a previous identity are dropped after switching accounts."""
        await engine.initialize(USER)
        remote_store.write_delays = [0.05]

        first = asyncio.create_task(engine.mutate({"login_streak": 1}))
        second = asyncio.create_task(engine.mutate({"login_streak": 2}))
        await asyncio.sleep(0)

        await engine.initialize(OTHER_USER)
        await asyncio.gather(first, second)

        assert [(identity, s.login_streak) for identity, s in remote_store.writes] == [
            ("user-1", 1)
        ]
        assert "user-2" not in remote_store.documents

    async def test_late_read_for_previous_identity_discarded(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """A remote read that completes after an account switch is ignored."""
        first_doc = Snapshot.build(tasks=[Task(1, "first account")])
        second_doc = Snapshot.build(tasks=[Task(2, "second account")])
        remote_store.documents.update({"user-1": first_doc, "user-2": second_doc})
        release_first = remote_store.hold_reads("user-1")

        first = asyncio.create_task(engine.initialize(USER))
        await remote_store.read_started["user-1"].wait()
        await engine.initialize(OTHER_USER)

        release_first.set()
        await first

        assert engine.identity == OTHER_USER
        assert engine.get_snapshot() == second_doc
        assert await load_snapshot(local_store) == second_doc

    async def test_wait_for_pending_writes(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """Flushing waits for every queued remote write."""
        await engine.initialize(USER)
        remote_store.write_delays = [0.02, 0.02]

        tasks = [asyncio.create_task(engine.mutate({"login_streak": n})) for n in (1, 2)]
        await asyncio.sleep(0)
        await engine.wait_for_pending_writes()

        assert len(remote_store.completed_writes) == 2
        await asyncio.gather(*tasks)


class TestIdentityLifecycle:
    """Tests for sign-out and provider binding."""

    async def test_sign_out_keeps_local_by_default(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """Signing out without clearing keeps the device copy."""
        remote_store.documents["user-1"] = Snapshot.build(login_streak=5)
        await engine.initialize(USER)

        await engine.sign_out()

        assert engine.identity == IdentityState.anonymous()
        assert engine.get_snapshot().login_streak == 5
        assert engine.gate_open is True

    async def test_sign_out_with_clear(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """Clearing on sign-out empties memory and the local cache, not the account."""
        remote_store.documents["user-1"] = Snapshot.build(login_streak=5)
        await engine.initialize(USER)

        await engine.sign_out(clear_local=True)

        assert engine.get_snapshot() == Snapshot.empty()
        assert local_store.keys() == []
        assert remote_store.documents["user-1"].login_streak == 5

    async def test_bind_follows_provider(self, engine: ReconciliationEngine, remote_store) -> None:
        """The engine re-initializes on every provider transition."""
        remote_store.documents["user-1"] = Snapshot.build(login_streak=8)
        provider = StaticIdentityProvider()

        unsubscribe = await engine.bind(provider)
        assert engine.gate_open is False

        await provider.sign_in("user-1")
        assert engine.identity.user_id == "user-1"
        assert engine.get_snapshot().login_streak == 8
        assert engine.gate_open is True

        await provider.sign_out()
        assert engine.identity == IdentityState.anonymous()

        unsubscribe()
        await provider.sign_in("user-2")
        assert engine.identity == IdentityState.anonymous()

    async def test_close_closes_remote(self, engine: ReconciliationEngine, remote_store) -> None:
        await engine.initialize(USER)
        await engine.close()
        assert remote_store.closed is True


class TestScenarios:
    """End-to-end scenarios."""

    async def test_anonymous_user_adds_task(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """Anonymous task creation only touches the local store."""
        await engine.initialize(IdentityState.anonymous())

        tasks = add_task(engine.get_snapshot().tasks, "read ch.1")
        await engine.mutate({"tasks": tasks})

        document = json.loads(await local_store.read(SNAPSHOT_KEY))
        assert len(document["todos"]) == 1
        assert document["todos"][0]["text"] == "read ch.1"
        assert document["todos"][0]["completed"] is False
        assert remote_store.reads == []
        assert remote_store.writes == []

    async def test_new_account_first_mutation_pushes(
        self, engine: ReconciliationEngine, remote_store
    ) -> None:
        """A brand-new account is written on its first mutation."""
        await engine.initialize(USER)

        assert engine.get_snapshot() == Snapshot.empty()
        assert engine.gate_open is True
        assert remote_store.writes == []

        await engine.mutate({"tasks": [Task(1, "first")]})

        assert remote_store.writes == [("user-1", engine.get_snapshot())]

    async def test_remote_durations_replace_empty_cache(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store
    ) -> None:
        """Study time from another device shows up on a fresh one."""
        remote_store.documents["user-1"] = Snapshot.build(study_durations={"2024-01-01": 600})
        await save_snapshot(local_store, Snapshot.build(study_durations={}))

        await engine.initialize(USER)

        assert engine.get_snapshot().study_durations == {"2024-01-01": 600}
        assert (await load_snapshot(local_store)).study_durations == {"2024-01-01": 600}

    async def test_network_failure_on_read(
        self, engine: ReconciliationEngine, local_store: MemoryLocalStore, remote_store, caplog
    ) -> None:
        """A read outage leaves local data in place and opens the gate."""
        local = Snapshot.build(login_streak=2)
        await save_snapshot(local_store, local)
        remote_store.read_error = NetworkError("read_document", "user-1", OSError("offline"))

        with caplog.at_level(logging.WARNING):
            await engine.initialize(USER)

        assert engine.gate_open is True
        assert engine.get_snapshot() == local
        assert any(record.levelno == logging.WARNING for record in caplog.records)
