"""Tests for the health and cleanup sweeps."""
import asyncio
import time

import pytest

from baidupan_cli.core.maintenance import MaintenanceScheduler
from baidupan_cli.models.files import credential_id
from baidupan_cli.storage.blob_store import MemoryBlobStore
from baidupan_cli.storage.credential_store import (
    BLOCKLIST_KEY,
    CLEAN_HISTORY_KEY,
    POOL_KEY,
    CredentialStore,
)

from conftest import FakeRemoteSession

A, B, C = "BDUSS=aaa", "BDUSS=bbb", "BDUSS=ccc"
ID_A, ID_B, ID_C = (credential_id(s) for s in (A, B, C))


class SessionRecorder:
    def __init__(self, dead=(), delete_fails=()):
        self.dead = set(dead)
        self.delete_fails = set(delete_fails)
        self.sessions = {}

    def __call__(self, credential, client_ip):
        session = FakeRemoteSession(credential, alive=credential.id not in self.dead)
        session.delete_fails = credential.id in self.delete_fails
        self.sessions[credential.id] = session
        return session


class BlocklistWriteFails(MemoryBlobStore):
    async def put(self, key, value):
        if key == BLOCKLIST_KEY:
            raise OSError("disk full")
        await super().put(key, value)


async def _persistent_store(history=None, blocked=None):
    blob = MemoryBlobStore()
    await blob.put(POOL_KEY, [A, B, C])
    if history is not None:
        await blob.put(CLEAN_HISTORY_KEY, history)
    if blocked is not None:
        await blob.put(BLOCKLIST_KEY, blocked)
    return CredentialStore(blob), blob


class TestHealthSweep:
    @pytest.mark.asyncio
    async def test_blocklist_is_replaced_with_dead_set(self, config):
        store, blob = await _persistent_store(blocked=[ID_A])
        factory = SessionRecorder(dead=[ID_C])

        results = await MaintenanceScheduler(config, store, factory).run_health_sweep()

        assert {(r.credential_id, r.alive) for r in results} == {
            (ID_A, True),
            (ID_B, True),
            (ID_C, False),
        }
        assert await blob.get(BLOCKLIST_KEY) == [ID_C]

    @pytest.mark.asyncio
    async def test_stateless_sweep_only_reports(self, config):
        store = CredentialStore(None, [A, B])
        factory = SessionRecorder(dead=[ID_B])

        results = await MaintenanceScheduler(config, store, factory).run_health_sweep()

        assert [r.alive for r in results] == [True, False]
        assert await store.load_blocklist() == set()

    @pytest.mark.asyncio
    async def test_no_credentials(self, config):
        scheduler = MaintenanceScheduler(config, CredentialStore(None, []), SessionRecorder())

        assert await scheduler.run_health_sweep() == []


class TestCleanupSweep:
    @pytest.mark.asyncio
    async def test_least_recently_cleaned_go_first(self, config):
        config.cleanup_batch_size = 2
        store, blob = await _persistent_store(history={ID_A: 300.0, ID_B: 100.0})
        factory = SessionRecorder()

        report = await MaintenanceScheduler(config, store, factory).run_cleanup_sweep()

        assert report.strategy == "lru"
        assert report.total_credentials == 3
        assert report.statuses == {ID_C: "success", ID_B: "success"}
        assert factory.sessions[ID_C].deleted == [[config.scratch_root]]

        history = await blob.get(CLEAN_HISTORY_KEY)
        assert history[ID_A] == 300.0
        assert history[ID_B] > time.time() - 60
        assert history[ID_C] > time.time() - 60

    @pytest.mark.asyncio
    async def test_dead_credential_is_skipped_and_blocked(self, config):
        store, blob = await _persistent_store()
        factory = SessionRecorder(dead=[ID_B])

        report = await MaintenanceScheduler(config, store, factory).run_cleanup_sweep()

        assert report.statuses[ID_B] == "skipped"
        assert ID_B in await store.load_blocklist()
        assert ID_B not in await blob.get(CLEAN_HISTORY_KEY)

    @pytest.mark.asyncio
    async def test_delete_failure_is_reported(self, config):
        store, blob = await _persistent_store()
        factory = SessionRecorder(delete_fails=[ID_A])

        report = await MaintenanceScheduler(config, store, factory).run_cleanup_sweep()

        assert report.statuses[ID_A] == "failed"
        assert sorted(report.cleaned) == sorted([ID_B, ID_C])

    @pytest.mark.asyncio
    async def test_blocklist_write_failure_does_not_abort_sweep(self, config):
        blob = BlocklistWriteFails()
        await blob.put(POOL_KEY, [A, B, C])
        store = CredentialStore(blob)
        factory = SessionRecorder(dead=[ID_B])

        report = await MaintenanceScheduler(config, store, factory).run_cleanup_sweep()

        assert report.statuses == {ID_A: "success", ID_B: "skipped", ID_C: "success"}
        assert sorted(await blob.get(CLEAN_HISTORY_KEY)) == sorted([ID_A, ID_C])

    @pytest.mark.asyncio
    async def test_history_drops_credentials_no_longer_pooled(self, config):
        store, blob = await _persistent_store(history={"0123456789ab": 5.0})

        await MaintenanceScheduler(config, store, SessionRecorder()).run_cleanup_sweep()

        assert "0123456789ab" not in await blob.get(CLEAN_HISTORY_KEY)

    @pytest.mark.asyncio
    async def test_stateless_mode_samples_randomly(self, config):
        config.cleanup_batch_size = 2
        store = CredentialStore(None, [A, B, C])

        report = await MaintenanceScheduler(
            config, store, SessionRecorder()
        ).run_cleanup_sweep()

        assert report.strategy == "random"
        assert len(report.statuses) == 2
        assert set(report.statuses) <= {ID_A, ID_B, ID_C}
        assert await store.load_history() is None

    @pytest.mark.asyncio
    async def test_no_credentials(self, config):
        scheduler = MaintenanceScheduler(config, CredentialStore(None, []), SessionRecorder())

        report = await scheduler.run_cleanup_sweep()

        assert report.statuses == {}


class TestPeriodicLoops:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, config):
        scheduler = MaintenanceScheduler(config, CredentialStore(None, []), SessionRecorder())

        scheduler.start()
        assert scheduler.running

        await scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_loop_survives_sweep_errors(self, config):
        scheduler = MaintenanceScheduler(config, CredentialStore(None, []), SessionRecorder())
        calls = []

        async def flaky_sweep():
            calls.append(1)
            if len(calls) == 3:
                raise asyncio.CancelledError()
            raise RuntimeError("boom")

        await scheduler._periodic("health", flaky_sweep, 0)

        assert len(calls) == 3
