# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

from typing import Dict, Set
from unittest.mock import MagicMock

import pytest

from muni_core.config import SyncSettings
from muni_core.data import InMemoryDocumentStore
from muni_core.errors import RemoteStoreError
from muni_core.offline import (
    ConnectivityMonitor,
    LocalStore,
    OperationQueue,
    RecordCache,
    SyncEngine,
    build_services,
)


# =============================================================================
# REMOTE STORE FIXTURES
# =============================================================================

class ScriptedRemote(InMemoryDocumentStore):
    """
    In-memory remote whose calls can be told to fail.

    ``fail_next[method] = n`` fails the next n calls of that method;
    ``always_fail`` holds methods that fail every time.
    """

    def __init__(self, seed=None):
        super().__init__(seed)
        self.fail_next: Dict[str, int] = {}
        self.always_fail: Set[str] = set()
        self.attempts: Dict[str, int] = {}

    def _maybe_fail(self, method: str, collection: str) -> None:
        self.attempts[method] = self.attempts.get(method, 0) + 1
        if method in self.always_fail:
            raise RemoteStoreError(f"scripted {method} failure", collection=collection, operation=method)
        if self.fail_next.get(method, 0) > 0:
            self.fail_next[method] -= 1
            raise RemoteStoreError(f"scripted {method} failure", collection=collection, operation=method)

    def create(self, collection, doc):
        self._maybe_fail("create", collection)
        return super().create(collection, doc)

    def query(self, collection, filters=None, order=None):
        self._maybe_fail("query", collection)
        return super().query(collection, filters, order)

    def update(self, collection, doc_id, patch):
        self._maybe_fail("update", collection)
        return super().update(collection, doc_id, patch)

    def delete(self, collection, doc_id):
        self._maybe_fail("delete", collection)
        return super().delete(collection, doc_id)


@pytest.fixture
def remote():
    """Scriptable in-memory remote document store"""
    return ScriptedRemote()


# =============================================================================
# OFFLINE CORE FIXTURES
# =============================================================================

@pytest.fixture
def store(tmp_path):
    """LocalStore over a temporary SQLite file"""
    local_store = LocalStore(tmp_path / "muni_test.db")
    yield local_store
    local_store.close()


@pytest.fixture
def queue(store):
    return OperationQueue(store)


@pytest.fixture
def cache(store):
    return RecordCache(store)


@pytest.fixture
def monitor():
    """Monitor driven only by report(); starts online, never probes"""
    return ConnectivityMonitor(probe_hosts=[], initial_online=True)


@pytest.fixture
def offline_monitor():
    return ConnectivityMonitor(probe_hosts=[], initial_online=False)


@pytest.fixture
def engine(store, queue, cache, remote, monitor):
    """Sync engine that drains inline on the calling thread"""
    return SyncEngine(store, queue, cache, remote, monitor, background_drain=False)


@pytest.fixture
def settings(tmp_path):
    return SyncSettings(
        db_path=tmp_path / "services.db",
        remote_provider="mock",
        background_drain=False,
        start_monitoring=False,
        probe_hosts=[],
    )


@pytest.fixture
def services(settings, store, remote):
    """Full container over the scripted remote, starting offline"""
    offline = ConnectivityMonitor(probe_hosts=[], initial_online=False)
    container = build_services(settings, remote=remote, monitor=offline, store=store)
    yield container
    container.stop()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value.select.return_value.execute.return_value.data = []
    mock_client.table.return_value.insert.return_value.execute.return_value = MagicMock()
    return mock_client

