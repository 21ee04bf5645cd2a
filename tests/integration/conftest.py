"""
Integration test fixtures for HatchSync.

These fixtures compose the unit test fixtures from tests/conftest.py into
complete offline/online scenarios: a real SQLiteAckQueue on disk, a real
BackendClient talking to httpx.MockTransport, and the auto-sync controller.

All integration tests should be marked with @pytest.mark.integration
"""

import json

import httpx
import pytest


@pytest.fixture
def backend_rows(mock_transport):
    """
    In-memory "tables" fed by the mock transport.

    Returns (rows, set_handler): rows maps table name to the list of JSON
    bodies posted to it; set_handler swaps in a different responder.
    """
    transport, requests, set_handler = mock_transport
    rows = {}

    def table_handler(request: httpx.Request) -> httpx.Response:
        table = request.url.path.rsplit('/', 1)[-1]
        if request.method == "GET":
            return httpx.Response(200, json={})
        body = json.loads(request.content) if request.content else {}
        rows.setdefault(table, []).append(body)
        return httpx.Response(201, json=[dict(body, id=len(rows[table]))])

    set_handler(table_handler)
    return rows, set_handler


@pytest.fixture
def reopen_queue(tmp_path):
    """
    Factory simulating a process restart on the same data directory.

    Each call returns a fresh (manager, queue) pair; every manager is shut
    down at teardown.
    """
    from sync_queue.manager import QueueManager
    from sync_queue.offline_queue import OfflineQueue

    managers = []

    def _open(backend=None, **kwargs):
        manager = QueueManager(data_dir=str(tmp_path))
        managers.append(manager)
        return manager, OfflineQueue(manager, backend=backend, **kwargs)

    yield _open

    for manager in managers:
        manager.shutdown()


@pytest.fixture
def unavailable():
    """Handler that makes every request fail with 503."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"message": "Service Unavailable"})
    return handler
