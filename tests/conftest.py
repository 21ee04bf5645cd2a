"""
Shared pytest fixtures for HatchSync tests.

Provides reusable fixtures for:
- Queue operations (mocked SQLiteAckQueue and DeadLetterQueue)
- A real OfflineQueue on a temporary data directory
- Backend client mocks (unittest.mock and httpx.MockTransport)
- Sample test data (entries, configuration)
"""

import threading
import time

import httpx
import pytest
from unittest.mock import MagicMock


# =============================================================================
# Queue Mock Fixtures
# =============================================================================

@pytest.fixture
def mock_queue():
    """
    Mock SQLiteAckQueue for testing queue operations.

    Provides queue-like interface:
        - put(item): Add item to queue
        - get(block, timeout): Get item from queue
        - ack(item): Acknowledge successful processing
        - nack(item): Return item to queue for retry
        - ack_failed(item): Take item out of the live queue

    Usage:
        def test_enqueue(mock_queue):
            mock_queue.put(job)
            mock_queue.put.assert_called_once_with(job)
    """
    queue = MagicMock()
    queue.put.return_value = None
    queue.get.return_value = None
    queue.ack.return_value = None
    queue.nack.return_value = None
    queue.ack_failed.return_value = None
    queue.qsize.return_value = 0
    queue.empty.return_value = True

    return queue


@pytest.fixture
def mock_dlq():
    """
    Mock DeadLetterQueue for testing dead-letter routing.

    Provides DLQ interface:
        - add(job, error, retry_count): Add failed entry
        - get_count(): Return number of entries
        - get_recent(limit): Return recent dead letters
        - get_by_id(dlq_id): Return full job dict
        - delete_older_than(days): Cleanup old entries
    """
    dlq = MagicMock()
    dlq.add.return_value = 1
    dlq.get_count.return_value = 0
    dlq.get_recent.return_value = []
    dlq.get_by_id.return_value = None
    dlq.delete_older_than.return_value = 0

    return dlq


# =============================================================================
# Backend Fixtures
# =============================================================================

@pytest.fixture
def mock_backend():
    """
    Mock BackendClient.

    execute() succeeds and returns one row by default. Set side_effect to a
    list of results/exceptions to script a sync pass.

    Usage:
        def test_partial(offline_queue, mock_backend):
            mock_backend.execute.side_effect = [[{"id": 1}], BackendTemporaryError("503")]
    """
    backend = MagicMock()
    backend.execute.return_value = [{"id": 1}]
    backend.ping.return_value = None
    return backend


@pytest.fixture
def mock_transport():
    """
    httpx.MockTransport that records requests and answers from a handler.

    Returns (transport, requests, set_handler). The default handler returns
    201 with the posted JSON echoed back as a one-row list.
    """
    requests = []
    state = {}

    def default_handler(request: httpx.Request) -> httpx.Response:
        body = request.content.decode() if request.content else "{}"
        return httpx.Response(201, content=f"[{body}]", headers={"Content-Type": "application/json"})

    state['handler'] = default_handler

    def dispatch(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return state['handler'](request)

    def set_handler(handler):
        state['handler'] = handler

    return httpx.MockTransport(dispatch), requests, set_handler


@pytest.fixture
def backend_client(mock_transport):
    """BackendClient wired to mock_transport."""
    from backend.client import BackendClient

    transport, _, _ = mock_transport
    client = BackendClient(
        "https://test-project.supabase.co",
        "test-api-key-0123456789abcdef",
        transport=transport,
    )
    yield client
    client.close()


# =============================================================================
# Real Queue Fixtures
# =============================================================================

@pytest.fixture
def queue_manager(tmp_path):
    """QueueManager on an isolated temporary data directory."""
    from sync_queue.manager import QueueManager

    manager = QueueManager(data_dir=str(tmp_path))
    yield manager
    manager.shutdown()


@pytest.fixture
def offline_queue(queue_manager, mock_backend):
    """OfflineQueue backed by a real SQLiteAckQueue and mock_backend."""
    from sync_queue.offline_queue import OfflineQueue

    return OfflineQueue(queue_manager, backend=mock_backend)


# =============================================================================
# Test Data Fixtures
# =============================================================================

@pytest.fixture
def batch_payload():
    """Insert payload for the batches table."""
    return {"batch_number": "B-100", "flock_id": "f-1", "eggs_set": 48000}


@pytest.fixture
def sample_job():
    """
    Entry job dict as stored in the persistent queue.

    Usage:
        def test_dlq_add(dlq, sample_job):
            dlq.add(sample_job, ValueError("bad"), retry_count=3)
    """
    return {
        "id": "1718000000000-abc123xyz",
        "table": "batches",
        "operation": "insert",
        "data": {"batch_number": "B-100"},
        "created_at": "2024-06-10T06:13:20+00:00",
    }


@pytest.fixture
def valid_config_dict():
    """Minimal configuration that passes HatchSyncSettings validation."""
    return {
        "backend_url": "https://test-project.supabase.co",
        "backend_api_key": "test-api-key-0123456789abcdef",
    }


# =============================================================================
# Helpers
# =============================================================================

@pytest.fixture
def wait_until():
    """
    Poll a predicate until it is true or the timeout expires.

    Usage:
        assert wait_until(lambda: mock_backend.execute.called)
    """
    def _wait(predicate, timeout=3.0, interval=0.01):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait


@pytest.fixture
def blocking_backend(mock_backend):
    """
    mock_backend whose execute() blocks until released.

    Returns (backend, started, release): `started` is set when a call is
    in progress, `release.set()` lets it finish.
    """
    started = threading.Event()
    release = threading.Event()

    def slow_execute(table, operation, data):
        started.set()
        release.wait(5.0)
        return [{"id": 1}]

    mock_backend.execute.side_effect = slow_execute
    return mock_backend, started, release
