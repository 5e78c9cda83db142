"""
Shared fixtures for Flowboard tests
"""
import shutil
import tempfile
import threading

import pytest


class FakeProvider:
    """In-memory generation provider: canned execute responses and a queue of status payloads"""

    def __init__(self, execute_response=None, statuses=None, invoke_response=None):
        self.execute_response = execute_response or {"status": "completed", "output": {"text": "ok"}}
        self.statuses = list(statuses or [])
        self.invoke_response = invoke_response or {"success": True, "data": {}}
        self.executed = []
        self.invoked = []
        self.status_calls = 0
        self._lock = threading.Lock()

    def execute(self, node_id, payload):
        with self._lock:
            self.executed.append((node_id, payload))
        if isinstance(self.execute_response, Exception):
            raise self.execute_response
        return dict(self.execute_response)

    def get_status(self, node_id):
        with self._lock:
            self.status_calls += 1
            item = self.statuses.pop(0) if self.statuses else {"status": "running"}
        if isinstance(item, Exception):
            raise item
        return item

    def invoke(self, route, payload):
        with self._lock:
            self.invoked.append((route, payload))
        return self.invoke_response


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def temp_storage():
    """Local JSON storage in a throwaway directory"""
    from flowboard.storage import LocalJSONStorage

    temp_dir = tempfile.mkdtemp(prefix='flowboard_test_')
    yield LocalJSONStorage(storage_path=temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def store():
    from flowboard.core.graph.store import GraphStore
    return GraphStore("board-1")
