import threading

import pytest
from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import Settings
from backend.services.repository import Repository
from database import DBManager


class RecordingStore:
    """In-memory association store that records every call it receives."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self.associations = set()
        self._lock = threading.Lock()

    def add_association(self, parent_id, child_id):
        with self._lock:
            self.calls.append(("add", parent_id, child_id))
        if child_id in self.fail_on:
            raise RuntimeError(f"store rejected {child_id}")
        with self._lock:
            self.associations.add((parent_id, child_id))

    def remove_association(self, parent_id, child_id):
        with self._lock:
            self.calls.append(("remove", parent_id, child_id))
        if child_id in self.fail_on:
            raise RuntimeError(f"store rejected {child_id}")
        with self._lock:
            self.associations.discard((parent_id, child_id))


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def db(tmp_path):
    return DBManager(db_path=str(tmp_path / "ats.db"))


@pytest.fixture
def repo(db):
    return Repository(db=db)


@pytest.fixture
def client(tmp_path):
    app = create_app(Settings(db_path=str(tmp_path / "api.db"), commit_workers=4, log_level="WARNING"))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_store():
    return RecordingStore
