from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from config import Settings, get_settings
from main import app, get_store
from memory_repository import InMemoryContactRepository
from repository import ContactStore

T0 = datetime(2023, 4, 1, 12, 0, tzinfo=timezone.utc)


class TickingClock:
    """Returns a later timestamp on every call so creation order is unambiguous."""

    def __init__(self, start=T0, step=timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current += self.step
        return value


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def repo(clock):
    return InMemoryContactRepository(clock=clock)


@pytest.fixture
def store(tmp_path, clock):
    contact_store = ContactStore(str(tmp_path / "contacts.db"), timeout=1.0, clock=clock)
    contact_store.init()
    return contact_store


@pytest.fixture
def settings(store):
    return Settings(database_path=store.db_path, busy_timeout=1.0, allow_empty_identify=True)


@pytest.fixture
def client(store, settings):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
