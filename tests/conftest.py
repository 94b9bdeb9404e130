"""
Shared fixtures for the signage test suite.

Provides:
- In-memory SQLite engine (StaticPool) with all tables created
- FastAPI TestClient with ``get_db`` pointed at that engine
- In-memory scheduling store and resolver for pure core tests
- A recording notifier
"""
import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from signage.db import get_db, init_db, make_engine
from signage.main import app
from signage.scheduling.resolver import ScheduleResolver
from signage.scheduling.store import InMemoryScheduleStore
from signage.services import storage

logging.getLogger("signage").setLevel(logging.WARNING)


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[list[str], str, dict]] = []

    def notify(self, screen_ids, reason, payload=None) -> int:
        self.events.append((list(screen_ids), reason, payload or {}))
        return len(self.events)

    def reasons(self) -> list[str]:
        return [reason for _, reason, _ in self.events]


# ========================== Database Fixtures ==============================


@pytest.fixture()
def engine():
    """Fresh in-memory database per test."""
    created = make_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=created)
    yield created
    created.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def storage_dir(tmp_path, monkeypatch):
    root = tmp_path / "storage"
    monkeypatch.setattr(storage, "STORAGE_DIR", str(root))
    return root


@pytest.fixture()
def client(session_factory, storage_dir):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ========================== Core Fixtures ==================================


@pytest.fixture()
def memory_store():
    return InMemoryScheduleStore()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def resolver(memory_store, notifier):
    return ScheduleResolver(memory_store, notifier=notifier)
