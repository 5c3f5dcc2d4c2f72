"""Shared fixtures: in-memory database, captured audit events and API clients."""

import os

os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("OPENOBSERVE_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.src import openobserve
from app.src import redis as redis_module
from app.src.db import ORMbase, sessionMaker
from app.src.enums import UserRole

from helpers import addUser, clientFor


class FakeLock:
    """In-process stand-in for a redis lock, never blocks."""

    def __init__(self, name, held):
        self.name = name
        self.held = held
        self._owned = False

    def acquire(self, blocking=True, blocking_timeout=None):
        if self.name in self.held:
            return False
        self.held.add(self.name)
        self._owned = True
        return True

    def locked(self):
        return self.name in self.held

    def owned(self):
        return self._owned

    def release(self):
        self.held.discard(self.name)
        self._owned = False


class FakeRedis:
    def __init__(self):
        self.held = set()

    def lock(self, name, timeout=None):
        return FakeLock(name, self.held)


@pytest.fixture(autouse=True)
def database():
    """Bind the session factory to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    ORMbase.metadata.create_all(engine)
    sessionMaker.configure(bind=engine)
    yield engine
    ORMbase.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def events(monkeypatch):
    """Capture the audit events instead of sending them to OpenObserve."""
    captured = []
    monkeypatch.setattr(openobserve, "logEvent", captured.append)
    return captured


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr(redis_module, "redisClient", client)
    return client


@pytest.fixture
def session(database):
    session = sessionMaker()
    yield session
    session.close()


@pytest.fixture
def admin(session):
    return addUser(session, "admin", UserRole.ADMIN)


@pytest.fixture
def operator(session):
    return addUser(session, "operator", UserRole.BUS_OPERATOR)


@pytest.fixture
def other_operator(session):
    return addUser(session, "other", UserRole.BUS_OPERATOR)


@pytest.fixture
def admin_client(admin):
    return clientFor(admin)


@pytest.fixture
def operator_client(operator):
    return clientFor(operator)


@pytest.fixture
def other_operator_client(other_operator):
    return clientFor(other_operator)


@pytest.fixture
def anonymous_client():
    return clientFor()
