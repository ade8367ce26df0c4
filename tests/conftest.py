from __future__ import annotations

from types import SimpleNamespace

import pytest
from argon2 import PasswordHasher
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.core.errors import AuthenticationFailed
from app.db.base import Base
from app.db.session import make_engine, make_session_factory
from app.core import security
from app.crud.users import create_user
from app.realtime.channel import DeliveryChannel


class FakeConnection:
    def __init__(self, sid: str):
        self.sid = sid
        self.events: list[tuple[str, dict]] = []
        self.closed = False

    def send(self, event, payload):
        self.events.append((event, payload))

    def close(self):
        self.closed = True

    def names(self) -> list[str]:
        return [e for e, _ in self.events]

    def payloads(self, event: str) -> list[dict]:
        return [p for e, p in self.events if e == event]


class BrokenConnection(FakeConnection):
    def send(self, event, payload):
        raise RuntimeError("socket gone")


def token_authenticator(token):
    """Test credential: the user id as a string."""
    if not token or not str(token).isdigit():
        raise AuthenticationFailed("Authentication failed")
    return int(token)


@pytest.fixture
def db_engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def cheap_password_hashing(monkeypatch):
    monkeypatch.setattr(security, "_ph", PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


@pytest.fixture
def make_user(db):
    def _make(name: str, role: str | None = None) -> int:
        return create_user(db, name, f"{name.lower()}@example.com", "correct horse", role=role).id

    return _make


@pytest.fixture
def users(make_user):
    return SimpleNamespace(
        alice=make_user("Alice", "MEMBER"),
        bob=make_user("Bob", "MEMBER"),
        carol=make_user("Carol", "MEMBER"),
        dave=make_user("Dave", "MEMBER"),
    )


@pytest.fixture
def channel():
    return DeliveryChannel(authenticator=token_authenticator)


@pytest.fixture
def connect(channel):
    counter = {"n": 0}

    def _connect(user_id: int, cls=FakeConnection) -> FakeConnection:
        counter["n"] += 1
        conn = cls(f"sid-{counter['n']}")
        channel.connect(conn, str(user_id))
        return conn

    return _connect
