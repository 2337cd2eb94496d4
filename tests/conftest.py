import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from db import get_backend
from main import app
from models import User
from store import SqlBackend


class ManualHandle:
    def __init__(self, callback):
        self.callback = callback
        self.cancel_count = 0

    @property
    def cancelled(self):
        return self.cancel_count > 0

    def cancel(self):
        self.cancel_count += 1


class ManualTicker:
    """Ticks only when the test says so."""

    def __init__(self):
        self.handles = []

    def every(self, callback):
        handle = ManualHandle(callback)
        self.handles.append(handle)
        return handle

    def fire(self, times=1):
        for _ in range(times):
            for handle in list(self.handles):
                if not handle.cancelled:
                    handle.callback()


@pytest.fixture
def ticker():
    return ManualTicker()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def backend(engine):
    return SqlBackend(engine, require_confirmation=True)


@pytest.fixture
def client(backend):
    app.dependency_overrides[get_backend] = lambda: backend
    yield TestClient(app)
    app.dependency_overrides.clear()


def _confirmation_token(engine, email):
    with Session(engine) as session:
        return session.exec(select(User).where(User.email == email)).one().confirmation_token


@pytest.fixture
def confirmation_token(engine):
    """The token a confirmation email would carry."""
    return lambda email: _confirmation_token(engine, email)


@pytest.fixture
def signed_in(client, engine):
    """Sign up, confirm and sign in; returns (user, token)."""

    def _signed_in(email="ana@example.com", password="secret123"):
        client.post("/api/auth/signup", json={"email": email, "password": password})
        client.post("/api/auth/confirm", json={"token": _confirmation_token(engine, email)})
        body = client.post("/api/auth/signin", json={"email": email, "password": password}).json()
        return body["user"], body["access_token"]

    return _signed_in
