import os

# Settings are built at import time; point them at SQLite before anything loads
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "development")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, insert, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from qr_cleanup.core.config import get_settings
from qr_cleanup.core.database import Base, ConnectionFactory
from qr_cleanup.modules.sessions.models import Session


def utc_now() -> datetime:
    # SQLite CURRENT_TIMESTAMP is naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UnreachableFactory:
    """Connection factory double for a database that refuses connections."""

    def __init__(self):
        self.attempts = 0

    def connect(self):
        self.attempts += 1
        raise OperationalError(
            "connect", {}, Exception("could not connect to server: Connection refused")
        )

    def dispose(self):
        pass


class RecordingFactory(ConnectionFactory):
    """Keeps every connection it hands out so tests can check they were closed."""

    def __init__(self, engine):
        super().__init__(engine)
        self.connections = []

    def connect(self):
        connection = super().connect()
        self.connections.append(connection)
        return connection


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def empty_engine():
    """In-memory database without the sessions table."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def factory(engine):
    return RecordingFactory(engine)


@pytest.fixture
def add_session(engine):
    def _add(qr_token, qr_expires_at):
        with engine.begin() as conn:
            result = conn.execute(
                insert(Session.__table__).values(qr_token=qr_token, qr_expires_at=qr_expires_at)
            )
            return result.inserted_primary_key[0]
    return _add


@pytest.fixture
def fetch_session(engine):
    def _fetch(session_id):
        with engine.connect() as conn:
            return conn.execute(
                select(Session.__table__).where(Session.__table__.c.id == session_id)
            ).one()
    return _fetch


@pytest.fixture
def expired():
    return utc_now() - timedelta(hours=1)


@pytest.fixture
def not_expired():
    return utc_now() + timedelta(days=1)


@pytest.fixture
def unreachable_factory():
    return UnreachableFactory()


@pytest.fixture
def database_env_cleared(monkeypatch, tmp_path):
    """Environment with neither DATABASE_URL nor POSTGRES_* set."""
    for name in ("DATABASE_URL", "POSTGRES_HOST", "POSTGRES_PORT", "POSTGRES_DB",
                 "POSTGRES_USER", "POSTGRES_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    # no stray .env next to the tests
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
