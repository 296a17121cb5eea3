from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from qr_cleanup.core.config import Settings, get_settings


class Base(DeclarativeBase):
    pass


def build_connect_args(_settings: Settings) -> Dict[str, Any]:
    """
    Translate the transport security policy and timeouts into DBAPI
    connection arguments.

    Only PostgreSQL URLs get libpq arguments; other backends (SQLite in tests)
    receive an empty dict.
    """
    url = make_url(_settings.DATABASE_URL)
    if url.get_backend_name() != "postgresql":
        return {}

    connect_args: Dict[str, Any] = {
        "sslmode": _settings.DB_SSL_MODE,
        "connect_timeout": _settings.DB_CONNECT_TIMEOUT_SECONDS,
        "application_name": _settings.APP_NAME,
    }

    if _settings.DB_SSL_ROOT_CERT and _settings.DB_SSL_MODE in ("verify-ca", "verify-full"):
        connect_args["sslrootcert"] = _settings.DB_SSL_ROOT_CERT

    # Лимит выполнения задаётся на уровне сессии PostgreSQL
    if _settings.DB_STATEMENT_TIMEOUT_MS:
        connect_args["options"] = f"-c statement_timeout={_settings.DB_STATEMENT_TIMEOUT_MS}"

    return connect_args


def create_db_engine(_settings: Settings) -> Engine:
    """
    Create an engine that opens a fresh connection per checkout.

    NullPool: each invocation owns exactly one connection, nothing is reused
    across invocations.
    """
    return create_engine(
        _settings.DATABASE_URL,
        poolclass=NullPool,
        connect_args=build_connect_args(_settings),
        future=True,
    )


class ConnectionFactory:
    """Injectable source of database connections for the cleanup task."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def connect(self) -> Connection:
        return self.engine.connect()

    def dispose(self) -> None:
        self.engine.dispose()

    def __repr__(self):
        return f"<ConnectionFactory url={self.engine.url!r}>"


def get_connection_factory(_settings: Optional[Settings] = None) -> ConnectionFactory:
    return ConnectionFactory(create_db_engine(_settings or get_settings()))
