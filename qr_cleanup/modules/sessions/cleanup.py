"""
Очистка просроченных QR-токенов в таблице sessions.

One invocation = one connection, one UPDATE, one log line.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
import logging

from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from qr_cleanup.core.database import ConnectionFactory, get_connection_factory
from qr_cleanup.modules.sessions.models import Session

logger = logging.getLogger("app")

sessions = Session.__table__


class FailureKind(str, Enum):
    CONNECTION_ERROR = "connection_error"
    QUERY_ERROR = "query_error"


class CleanupError(Exception):
    kind: FailureKind


class DatabaseConnectionError(CleanupError):
    """The database could not be reached or refused the credentials."""
    kind = FailureKind.CONNECTION_ERROR


class QueryExecutionError(CleanupError):
    """The UPDATE failed; its transaction was rolled back."""
    kind = FailureKind.QUERY_ERROR


@dataclass(frozen=True)
class CleanupResult:
    rows_affected: int

    @property
    def message(self) -> str:
        return f"Successfully cleaned up {self.rows_affected} expired QR tokens"


@dataclass(frozen=True)
class CleanupFailure:
    kind: FailureKind
    detail: str


def _expired_conditions():
    # now() is evaluated by the database, not by this process
    return (
        sessions.c.qr_expires_at < func.now(),
        sessions.c.qr_token.isnot(None),
    )


def build_cleanup_statement():
    return (
        update(sessions)
        .where(*_expired_conditions())
        .values(qr_token=None, qr_expires_at=None)
    )


def _open_connection(factory: ConnectionFactory) -> Connection:
    try:
        return factory.connect()
    except SQLAlchemyError as e:
        raise DatabaseConnectionError(f"Could not connect to the database: {e}") from e


def cleanup_expired_qr_tokens(factory: ConnectionFactory) -> CleanupResult:
    """
    Clear qr_token and qr_expires_at on every session whose QR token has expired.

    The connection is closed on every exit path. Raises
    DatabaseConnectionError or QueryExecutionError; never retries.
    """
    connection = _open_connection(factory)
    with connection:
        try:
            with connection.begin():
                result = connection.execute(build_cleanup_statement())
                rows_affected = result.rowcount
        except SQLAlchemyError as e:
            raise QueryExecutionError(f"Cleanup statement failed: {e}") from e

    return CleanupResult(rows_affected=max(rows_affected, 0))


def count_expired_qr_tokens(factory: ConnectionFactory) -> int:
    """Read-only preview: how many rows the next cleanup would clear."""
    connection = _open_connection(factory)
    with connection:
        try:
            stmt = select(func.count()).select_from(sessions).where(*_expired_conditions())
            return connection.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            raise QueryExecutionError(f"Count query failed: {e}") from e


def default_connection_factory() -> ConnectionFactory:
    try:
        return get_connection_factory()
    except (ValidationError, SQLAlchemyError, ImportError) as e:
        # missing or invalid DATABASE_URL, or missing DBAPI driver
        raise DatabaseConnectionError(f"Could not configure the database connection: {e}") from e


def run(factory: Optional[ConnectionFactory] = None) -> Union[CleanupResult, CleanupFailure]:
    owns_factory = factory is None

    try:
        if factory is None:
            factory = default_connection_factory()
        result = cleanup_expired_qr_tokens(factory)
    except CleanupError as e:
        logger.error({
            "event": "qr_token_cleanup_error",
            "error_kind": e.kind.value,
            "error": str(e),
            "error_type": type(e.__cause__ or e).__name__,
        }, exc_info=True)
        return CleanupFailure(kind=e.kind, detail=str(e))
    finally:
        if owns_factory and factory is not None:
            factory.dispose()

    logger.info({
        "event": "qr_token_cleanup",
        "cleaned_count": result.rows_affected,
        "message": f"Cleaned up {result.rows_affected} expired QR tokens",
    })
    return result
