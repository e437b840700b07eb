"""Database access layer using psycopg2.

Provides:
- get_conn(): new connection from DATABASE_URL
- txn(): short transaction context manager
- fetchone/fetchall: query helpers
- wrap_db_errors(): turns driver failures into CollaboratorUnavailable
"""

import os
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

from plantvision.domain.errors import CollaboratorUnavailable, ConfigurationError

# Seconds; applied to both connect and each statement
DB_TIMEOUT = 10


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    Raises:
        ConfigurationError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise ConfigurationError("DATABASE_URL environment variable not set")
    return psycopg2.connect(
        dsn,
        connect_timeout=DB_TIMEOUT,
        options=f"-c statement_timeout={DB_TIMEOUT * 1000}",
    )


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Context manager for a short transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception.

    Example:
        with txn() as cur:
            cur.execute("UPDATE users SET is_subscribed = %s WHERE user_id = %s", (True, uid))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


@contextmanager
def wrap_db_errors(operation: str) -> Iterator[None]:
    """Re-raise psycopg2 errors as CollaboratorUnavailable."""
    try:
        yield
    except psycopg2.Error as e:
        raise CollaboratorUnavailable(f"database {operation} failed: {type(e).__name__}") from e


def fetchone(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> tuple[Any, ...] | None:
    cur.execute(query, params)
    return cur.fetchone()


def fetchall(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> list[tuple[Any, ...]]:
    cur.execute(query, params)
    return cur.fetchall()
