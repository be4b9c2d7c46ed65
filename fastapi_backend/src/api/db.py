import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool

logger = logging.getLogger(__name__)

# Positional (%s + sequence) or named (%(name)s + mapping) parameters.
Params = Optional[Union[Sequence[Any], Mapping[str, Any]]]


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS post_types (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT
);

CREATE TABLE IF NOT EXISTS posts (
    id SERIAL PRIMARY KEY,
    author_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    post_type_id INTEGER NOT NULL REFERENCES post_types(id) ON DELETE RESTRICT,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS comments (
    id SERIAL PRIMARY KEY,
    post_id INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    author_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_posts_author_id ON posts(author_id);
CREATE INDEX IF NOT EXISTS idx_posts_post_type_id ON posts(post_type_id);
CREATE INDEX IF NOT EXISTS idx_comments_post_id ON comments(post_id);
"""


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"Missing required environment variable '{name}'. "
            "Set it in the environment or the container .env."
        )
    return value


def _build_dsn() -> str:
    """
    Build DSN from the standardized database env vars.

    Uses:
      - POSTGRES_URL (optional full DSN; if provided, it wins)
      - POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_DB, POSTGRES_PORT, POSTGRES_HOST
    """
    url = os.getenv("POSTGRES_URL")
    if url:
        return url

    user = _required_env("POSTGRES_USER")
    password = _required_env("POSTGRES_PASSWORD")
    db = _required_env("POSTGRES_DB")
    port = os.getenv("POSTGRES_PORT", "5432")
    host = os.getenv("POSTGRES_HOST", "localhost")
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


_POOL: Optional[ThreadedConnectionPool] = None


# PUBLIC_INTERFACE
def init_db_pool() -> None:
    """Initialize the global PostgreSQL connection pool."""
    global _POOL
    if _POOL is not None:
        return

    dsn = _build_dsn()
    _POOL = ThreadedConnectionPool(
        minconn=int(os.getenv("DB_POOL_MIN", "1")),
        maxconn=int(os.getenv("DB_POOL_MAX", "10")),
        dsn=dsn,
    )
    logger.info("Database pool ready (max %s connections)", _POOL.maxconn)


# PUBLIC_INTERFACE
def close_db_pool() -> None:
    """Close every pooled connection. Safe to call when no pool exists."""
    global _POOL
    if _POOL is None:
        return
    _POOL.closeall()
    _POOL = None
    logger.info("Database pool closed")


@contextmanager
def _get_conn():
    if _POOL is None:
        init_db_pool()
    assert _POOL is not None
    conn = _POOL.getconn()
    try:
        yield conn
    except Exception:
        # Never hand an aborted transaction back to the pool.
        if not conn.closed:
            conn.rollback()
        raise
    finally:
        _POOL.putconn(conn)


def _dict_cursor(conn):
    return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)


# PUBLIC_INTERFACE
def fetch_one(query: str, params: Params = None) -> Optional[Dict[str, Any]]:
    """Fetch a single row as a dict, or None."""
    with _get_conn() as conn:
        with _dict_cursor(conn) as cur:
            cur.execute(query, params or [])
            row = cur.fetchone()
            conn.commit()
            return dict(row) if row else None


# PUBLIC_INTERFACE
def fetch_all(query: str, params: Params = None) -> List[Dict[str, Any]]:
    """Fetch all rows as dicts."""
    with _get_conn() as conn:
        with _dict_cursor(conn) as cur:
            cur.execute(query, params or [])
            rows = cur.fetchall()
            conn.commit()
            return [dict(r) for r in rows]


# PUBLIC_INTERFACE
def execute(query: str, params: Params = None) -> int:
    """Execute a statement (INSERT/UPDATE/DELETE). Returns affected rowcount."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(query, params or [])
            affected = cur.rowcount
            conn.commit()
            return affected


# PUBLIC_INTERFACE
def execute_returning_one(query: str, params: Params = None) -> Optional[Dict[str, Any]]:
    """
    Execute a statement with RETURNING and return the first row as dict.

    Returns None when the statement matched no row (e.g. UPDATE on a missing id).
    """
    with _get_conn() as conn:
        with _dict_cursor(conn) as cur:
            cur.execute(query, params or [])
            row = cur.fetchone()
            conn.commit()
            return dict(row) if row else None


# PUBLIC_INTERFACE
@contextmanager
def transaction() -> Iterator[Any]:
    """
    Run several statements on one connection as a single transaction.

    Yields a dict cursor. Commits when the block exits normally; rolls back and
    re-raises on any exception (including HTTPException raised by a handler to
    abort the operation).
    """
    with _get_conn() as conn:
        with _dict_cursor(conn) as cur:
            yield cur
        conn.commit()


# PUBLIC_INTERFACE
def is_unique_violation(exc: BaseException) -> bool:
    """True when exc is a PostgreSQL unique-constraint violation."""
    return isinstance(exc, psycopg2.errors.UniqueViolation)


# PUBLIC_INTERFACE
def is_foreign_key_violation(exc: BaseException) -> bool:
    """True when exc is a PostgreSQL foreign-key violation."""
    return isinstance(exc, psycopg2.errors.ForeignKeyViolation)


# PUBLIC_INTERFACE
def violated_constraint(exc: psycopg2.Error) -> Optional[str]:
    """Name of the constraint the server reported, if any."""
    return exc.diag.constraint_name


# PUBLIC_INTERFACE
def init_schema() -> None:
    """Create the application tables if they do not exist yet."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        conn.commit()
    logger.info("Database schema ensured")
