"""psycopg2 connection handling for the ingest service.

The DSN is set once by create_app (or a script) via configure(); every
unit of work then runs inside txn(). Repositories take the cursor that
txn() yields and never commit on their own.
"""

import os
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

_dsn: str | None = None


def configure(dsn: str | None) -> None:
    """Set the DSN used by get_conn().

    Args:
        dsn: libpq connection string or URL. None falls back to DATABASE_URL
             at connect time (scripts and migrations).
    """
    global _dsn
    _dsn = dsn


def get_conn() -> PgConnection:
    """Open a connection to the configured DSN.

    Raises:
        RuntimeError: If neither configure() nor DATABASE_URL gave a DSN.
        psycopg2.Error: On connection failure.
    """
    dsn = _dsn or os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("database DSN not configured (DATABASE_URL)")
    return psycopg2.connect(dsn)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Run one transaction and yield its cursor.

    Commits when the block exits normally and rolls back on any exception,
    which is re-raised. A connection opened here is closed on exit; a
    caller-supplied one is left open.

    Example:
        with txn() as cur:
            log = get_event_log_for_update(cur, log_id)
            mark_processed(cur, log_id)
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


def for_update(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> tuple[Any, ...] | None:
    """Run a single-row SELECT with FOR UPDATE appended and fetch the row.

    Other transactions locking the same row block until ours ends.
    """
    cur.execute(query.rstrip().rstrip(";") + " FOR UPDATE", params)
    return cur.fetchone()
