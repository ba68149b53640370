"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without triggering
alembic.context at import time.
"""

from __future__ import annotations

import os
from typing import Mapping

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

DRIVERNAME = "postgresql+psycopg2"


def to_sqlalchemy_url(dsn: str, *, db_password: str | None = None) -> str:
    """Convert DATABASE_URL (URL or libpq key=value form) to a SQLAlchemy URL.

    A password missing from the DSN is filled from `db_password`. A host
    that is a directory (Cloud SQL unix socket) is passed as ?host=.
    """
    if "://" in dsn:
        url = make_url(dsn).set(drivername=DRIVERNAME)
        if db_password and not url.password:
            url = url.set(password=db_password)
        return url.render_as_string(hide_password=False)

    params = parse_dsn(dsn)
    host = params.get("host", "localhost")
    query: dict[str, str] = {}
    port: int | None = int(params.get("port", "5432"))
    if host.startswith("/"):
        query["host"] = host
        host = None
        port = None

    url = URL.create(
        DRIVERNAME,
        username=params.get("user"),
        password=params.get("password") or db_password or None,
        host=host,
        port=port,
        database=params.get("dbname"),
        query=query,
    )
    return url.render_as_string(hide_password=False)


def get_database_url(environ: Mapping[str, str] | None = None) -> str:
    """SQLAlchemy URL for migrations from DATABASE_URL (+ optional DB_PASSWORD).

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    env = os.environ if environ is None else environ
    dsn = env.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    return to_sqlalchemy_url(dsn, db_password=env.get("DB_PASSWORD") or None)
