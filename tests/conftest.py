"""Shared pytest fixtures for waingest tests."""
import os
import sys
from pathlib import Path

sys.dont_write_bytecode = True

import pytest  # noqa: E402

from waingest.config import Settings  # noqa: E402
from waingest.infra import db  # noqa: E402

from helpers import TEST_ADMIN_TOKEN, TEST_HASH_SECRET, TEST_SECRETS_KEY  # noqa: E402

SCHEMA_SQL = Path(__file__).resolve().parents[1] / "migrations" / "sql" / "001_webhook_ingest.sql"


@pytest.fixture
def settings() -> Settings:
    """Settings with test keys and the inline tasks backend."""
    return Settings(
        database_url=os.environ.get("DATABASE_URL"),
        tasks_backend="inline",
        webhook_hash_secret=TEST_HASH_SECRET,
        webhook_secrets_key=TEST_SECRETS_KEY,
        admin_api_token=TEST_ADMIN_TOKEN,
        internal_task_secret="test-internal-secret",
    )


@pytest.fixture(scope="session")
def db_schema():
    """Apply the schema once per session. Skips without DATABASE_URL."""
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        pytest.skip("DATABASE_URL not set")
    db.configure(dsn)
    with db.txn() as cur:
        cur.execute(SCHEMA_SQL.read_text(encoding="utf-8"))
    yield dsn
