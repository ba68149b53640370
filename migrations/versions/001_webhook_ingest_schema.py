"""Webhook ingestion schema (SQL-only).

Revision ID: 001_webhook_ingest_schema
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_webhook_ingest_schema"
down_revision = None
branch_labels = None
depends_on = None

SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "001_webhook_ingest.sql"

_TABLES_REVERSE_ORDER = (
    "audit_logs",
    "messages",
    "conversations",
    "contacts",
    "webhook_event_logs",
    "webhook_configs",
    "whatsapp_accounts",
)


def upgrade() -> None:
    sql = SQL_FILE.read_text(encoding="utf-8")
    conn = op.get_bind()
    conn.exec_driver_sql(sql)


def downgrade() -> None:
    conn = op.get_bind()
    for table in _TABLES_REVERSE_ORDER:
        conn.exec_driver_sql(f"DROP TABLE IF EXISTS {table};")
