"""Webhook event log repository - append-only delivery records.

Uses raw SQL with psycopg2 (no ORM).
"""

import json
from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from waingest.infra.db import for_update

_LOG_COLUMNS = """
    id, tenant_id, whatsapp_account_id, object_id, event_type, event_ts,
    payload, signature, dedup_key, processed, processed_at, is_active,
    created_at, updated_at
"""


def _row_to_dict(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": row[0],
        "tenant_id": row[1],
        "whatsapp_account_id": row[2],
        "object_id": row[3],
        "event_type": row[4],
        "event_ts": row[5],
        "payload": row[6],
        "signature": row[7],
        "dedup_key": row[8],
        "processed": row[9],
        "processed_at": row[10],
        "is_active": row[11],
        "created_at": row[12],
        "updated_at": row[13],
    }


def insert_event_log(
    cur: PgCursor,
    *,
    tenant_id: str,
    whatsapp_account_id: int,
    object_id: str | None,
    event_type: str,
    event_ts: datetime,
    payload: dict[str, Any],
    signature: str | None,
    dedup_key: str,
) -> int | None:
    """Insert a delivery record unless (tenant_id, dedup_key) already exists.

    Args:
        cur: Database cursor (within transaction).
        tenant_id: Tenant identifier.
        whatsapp_account_id: Inbound account id.
        object_id: entry[0].id from the payload.
        event_type: message | status | other.
        event_ts: Payload-derived event time (receipt-time fallback).
        payload: Decoded webhook body, stored as JSONB.
        signature: X-Hub-Signature-256 header as received.
        dedup_key: Deterministic delivery key.

    Returns:
        New row id, or None if the delivery was already logged.
    """
    cur.execute(
        """
        INSERT INTO webhook_event_logs (
            tenant_id, whatsapp_account_id, object_id, event_type,
            event_ts, payload, signature, dedup_key, processed
        )
        VALUES (%s, %s, %s, %s, %s, %s::jsonb, %s, %s, FALSE)
        ON CONFLICT (tenant_id, dedup_key) DO NOTHING
        RETURNING id
        """,
        (
            tenant_id,
            whatsapp_account_id,
            object_id,
            event_type,
            event_ts,
            json.dumps(payload),
            signature,
            dedup_key,
        ),
    )
    row = cur.fetchone()
    return row[0] if row else None


def get_event_log_for_update(cur: PgCursor, log_id: int) -> dict[str, Any] | None:
    """Load an event log and lock it until the transaction ends."""
    row = for_update(
        cur, f"SELECT {_LOG_COLUMNS} FROM webhook_event_logs WHERE id = %s", (log_id,)
    )
    return _row_to_dict(row) if row else None


def mark_processed(cur: PgCursor, log_id: int) -> bool:
    """Flip processed false -> true.

    Returns:
        True if the row transitioned, False if it was already processed.
    """
    cur.execute(
        """
        UPDATE webhook_event_logs
        SET processed = TRUE, processed_at = now(), updated_at = now()
        WHERE id = %s AND processed = FALSE
        """,
        (log_id,),
    )
    return cur.rowcount == 1


def list_event_logs_page(
    cur: PgCursor,
    *,
    tenant_id: str,
    whatsapp_account_id: int,
    limit: int,
    processed: bool | None = None,
    before: tuple[datetime, int] | None = None,
) -> list[dict[str, Any]]:
    """Fetch up to `limit` logs ordered by (event_ts DESC, id DESC).

    Args:
        before: Exclusive (event_ts, id) upper bound from a page cursor.
    """
    clauses = ["tenant_id = %s", "whatsapp_account_id = %s"]
    params: list[Any] = [tenant_id, whatsapp_account_id]

    if processed is not None:
        clauses.append("processed = %s")
        params.append(processed)

    if before is not None:
        clauses.append("(event_ts, id) < (%s, %s)")
        params.extend(before)

    params.append(limit)
    where = " AND ".join(clauses)
    cur.execute(
        f"""
        SELECT {_LOG_COLUMNS}
        FROM webhook_event_logs
        WHERE {where}
        ORDER BY event_ts DESC, id DESC
        LIMIT %s
        """,
        tuple(params),
    )
    return [_row_to_dict(row) for row in cur.fetchall()]


def claim_unprocessed(
    cur: PgCursor,
    *,
    created_before: datetime,
    swept_before: datetime,
    swept_at: datetime,
    max_attempts: int,
    limit: int,
) -> list[dict[str, Any]]:
    """Claim active, unprocessed logs for one sweep run.

    Rows never swept come first, then the least recently swept, so rows
    that keep failing cannot starve newer ones. A claimed row records the
    sweep time and one more attempt; rows swept after `swept_before` or
    already at `max_attempts` are left alone. SKIP LOCKED keeps concurrent
    sweeps and in-flight materializations from blocking each other.
    """
    cur.execute(
        """
        UPDATE webhook_event_logs AS l
        SET last_swept_at = %s, sweep_attempts = l.sweep_attempts + 1
        FROM (
            SELECT id
            FROM webhook_event_logs
            WHERE processed = FALSE
              AND is_active = TRUE
              AND created_at < %s
              AND (last_swept_at IS NULL OR last_swept_at < %s)
              AND sweep_attempts < %s
            ORDER BY last_swept_at ASC NULLS FIRST, created_at ASC, id ASC
            LIMIT %s
            FOR UPDATE SKIP LOCKED
        ) AS claimed
        WHERE l.id = claimed.id
        RETURNING l.id, l.tenant_id, l.created_at, l.sweep_attempts
        """,
        (swept_at, created_before, swept_before, max_attempts, limit),
    )
    rows = [
        {"id": row[0], "tenant_id": row[1], "created_at": row[2], "sweep_attempts": row[3]}
        for row in cur.fetchall()
    ]
    rows.sort(key=lambda r: (r["created_at"], r["id"]))
    return rows
