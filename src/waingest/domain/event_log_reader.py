"""Cursor-paginated reads over webhook event logs for operators.

Pages are ordered by (event_ts DESC, id DESC). The cursor carries the last
row's (event_ts, id) and the next page selects rows strictly below that
tuple, so inserts between page reads neither shift nor repeat rows.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from waingest.infra.repositories.event_logs_repository import list_event_logs_page

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class InvalidCursorError(ValueError):
    """Cursor is not one produced by encode_cursor()."""

    pass


@dataclass(frozen=True)
class EventLogPage:
    items: list[dict[str, Any]]
    next_cursor: str | None
    has_more: bool


def encode_cursor(event_ts: datetime, log_id: int) -> str:
    raw = json.dumps({"event_ts": event_ts.isoformat(), "id": log_id}, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    """Inverse of encode_cursor().

    Raises:
        InvalidCursorError: If the cursor is malformed.
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        event_ts = datetime.fromisoformat(data["event_ts"])
        log_id = data["id"]
    except (binascii.Error, ValueError, KeyError, TypeError) as e:
        raise InvalidCursorError("invalid cursor") from e

    if not isinstance(log_id, int) or isinstance(log_id, bool) or event_ts.tzinfo is None:
        raise InvalidCursorError("invalid cursor")
    return event_ts, log_id


def _serialize(row: dict[str, Any]) -> dict[str, Any]:
    def iso(value: datetime | None) -> str | None:
        return value.isoformat() if value else None

    return {
        "id": row["id"],
        "tenant_id": row["tenant_id"],
        "whatsapp_account_id": row["whatsapp_account_id"],
        "object_id": row["object_id"],
        "event_type": row["event_type"],
        "event_ts": iso(row["event_ts"]),
        "payload": row["payload"],
        "signature": row["signature"],
        "dedup_key": row["dedup_key"],
        "processed": row["processed"],
        "processed_at": iso(row["processed_at"]),
        "is_active": row["is_active"],
        "created_at": iso(row["created_at"]),
        "updated_at": iso(row["updated_at"]),
    }


def list_event_logs(
    cur: PgCursor,
    *,
    tenant_id: str,
    account_id: int,
    cursor: str | None = None,
    limit: int = DEFAULT_LIMIT,
    processed: bool | None = None,
) -> EventLogPage:
    """One page of event logs for (tenant, account).

    Args:
        cur: Database cursor.
        tenant_id: Tenant scope.
        account_id: Inbound account scope.
        cursor: next_cursor of the previous page, or None for the first page.
        limit: Page size, clamped to 1..MAX_LIMIT.
        processed: Optional processed-flag filter.

    Raises:
        InvalidCursorError: If `cursor` is malformed.
    """
    limit = max(1, min(limit, MAX_LIMIT))
    before = decode_cursor(cursor) if cursor else None

    # One extra row tells us whether another page exists
    rows = list_event_logs_page(
        cur,
        tenant_id=tenant_id,
        whatsapp_account_id=account_id,
        limit=limit + 1,
        processed=processed,
        before=before,
    )

    has_more = len(rows) > limit
    rows = rows[:limit]
    next_cursor = None
    if has_more and rows:
        last = rows[-1]
        next_cursor = encode_cursor(last["event_ts"], last["id"])

    return EventLogPage(
        items=[_serialize(row) for row in rows],
        next_cursor=next_cursor,
        has_more=has_more,
    )
