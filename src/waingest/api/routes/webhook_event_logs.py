"""Operator read access to webhook event logs (cursor pagination)."""

from fastapi import APIRouter, Depends, HTTPException, Query

from waingest.api.admin_auth import require_admin
from waingest.domain.event_log_reader import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    InvalidCursorError,
    list_event_logs,
)
from waingest.infra.db import txn

router = APIRouter(
    prefix="/admin/webhook-event-logs",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("")
def get_webhook_event_logs(
    tenant_id: str = Query(..., min_length=1),
    whatsapp_account_id: int = Query(...),
    cursor: str | None = Query(default=None),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    processed: bool | None = Query(default=None),
) -> dict:
    """One page of event logs, newest first.

    Pass the returned next_cursor to fetch the following page; next_cursor
    is null on the last page.
    """
    try:
        with txn() as cur:
            page = list_event_logs(
                cur,
                tenant_id=tenant_id,
                account_id=whatsapp_account_id,
                cursor=cursor,
                limit=limit,
                processed=processed,
            )
    except InvalidCursorError:
        raise HTTPException(status_code=400, detail="invalid cursor")

    return {
        "items": page.items,
        "next_cursor": page.next_cursor,
        "has_more": page.has_more,
    }
