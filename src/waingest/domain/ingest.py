"""Dedup and event log store - durable, idempotent record of deliveries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from waingest.infra.repositories.event_logs_repository import insert_event_log
from waingest.whatsapp.payload import classify_event, derive_dedup_key, get_object_id


@dataclass(frozen=True)
class LogEventResult:
    """Outcome of log_event().

    log_id is None when the delivery had already been logged; only a
    created row is dispatched for materialization.
    """

    log_id: int | None
    dedup_key: str
    event_type: str

    @property
    def created(self) -> bool:
        return self.log_id is not None


def log_event(
    cur: PgCursor,
    *,
    tenant_id: str,
    account_id: int,
    payload: dict[str, Any],
    signature: str | None,
    event_ts: datetime,
) -> LogEventResult:
    """Persist a verified delivery under its dedup key (insert-or-ignore).

    Args:
        cur: Database cursor (within transaction).
        tenant_id: Resolved tenant.
        account_id: Resolved inbound account id.
        payload: Decoded webhook body.
        signature: Signature header as received.
        event_ts: Event time (see extract_event_timestamp).

    Returns:
        LogEventResult; log_id is None for a duplicate delivery.
    """
    event_type = classify_event(payload)
    dedup_key = derive_dedup_key(payload, event_ts)

    log_id = insert_event_log(
        cur,
        tenant_id=tenant_id,
        whatsapp_account_id=account_id,
        object_id=get_object_id(payload),
        event_type=event_type.value,
        event_ts=event_ts,
        payload=payload,
        signature=signature,
        dedup_key=dedup_key,
    )

    return LogEventResult(log_id=log_id, dedup_key=dedup_key, event_type=event_type.value)
