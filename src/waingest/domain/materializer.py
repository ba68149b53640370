"""Domain materializer - project logged webhook events into the inbox.

process_event() runs in the worker, one transaction per event log:

1. Lock the log row (SELECT ... FOR UPDATE). Missing -> EventLogNotFoundError;
   already processed -> no-op.
2. Re-classify the stored payload.
3. message: upsert contact -> upsert conversation -> insert message.
   status:  update the message's status in place (0 rows is fine: the status
            can arrive before its message).
   other:   nothing.
4. Mark the log processed.

Any failure rolls the whole projection back; the log stays unprocessed and
the queue retries it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

from waingest.audit import AuditEvent, AuditSink, NullAuditSink
from waingest.infra.db import txn
from waingest.infra.repositories.event_logs_repository import (
    get_event_log_for_update,
    mark_processed,
)
from waingest.infra.repositories.inbox_repository import (
    insert_inbound_message,
    update_message_status,
    upsert_contact,
    upsert_conversation,
)
from waingest.observability.logging import get_logger
from waingest.observability.redaction import id_prefix, safe_log_context
from waingest.whatsapp.models import EventType
from waingest.whatsapp.payload import (
    InvalidPayloadError,
    classify_event,
    extract_message,
    extract_status,
)

logger = get_logger(__name__)

PREVIEW_MAX_CHARS = 280


class EventLogNotFoundError(Exception):
    """No event log with the given id."""

    def __init__(self, log_id: int) -> None:
        self.log_id = log_id
        super().__init__(f"event log {log_id} not found")


class ProcessOutcome(str, Enum):
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"


def _preview(content: str) -> str:
    if len(content) <= PREVIEW_MAX_CHARS:
        return content
    return content[: PREVIEW_MAX_CHARS - 1] + "…"


def _project_message(cur: PgCursor, log: dict[str, Any]) -> None:
    try:
        message = extract_message(log["payload"])
    except InvalidPayloadError as e:
        # Retrying cannot fix a stored payload; record and move on
        logger.warning(
            "message event skipped",
            extra={
                "extra_fields": safe_log_context(
                    log_id=log["id"],
                    tenant_id=log["tenant_id"],
                    reason=str(e),
                )
            },
        )
        return

    tenant_id = log["tenant_id"]
    account_id = log["whatsapp_account_id"]
    sent_at = message.sent_at or log["event_ts"]
    content = message.content

    contact_id = upsert_contact(
        cur,
        tenant_id=tenant_id,
        phone=message.sender_phone,
        name=message.sender_name,
    )

    conversation_id = upsert_conversation(
        cur,
        tenant_id=tenant_id,
        contact_id=contact_id,
        whatsapp_account_id=account_id,
        last_message_preview=_preview(content),
        last_message_at=sent_at,
    )

    media = message.media
    message_id = insert_inbound_message(
        cur,
        tenant_id=tenant_id,
        conversation_id=conversation_id,
        contact_id=contact_id,
        whatsapp_account_id=account_id,
        content=content,
        media_type=media.kind if media else None,
        media_id=media.media_id if media else None,
        media_url=media.url if media else None,
        media_mime_type=media.mime_type if media else None,
        provider_message_id=message.provider_message_id,
        sent_at=sent_at,
    )

    logger.info(
        "inbound message projected",
        extra={
            "extra_fields": safe_log_context(
                log_id=log["id"],
                tenant_id=tenant_id,
                conversation_id=conversation_id,
                message_id=message_id,
                kind=message.kind,
                provider_message_id_prefix=id_prefix(message.provider_message_id),
            )
        },
    )


def _apply_status(cur: PgCursor, log: dict[str, Any]) -> None:
    status = extract_status(log["payload"])
    if status is None:
        # Template status updates carry no message id
        return

    updated = update_message_status(
        cur,
        tenant_id=log["tenant_id"],
        provider_message_id=status.provider_message_id,
        status=status.status,
    )

    logger.info(
        "message status applied",
        extra={
            "extra_fields": safe_log_context(
                log_id=log["id"],
                tenant_id=log["tenant_id"],
                status=status.status,
                rows_updated=updated,
                provider_message_id_prefix=id_prefix(status.provider_message_id),
            )
        },
    )


def process_event(
    log_id: int,
    *,
    conn: PgConnection | None = None,
    audit_sink: AuditSink | None = None,
) -> ProcessOutcome:
    """Materialize one event log exactly once.

    Safe to call repeatedly and concurrently for the same id: the row lock
    serializes callers and the processed flag turns later calls into no-ops.

    Args:
        log_id: webhook_event_logs.id.
        conn: Optional connection (a new one is opened if None).
        audit_sink: Receives a record when materialization fails.

    Returns:
        ProcessOutcome.PROCESSED or ProcessOutcome.ALREADY_PROCESSED.

    Raises:
        EventLogNotFoundError: No such log.
        Exception: Any database error; the transaction is rolled back.
    """
    sink = audit_sink or NullAuditSink()

    try:
        with txn(conn) as cur:
            log = get_event_log_for_update(cur, log_id)
            if log is None:
                raise EventLogNotFoundError(log_id)

            if log["processed"]:
                logger.info(
                    "event log already processed",
                    extra={"extra_fields": safe_log_context(log_id=log_id)},
                )
                return ProcessOutcome.ALREADY_PROCESSED

            event_type = classify_event(log["payload"])

            if event_type is EventType.MESSAGE:
                _project_message(cur, log)
            elif event_type is EventType.STATUS:
                _apply_status(cur, log)

            mark_processed(cur, log_id)

    except EventLogNotFoundError:
        logger.warning(
            "event log not found",
            extra={"extra_fields": safe_log_context(log_id=log_id)},
        )
        raise
    except Exception as e:
        logger.exception(
            "event materialization failed",
            extra={
                "extra_fields": safe_log_context(
                    log_id=log_id,
                    error_type=type(e).__name__,
                )
            },
        )
        sink.record(
            AuditEvent(
                entity_type="webhook_event_log",
                entity_id=str(log_id),
                action="PROCESS_FAILURE",
                reason=type(e).__name__,
            )
        )
        raise

    logger.info(
        "event log processed",
        extra={
            "extra_fields": safe_log_context(
                log_id=log_id,
                event_type=event_type.value,
            )
        },
    )
    return ProcessOutcome.PROCESSED
