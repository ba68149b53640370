"""Audit trail for administrative changes and materialization failures.

Components that audit take an AuditSink argument; there is no module-level
hook to set.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol

from waingest.infra.db import txn
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    """One audited action.

    old_values/new_values must never contain secrets or message content.
    """

    entity_type: str
    action: str
    entity_id: str | None = None
    tenant_id: str | None = None
    changed_by: str | None = None
    reason: str | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None:
        ...


class NullAuditSink:
    """Discards events."""

    def record(self, event: AuditEvent) -> None:
        return None


class LoggingAuditSink:
    """Writes audit events to the structured log."""

    def record(self, event: AuditEvent) -> None:
        logger.info(
            "audit event",
            extra={
                "extra_fields": safe_log_context(
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    tenant_id=event.tenant_id,
                    action=event.action,
                    changed_by=event.changed_by,
                    reason=event.reason,
                )
            },
        )


class PostgresAuditSink:
    """Persists audit events to audit_logs in their own transaction.

    Runs outside the caller's transaction so failures are recorded even
    when the audited operation rolls back. A failed audit write is logged
    and does not fail the caller.
    """

    def record(self, event: AuditEvent) -> None:
        try:
            with txn() as cur:
                cur.execute(
                    """
                    INSERT INTO audit_logs (
                        entity_type, entity_id, tenant_id, action,
                        old_values, new_values, changed_by, reason
                    )
                    VALUES (%s, %s, %s, %s, %s::jsonb, %s::jsonb, %s, %s)
                    """,
                    (
                        event.entity_type,
                        event.entity_id,
                        event.tenant_id,
                        event.action,
                        json.dumps(event.old_values, default=str)
                        if event.old_values is not None
                        else None,
                        json.dumps(event.new_values, default=str),
                        event.changed_by,
                        event.reason,
                    ),
                )
        except Exception:
            logger.exception(
                "audit write failed",
                extra={
                    "extra_fields": safe_log_context(
                        entity_type=event.entity_type,
                        action=event.action,
                    )
                },
            )
