"""Async dispatcher - submit-and-forget handoff of logged events to the worker.

The ingress route calls submit() after the delivery is durably logged and
after the response has been produced. A failed submission never reaches the
provider: the row stays unprocessed and the reconciliation sweep picks it up.
"""

from __future__ import annotations

from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context
from waingest.tasks.client import TasksClient
from waingest.tasks.contracts import (
    PROCESS_EVENT_PATH,
    ProcessEventTaskV1,
    process_event_task_id,
)

logger = get_logger(__name__)


class EventDispatcher:
    """Hands event log ids to the task queue for materialization."""

    def __init__(self, tasks_client: TasksClient) -> None:
        self._tasks_client = tasks_client

    @property
    def tasks_client(self) -> TasksClient:
        return self._tasks_client

    def submit(
        self,
        log_id: int,
        tenant_id: str,
        correlation_id: str | None = None,
        *,
        task_suffix: str | None = None,
    ) -> bool:
        """Enqueue materialization of one event log.

        Never raises. Duplicate submissions for the same log are harmless:
        the task id dedupes at the queue and process_event() is idempotent.

        Args:
            log_id: webhook_event_logs.id of a freshly created row.
            tenant_id: Owning tenant (logged, carried in the task).
            correlation_id: Correlation ID of the ingress request.
            task_suffix: Distinguishes re-submissions (sweep runs).

        Returns:
            True if the task was handed to the queue, False otherwise.
        """
        task_id = process_event_task_id(log_id, task_suffix)
        task = ProcessEventTaskV1(
            task_id=task_id,
            log_id=log_id,
            tenant_id=tenant_id,
            correlation_id=correlation_id,
        )

        try:
            enqueued = self._tasks_client.enqueue_http(
                task_id=task_id,
                url_path=PROCESS_EVENT_PATH,
                payload=task.to_dict(),
                correlation_id=correlation_id,
            )
        except Exception as e:
            logger.exception(
                "event dispatch failed",
                extra={
                    "extra_fields": safe_log_context(
                        log_id=log_id,
                        tenant_id=tenant_id,
                        task_id=task_id,
                        error_type=type(e).__name__,
                    )
                },
            )
            return False

        logger.info(
            "event dispatched" if enqueued else "event dispatch skipped",
            extra={
                "extra_fields": safe_log_context(
                    log_id=log_id,
                    tenant_id=tenant_id,
                    task_id=task_id,
                    backend=self._tasks_client.backend,
                )
            },
        )
        return enqueued
