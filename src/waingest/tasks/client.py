"""Tasks client with idempotent enqueue.

Backend chosen from Settings.tasks_backend at construction:
- inline: calls the in-process handler registered for the url path
  (local dev and tests)
- http: POSTs tasks to the worker service
- cloud_tasks: creates Google Cloud Tasks that POST to the worker
"""

from collections import OrderedDict
from datetime import datetime
from typing import Protocol

from waingest.config import Settings
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context

logger = get_logger(__name__)

MAX_SEEN_IDS = 10_000


class TaskHandler(Protocol):
    """Protocol for inline task handlers."""

    def __call__(self, payload: dict) -> None:
        """Execute task with given payload."""
        ...


class TasksClient:
    """Tasks client with idempotent enqueue by task_id.

    Remembers the most recent `max_seen_ids` task ids accepted by this
    instance (same task_id = no-op); older ids are forgotten. Queue-side
    dedup for cloud_tasks uses the task id as the task name, and
    process_event is idempotent, so a forgotten id is harmless.
    """

    def __init__(self, settings: Settings, *, max_seen_ids: int = MAX_SEEN_IDS) -> None:
        self._settings = settings
        self._backend = settings.tasks_backend
        self._max_seen_ids = max_seen_ids
        self._seen_ids: OrderedDict[str, None] = OrderedDict()
        self._inline_handlers: dict[str, TaskHandler] = {}

    @property
    def backend(self) -> str:
        return self._backend

    def register_inline_handler(self, url_path: str, handler: TaskHandler) -> None:
        """Map a worker path to a local callable for the inline backend."""
        self._inline_handlers[url_path] = handler

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None = None,
        schedule_time: datetime | None = None,
    ) -> bool:
        """Enqueue a task for the worker endpoint at `url_path`.

        Args:
            task_id: Unique identifier for idempotency.
            url_path: Worker endpoint path (e.g. "/tasks/webhook-events/process").
            payload: Task data (ids only, no PII).
            correlation_id: Optional correlation ID for tracing.
            schedule_time: Optional future execution time (cloud_tasks only).

        Returns:
            True if the task was handed to the backend.
            False if no-op (task_id already seen) or the backend refused it.

        Raises:
            ValueError: If the backend is unknown or an inline path has no handler.
        """
        if task_id in self._seen_ids:
            return False

        if self._backend == "inline":
            handler = self._inline_handlers.get(url_path)
            if handler is None:
                raise ValueError(f"No inline handler registered for {url_path}")
            self._remember(task_id)
            logger.info(
                "inline task executing",
                extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
            )
            handler(payload)
            return True

        if self._backend == "http":
            from waingest.tasks.http_backend import enqueue_http

            ok = enqueue_http(
                self._settings, task_id, url_path, payload, correlation_id, schedule_time
            )
        elif self._backend == "cloud_tasks":
            from waingest.tasks.cloud_tasks_backend import enqueue_cloud_task

            ok = enqueue_cloud_task(
                self._settings, task_id, url_path, payload, correlation_id, schedule_time
            )
        else:
            raise ValueError(f"Unknown TASKS_BACKEND: {self._backend}")

        # Only remember ids the backend accepted so a failed send can be retried
        if ok:
            self._remember(task_id)
        return ok

    def _remember(self, task_id: str) -> None:
        self._seen_ids[task_id] = None
        while len(self._seen_ids) > self._max_seen_ids:
            self._seen_ids.popitem(last=False)

    def was_enqueued(self, task_id: str) -> bool:
        """Check if task_id was already enqueued by this client."""
        return task_id in self._seen_ids

    def clear(self) -> None:
        """Forget seen task_ids (useful for testing)."""
        self._seen_ids.clear()
