"""Cloud Tasks backend for GCP deployment."""
import json
from datetime import datetime

from google.api_core import exceptions as gcp_exceptions
from google.cloud import tasks_v2
from google.protobuf import timestamp_pb2

from waingest.config import Settings
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context

logger = get_logger(__name__)


def task_name_for(parent: str, task_id: str) -> str:
    """Cloud Tasks name for a task id (":" and "/" are not allowed)."""
    safe_task_id = task_id.replace(":", "-").replace("/", "-")
    return f"{parent}/tasks/{safe_task_id}"


def enqueue_cloud_task(
    settings: Settings,
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """Enqueue task via Google Cloud Tasks.

    Args:
        settings: Project, queue, worker URL and OIDC settings.
        task_id: Unique task identifier (used as the task name).
        url_path: Worker endpoint path.
        payload: Task payload (must be PII-free).
        correlation_id: Optional correlation ID for tracing.
        schedule_time: Optional future execution time.

    Returns:
        True if the task was created or already existed.

    Raises:
        RuntimeError: If required settings are missing.
        google.api_core.exceptions.GoogleAPICallError: On any other API error.
    """
    if not settings.gcp_project:
        raise RuntimeError("GOOGLE_CLOUD_PROJECT or GCP_PROJECT_ID required")
    if not settings.tasks_oidc_service_account:
        raise RuntimeError("TASKS_OIDC_SERVICE_ACCOUNT required for Cloud Tasks")

    worker_url = settings.worker_base_url.rstrip("/")
    client = tasks_v2.CloudTasksClient()
    parent = client.queue_path(settings.gcp_project, settings.gcp_location, settings.gcp_tasks_queue)

    headers = {"Content-Type": "application/json"}
    if correlation_id:
        headers["X-Correlation-ID"] = correlation_id

    task = {
        "name": task_name_for(parent, task_id),
        "http_request": {
            "http_method": tasks_v2.HttpMethod.POST,
            "url": f"{worker_url}{url_path}",
            "headers": headers,
            "body": json.dumps(payload).encode(),
            "oidc_token": {
                "service_account_email": settings.tasks_oidc_service_account,
                "audience": settings.tasks_oidc_audience or worker_url,
            },
        },
    }

    if schedule_time:
        timestamp = timestamp_pb2.Timestamp()
        timestamp.FromDatetime(schedule_time)
        task["schedule_time"] = timestamp

    try:
        response = client.create_task(parent=parent, task=task)
    except gcp_exceptions.AlreadyExists:
        logger.info(
            "cloud task already exists (dedupe)",
            extra={
                "extra_fields": safe_log_context(
                    task_id=task_id, correlationId=correlation_id
                )
            },
        )
        return True
    except Exception as e:
        logger.exception(
            "failed to enqueue cloud task",
            extra={
                "extra_fields": safe_log_context(
                    task_id=task_id, correlationId=correlation_id, error=str(e)
                )
            },
        )
        raise

    logger.info(
        "cloud task enqueued",
        extra={
            "extra_fields": safe_log_context(
                task_name=response.name, url_path=url_path, correlationId=correlation_id
            )
        },
    )
    return True
