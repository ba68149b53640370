"""HTTP backend for tasks - sends tasks to the worker via HTTP POST.

Used where the public and worker roles run as separate containers on the
same network.
"""

from datetime import datetime

import requests
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.id_token import fetch_id_token

from waingest.config import Settings
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context

logger = get_logger(__name__)


def _fetch_oidc_token(audience: str) -> str | None:
    """Fetch a GCP ID token for the given audience.

    Relies on the GCP metadata server (Cloud Run, GCE) or application
    default credentials. Never called in local dev.

    Args:
        audience: Must equal TASKS_OIDC_AUDIENCE on the receiving worker.

    Returns:
        Signed ID token string, or None if fetching fails.
    """
    try:
        return fetch_id_token(GoogleRequest(), audience)
    except Exception as e:
        logger.error(
            "failed to fetch OIDC ID token",
            extra={"extra_fields": safe_log_context(audience=audience, error=str(e))},
        )
        return None


def enqueue_http(
    settings: Settings,
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """Send a task to the worker via HTTP POST.

    Args:
        settings: Worker URL, timeout and auth settings.
        task_id: Unique task identifier (for logging/tracing).
        url_path: Worker endpoint path.
        payload: Task payload (must be PII-free).
        correlation_id: Optional correlation ID for tracing.
        schedule_time: Not supported by this backend.

    Returns:
        True if the worker answered 2xx, False otherwise.
    """
    if schedule_time is not None:
        logger.warning(
            "HTTP backend does not support scheduled tasks",
            extra={"extra_fields": safe_log_context(task_id=task_id)},
        )
        return False

    url = f"{settings.worker_base_url.rstrip('/')}{url_path}"
    headers = {
        "Content-Type": "application/json",
        "X-Correlation-ID": correlation_id or "",
        "X-Task-Id": task_id,
    }

    # Shared secret in local dev, real OIDC token elsewhere
    if settings.local_dev:
        if settings.internal_task_secret:
            headers["X-Internal-Task-Secret"] = settings.internal_task_secret
    else:
        token = _fetch_oidc_token(settings.tasks_oidc_audience or settings.worker_base_url)
        if not token:
            logger.error(
                "HTTP task enqueue aborted: OIDC token unavailable",
                extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
            )
            return False
        headers["Authorization"] = f"Bearer {token}"

    try:
        response = requests.post(
            url,
            json=payload,
            headers=headers,
            timeout=settings.tasks_http_timeout,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(
            "HTTP task enqueue failed",
            extra={
                "extra_fields": safe_log_context(
                    task_id=task_id, url_path=url_path, error=str(e)
                )
            },
        )
        return False

    logger.info(
        "HTTP task enqueued",
        extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
    )
    return True
