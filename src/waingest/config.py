"""Runtime settings loaded once from the environment.

Settings are built by Settings.from_env() at process start and passed
explicitly to create_app() and to the components that need them. Nothing
else in the package reads os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal, Mapping

AppRole = Literal["public", "worker"]
TasksBackend = Literal["inline", "http", "cloud_tasks"]

_VALID_ROLES = ("public", "worker")
_VALID_BACKENDS = ("inline", "http", "cloud_tasks")


def _env_bool(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Process configuration.

    Secrets are excluded from repr so that a logged Settings object
    never leaks them.
    """

    database_url: str | None = None
    app_role: AppRole = "public"
    local_dev: bool = False

    # Tasks / worker dispatch
    tasks_backend: TasksBackend = "inline"
    worker_base_url: str = "http://worker:8000"
    tasks_http_timeout: int = 30
    tasks_oidc_audience: str | None = None
    tasks_oidc_service_account: str | None = None
    internal_task_secret: str = field(default="", repr=False)
    gcp_project: str | None = None
    gcp_location: str = "us-central1"
    gcp_tasks_queue: str = "waingest-webhook-events"

    # Webhook secrets at rest
    webhook_hash_secret: str = field(default="", repr=False)
    webhook_secrets_key: str = field(default="", repr=False)

    # Admin surface
    admin_api_token: str = field(default="", repr=False)

    # Reconciliation sweep
    sweep_min_age_seconds: int = 300
    sweep_batch_size: int = 200
    sweep_max_attempts: int = 10

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables.

        Raises:
            ValueError: If APP_ROLE or TASKS_BACKEND has an unknown value.
        """
        env = os.environ if environ is None else environ

        role = env.get("APP_ROLE", "public")
        if role not in _VALID_ROLES:
            raise ValueError(f"Unknown APP_ROLE: {role}")

        backend = env.get("TASKS_BACKEND", "inline")
        if backend not in _VALID_BACKENDS:
            raise ValueError(f"Unknown TASKS_BACKEND: {backend}")

        return cls(
            database_url=env.get("DATABASE_URL") or None,
            app_role=role,  # type: ignore[arg-type]
            local_dev=_env_bool(env.get("LOCAL_DEV")),
            tasks_backend=backend,  # type: ignore[arg-type]
            worker_base_url=env.get("WORKER_BASE_URL", "http://worker:8000"),
            tasks_http_timeout=int(env.get("TASKS_HTTP_TIMEOUT", "30")),
            tasks_oidc_audience=env.get("TASKS_OIDC_AUDIENCE") or None,
            tasks_oidc_service_account=env.get("TASKS_OIDC_SERVICE_ACCOUNT") or None,
            internal_task_secret=env.get("INTERNAL_TASK_SECRET", ""),
            gcp_project=env.get("GOOGLE_CLOUD_PROJECT") or env.get("GCP_PROJECT_ID") or None,
            gcp_location=env.get("GCP_LOCATION", "us-central1"),
            gcp_tasks_queue=env.get("GCP_TASKS_QUEUE", "waingest-webhook-events"),
            webhook_hash_secret=env.get("WEBHOOK_HASH_SECRET", ""),
            webhook_secrets_key=env.get("WEBHOOK_SECRETS_KEY", ""),
            admin_api_token=env.get("ADMIN_API_TOKEN", ""),
            sweep_min_age_seconds=int(env.get("SWEEP_MIN_AGE_SECONDS", "300")),
            sweep_batch_size=int(env.get("SWEEP_BATCH_SIZE", "200")),
            sweep_max_attempts=int(env.get("SWEEP_MAX_ATTEMPTS", "10")),
        )
