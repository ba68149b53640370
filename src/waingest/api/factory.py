"""FastAPI application factory with role-based route mounting."""

from fastapi import FastAPI, Request, Response

from waingest.audit import AuditSink, PostgresAuditSink
from waingest.config import AppRole, Settings
from waingest.domain.dispatcher import EventDispatcher
from waingest.infra import db
from waingest.observability.correlation import (
    CORRELATION_ID_HEADER,
    correlation_scope,
)
from waingest.tasks.client import TasksClient
from waingest.tasks.contracts import PROCESS_EVENT_PATH

from .health import public_router, worker_router
from .routes import tasks_webhook_events, webhook_configs, webhook_event_logs, webhooks_whatsapp


def create_app(
    role: AppRole | None = None,
    settings: Settings | None = None,
    *,
    tasks_client: TasksClient | None = None,
    audit_sink: AuditSink | None = None,
) -> FastAPI:
    """Create the FastAPI app for one APP_ROLE.

    Every role serves provider webhooks and operator (admin) routes; the
    worker role adds the task endpoints that materialize logged events.

    Args:
        role: Explicit role override. If None, settings.app_role is used.
        settings: Process settings. If None, read once from the environment.
        tasks_client: Tasks client override (tests).
        audit_sink: Audit sink override. Defaults to PostgresAuditSink.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = Settings.from_env()
    if role is None:
        role = settings.app_role

    db.configure(settings.database_url)

    sink = audit_sink or PostgresAuditSink()
    client = tasks_client or TasksClient(settings)
    if client.backend == "inline":
        client.register_inline_handler(
            PROCESS_EVENT_PATH, tasks_webhook_events.make_inline_handler(sink)
        )

    app = FastAPI(
        title="waingest",
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.audit_sink = sink
    app.state.dispatcher = EventDispatcher(client)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response

    # Public routes are mounted for every role
    app.include_router(public_router)
    app.include_router(webhooks_whatsapp.router)
    app.include_router(webhook_event_logs.router)
    app.include_router(webhook_configs.router)

    if role == "worker":
        app.include_router(worker_router)
        app.include_router(tasks_webhook_events.router)

    return app
