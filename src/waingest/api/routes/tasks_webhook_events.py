"""Worker routes for webhook event materialization.

POST /tasks/webhook-events/process is the target of the tasks queue;
POST /tasks/webhook-events/sweep is meant for Cloud Scheduler.
A 5xx response makes the queue retry; 2xx acknowledges the task.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from waingest.api.deps import get_audit_sink, get_dispatcher, get_settings
from waingest.api.task_auth import verify_task_auth
from waingest.audit import AuditSink
from waingest.config import Settings
from waingest.domain.dispatcher import EventDispatcher
from waingest.domain.materializer import EventLogNotFoundError, process_event
from waingest.domain.sweep import sweep_unprocessed
from waingest.observability.correlation import get_correlation_id
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context
from waingest.tasks.contracts import ProcessEventTaskV1

router = APIRouter(prefix="/tasks/webhook-events", tags=["tasks"])

logger = get_logger(__name__)


def _require_task_auth(request: Request, settings: Settings) -> None:
    if not verify_task_auth(request, settings):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")


def make_inline_handler(audit_sink: AuditSink):
    """Handler for TasksClient's inline backend (local dev and tests).

    Runs the same materialization as the HTTP endpoint, in-process.
    A missing log is a permanent condition and is not raised.
    """

    def handle_process_event(payload: dict) -> None:
        task = ProcessEventTaskV1.from_dict(payload)
        try:
            process_event(task.log_id, audit_sink=audit_sink)
        except EventLogNotFoundError:
            return

    return handle_process_event


@router.post("/process")
async def process_webhook_event(
    request: Request,
    settings: Settings = Depends(get_settings),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> Response:
    """Materialize one event log.

    The body is parsed on the event loop; process_event (row lock, inserts)
    runs in the threadpool.

    Expected payload: ProcessEventTaskV1 (version, task_id, log_id,
    tenant_id, correlation_id).

    Returns:
        200 {"status": "processed" | "already_processed" | "not_found"};
        400 for a malformed task body; 500 when materialization fails.
    """
    _require_task_auth(request, settings)
    correlation_id = get_correlation_id()

    try:
        body: Any = await request.json()
        task = ProcessEventTaskV1.from_dict(body)
    except (ValueError, AttributeError) as e:
        logger.warning(
            "invalid task body",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    error=str(e),
                )
            },
        )
        return JSONResponse(status_code=400, content={"error": "invalid_task"})

    logger.info(
        "process event task received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=task.correlation_id or correlation_id,
                task_id=task.task_id,
                log_id=task.log_id,
                tenant_id=task.tenant_id,
            )
        },
    )

    try:
        outcome = await run_in_threadpool(process_event, task.log_id, audit_sink=audit_sink)
    except EventLogNotFoundError:
        # Retrying cannot make the row appear
        return JSONResponse(status_code=200, content={"status": "not_found"})
    except Exception:
        # process_event already logged and audited the failure
        return JSONResponse(status_code=500, content={"error": "processing_failed"})

    return JSONResponse(status_code=200, content={"status": outcome.value})


@router.post("/sweep")
def sweep_webhook_events(
    request: Request,
    settings: Settings = Depends(get_settings),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> Response:
    """Re-dispatch unprocessed event logs older than SWEEP_MIN_AGE_SECONDS."""
    _require_task_auth(request, settings)

    try:
        result = sweep_unprocessed(
            dispatcher,
            min_age_seconds=settings.sweep_min_age_seconds,
            limit=settings.sweep_batch_size,
            max_attempts=settings.sweep_max_attempts,
        )
    except Exception:
        logger.exception(
            "unprocessed sweep failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        return JSONResponse(status_code=500, content={"error": "sweep_failed"})

    return JSONResponse(
        status_code=200,
        content={
            "scanned": result.scanned,
            "dispatched": result.dispatched,
            "failed": result.failed,
        },
    )
