"""WhatsApp webhook routes - provider verification handshake and delivery ingress.

Delivery flow (POST):
1. Parse the raw body and check the envelope shape (400)
2. Resolve the tenant config from metadata.phone_number_id (404/403)
3. Verify X-Hub-Signature-256 over the raw bytes (401)
4. Insert the event log under its dedup key
5. Ack; dispatch to the worker runs after the response is sent

Only a durable insert is acknowledged with 200, so the provider keeps
retrying until the delivery is on disk. Payload content, phone numbers and
secrets never reach the logs.
"""

import json
from datetime import datetime
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from waingest.api.deps import get_dispatcher, get_settings
from waingest.config import Settings
from waingest.domain.config_resolver import (
    WebhookConfigInactiveError,
    WebhookConfigNotFoundError,
    match_verification_token,
    resolve_webhook_config,
)
from waingest.domain.dispatcher import EventDispatcher
from waingest.domain.ingest import LogEventResult, log_event
from waingest.infra.db import txn
from waingest.infra.repositories.webhook_configs_repository import mark_verified
from waingest.infra.time import utc_now
from waingest.observability.correlation import get_correlation_id
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context
from waingest.whatsapp.payload import (
    InvalidPayloadError,
    extract_event_timestamp,
    get_phone_number_id,
    validate_delivery,
)
from waingest.whatsapp.signature import SignatureVerificationError, verify_signature

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)


def _error(status_code: int, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": code})


@router.get("/{callback_path}")
def verify_webhook(
    callback_path: str,
    hub_mode: str | None = Query(default=None, alias="hub.mode"),
    hub_verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(default=None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Provider subscription handshake.

    Echoes hub.challenge when hub.mode is "subscribe" and hub.verify_token
    matches the stored hash for the active config at this path. The config
    is marked verified. Anything else is 403.
    """
    correlation_id = get_correlation_id()

    if hub_mode != "subscribe" or not hub_verify_token or hub_challenge is None:
        logger.warning(
            "webhook verification rejected",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    reason="bad_params",
                    hub_mode=hub_mode,
                )
            },
        )
        return Response(status_code=403, content="Forbidden")

    with txn() as cur:
        config_id = match_verification_token(
            cur,
            callback_path,
            hub_verify_token,
            hash_key=settings.webhook_hash_secret,
        )
        if config_id is None:
            logger.warning(
                "webhook verification rejected",
                extra={
                    "extra_fields": safe_log_context(
                        correlationId=correlation_id,
                        reason="token_mismatch",
                    )
                },
            )
            return Response(status_code=403, content="Forbidden")

        mark_verified(cur, config_id)

    logger.info(
        "webhook verified",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                config_id=config_id,
            )
        },
    )
    return Response(status_code=200, content=hub_challenge, media_type="text/plain")


def _ingest_delivery(
    callback_path: str,
    raw_body: bytes,
    payload: dict[str, Any],
    signature: str | None,
    received_at: datetime,
    settings: Settings,
    correlation_id: str,
) -> tuple[JSONResponse, LogEventResult | None, str | None]:
    """Resolve, verify and log one parsed delivery. Blocking (database).

    Returns:
        (response, log result when a new row was created, tenant id).
    """
    phone_number_id = get_phone_number_id(payload)

    try:
        with txn() as cur:
            config = resolve_webhook_config(
                cur,
                phone_number_id,
                secrets_key=settings.webhook_secrets_key,
            )
    except WebhookConfigNotFoundError:
        logger.warning(
            "webhook config not found",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _error(404, "not_found"), None, None
    except WebhookConfigInactiveError:
        logger.warning(
            "webhook config inactive",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _error(403, "inactive"), None, None
    except Exception:
        logger.exception(
            "webhook config resolution failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _error(500, "internal_error"), None, None

    if config.callback_path != callback_path:
        # Same response as an unknown account
        logger.warning(
            "webhook callback path mismatch",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    tenant_id=config.tenant_id,
                )
            },
        )
        return _error(404, "not_found"), None, None

    try:
        verify_signature(raw_body, signature, config.app_secret)
    except SignatureVerificationError as e:
        logger.warning(
            "webhook signature rejected",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    tenant_id=config.tenant_id,
                    reason=str(e),
                )
            },
        )
        return _error(401, "invalid_signature"), None, None

    event_ts = extract_event_timestamp(payload, received_at)

    try:
        with txn() as cur:
            result = log_event(
                cur,
                tenant_id=config.tenant_id,
                account_id=config.account_id,
                payload=payload,
                signature=signature,
                event_ts=event_ts,
            )
    except Exception:
        logger.exception(
            "webhook event log insert failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    tenant_id=config.tenant_id,
                )
            },
        )
        return _error(500, "internal_error"), None, None

    if not result.created:
        logger.info(
            "duplicate webhook delivery",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    tenant_id=config.tenant_id,
                    event_type=result.event_type,
                )
            },
        )
        return JSONResponse(status_code=200, content={"status": "duplicate"}), None, None

    logger.info(
        "webhook event logged",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                tenant_id=config.tenant_id,
                log_id=result.log_id,
                event_type=result.event_type,
            )
        },
    )
    return JSONResponse(status_code=200, content={"status": "ok"}), result, config.tenant_id


@router.post("/{callback_path}")
async def receive_webhook(
    callback_path: str,
    request: Request,
    background_tasks: BackgroundTasks,
    x_hub_signature_256: str | None = Header(default=None, alias="X-Hub-Signature-256"),
    settings: Settings = Depends(get_settings),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> Response:
    """Receive one provider delivery.

    The body is read on the event loop; resolution, signature check and the
    insert run in the threadpool.

    Returns:
        200 {"status": "ok"} once logged, 200 {"status": "duplicate"} for a
        delivery logged before, 400/401/403/404 for rejected deliveries and
        500 when the log insert fails (the provider retries).
    """
    correlation_id = get_correlation_id()
    received_at = utc_now()
    raw_body = await request.body()

    try:
        payload: Any = json.loads(raw_body)
        validate_delivery(payload)
    except (ValueError, RecursionError, InvalidPayloadError) as e:
        # RecursionError: pathologically nested JSON
        logger.warning(
            "invalid webhook payload",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    error_type=type(e).__name__,
                )
            },
        )
        return _error(400, "invalid_payload")

    response, result, tenant_id = await run_in_threadpool(
        _ingest_delivery,
        callback_path,
        raw_body,
        payload,
        x_hub_signature_256,
        received_at,
        settings,
        correlation_id,
    )

    if result is not None:
        # Runs after the response is sent
        background_tasks.add_task(
            dispatcher.submit,
            result.log_id,
            tenant_id,
            correlation_id,
        )
    return response
