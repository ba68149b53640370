"""Operator routes for per-account webhook configuration.

Responses carry config views only; verify tokens and app secrets are
write-only, except for the freshly generated token returned once by
rotate-verify-token.
"""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from waingest.api.admin_auth import require_admin
from waingest.api.deps import get_audit_sink, get_settings
from waingest.audit import AuditSink
from waingest.config import Settings
from waingest.domain import webhook_configs as configs
from waingest.domain.webhook_configs import WebhookConfigError

router = APIRouter(prefix="/admin/webhook-configs", tags=["admin"])

_ERROR_STATUS = {
    "not_found": 404,
    "account_not_found": 404,
    "callback_path_taken": 409,
    "config_exists": 409,
}


class UpsertConfigRequest(BaseModel):
    callback_path: str = Field(min_length=8, max_length=128)
    verify_token: str = Field(min_length=1)
    app_secret: str = Field(min_length=1)
    status: Literal["unverified", "verified", "disabled"] | None = None


class RotateAppSecretRequest(BaseModel):
    app_secret: str = Field(min_length=1)


class SetStatusRequest(BaseModel):
    status: Literal["verified", "disabled"]


class SetActiveRequest(BaseModel):
    is_active: bool


def _http_error(e: WebhookConfigError) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS.get(e.code, 400), detail=e.code)


@router.get("/{tenant_id}/{whatsapp_account_id}")
def get_webhook_config(
    tenant_id: str,
    whatsapp_account_id: int,
    actor: str = Depends(require_admin),
) -> dict:
    config = configs.get_config(tenant_id, whatsapp_account_id)
    if config is None:
        raise HTTPException(status_code=404, detail="not_found")
    return config


@router.put("/{tenant_id}/{whatsapp_account_id}")
def put_webhook_config(
    tenant_id: str,
    whatsapp_account_id: int,
    req: UpsertConfigRequest,
    actor: str = Depends(require_admin),
    settings: Settings = Depends(get_settings),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> dict:
    """Create or replace the config for an account."""
    try:
        return configs.create_or_update_config(
            tenant_id=tenant_id,
            account_id=whatsapp_account_id,
            callback_path=req.callback_path,
            verify_token=req.verify_token,
            app_secret=req.app_secret,
            status=req.status,
            settings=settings,
            user_id=actor,
            audit_sink=audit_sink,
        )
    except WebhookConfigError as e:
        raise _http_error(e)


@router.post("/{tenant_id}/{whatsapp_account_id}/rotate-verify-token")
def post_rotate_verify_token(
    tenant_id: str,
    whatsapp_account_id: int,
    actor: str = Depends(require_admin),
    settings: Settings = Depends(get_settings),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> dict:
    """Issue a new verify token. It is shown in this response only."""
    try:
        config, token = configs.rotate_verify_token(
            tenant_id=tenant_id,
            account_id=whatsapp_account_id,
            settings=settings,
            user_id=actor,
            audit_sink=audit_sink,
        )
    except WebhookConfigError as e:
        raise _http_error(e)
    return {"config": config, "verify_token": token}


@router.post("/{tenant_id}/{whatsapp_account_id}/rotate-app-secret")
def post_rotate_app_secret(
    tenant_id: str,
    whatsapp_account_id: int,
    req: RotateAppSecretRequest,
    actor: str = Depends(require_admin),
    settings: Settings = Depends(get_settings),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> dict:
    try:
        return configs.rotate_app_secret(
            tenant_id=tenant_id,
            account_id=whatsapp_account_id,
            app_secret=req.app_secret,
            settings=settings,
            user_id=actor,
            audit_sink=audit_sink,
        )
    except WebhookConfigError as e:
        raise _http_error(e)


@router.post("/{tenant_id}/{whatsapp_account_id}/status")
def post_config_status(
    tenant_id: str,
    whatsapp_account_id: int,
    req: SetStatusRequest,
    actor: str = Depends(require_admin),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> dict:
    try:
        return configs.set_config_status(
            tenant_id=tenant_id,
            account_id=whatsapp_account_id,
            status=req.status,
            user_id=actor,
            audit_sink=audit_sink,
        )
    except WebhookConfigError as e:
        raise _http_error(e)


@router.post("/{tenant_id}/{whatsapp_account_id}/active")
def post_config_active(
    tenant_id: str,
    whatsapp_account_id: int,
    req: SetActiveRequest,
    actor: str = Depends(require_admin),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> dict:
    """Enable or disable ingestion for the account."""
    try:
        return configs.set_config_active(
            tenant_id=tenant_id,
            account_id=whatsapp_account_id,
            is_active=req.is_active,
            user_id=actor,
            audit_sink=audit_sink,
        )
    except WebhookConfigError as e:
        raise _http_error(e)
