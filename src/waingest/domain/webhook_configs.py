"""Webhook config administration.

One config per (tenant, inbound account). Verify tokens and app secrets are
accepted in plaintext, stored only as HMAC digests (plus the AES-GCM sealed
app secret needed for signature checks) and never returned. Every change is
reported to the injected audit sink after commit; failures are reported as
<ACTION>_FAILURE and re-raised.
"""

from __future__ import annotations

import re
from typing import Any

from psycopg2 import errors as pg_errors
from psycopg2.extensions import connection as PgConnection

from waingest.audit import AuditEvent, AuditSink, NullAuditSink
from waingest.config import Settings
from waingest.infra.db import txn
from waingest.infra.repositories import webhook_configs_repository as repo
from waingest.infra.secrets import generate_token, hash_secret, seal_secret
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context

logger = get_logger(__name__)

ENTITY_TYPE = "webhook_config"
SETTABLE_STATUSES = ("verified", "disabled")
TENANT_ACCOUNT_CONSTRAINT = "uq_webhook_configs_tenant_account"

_CALLBACK_PATH_PATTERN = re.compile(r"^[A-Za-z0-9_-]{8,128}$")


class WebhookConfigError(Exception):
    """Admin operation rejected.

    Attributes:
        code: Machine-readable reason ("not_found", "account_not_found",
              "invalid_callback_path", "callback_path_taken", "config_exists",
              "invalid_status", "invalid_secret").
    """

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        super().__init__(message or code)


def _validate_callback_path(callback_path: str) -> None:
    if not _CALLBACK_PATH_PATTERN.match(callback_path or ""):
        raise WebhookConfigError(
            "invalid_callback_path",
            "callback_path must be 8-128 chars of letters, digits, '-' or '_'",
        )


def _unique_violation_error(e: pg_errors.UniqueViolation) -> WebhookConfigError:
    # A concurrent create for the same account loses on the tenant/account key
    constraint = getattr(getattr(e, "diag", None), "constraint_name", None)
    if constraint == TENANT_ACCOUNT_CONSTRAINT:
        return WebhookConfigError("config_exists", "config for this account already exists")
    return WebhookConfigError("callback_path_taken", "callback_path already in use")


def _require_secret(value: str | None, name: str) -> str:
    if not value or not value.strip():
        raise WebhookConfigError("invalid_secret", f"{name} must not be empty")
    return value


def _report_failure(
    sink: AuditSink,
    action: str,
    *,
    tenant_id: str,
    account_id: int,
    user_id: str | None,
    error: Exception,
) -> None:
    logger.warning(
        "webhook config change failed",
        extra={
            "extra_fields": safe_log_context(
                action=action,
                tenant_id=tenant_id,
                whatsapp_account_id=account_id,
                error_type=type(error).__name__,
                code=getattr(error, "code", None),
            )
        },
    )
    sink.record(
        AuditEvent(
            entity_type=ENTITY_TYPE,
            action=f"{action}_FAILURE",
            tenant_id=tenant_id,
            changed_by=user_id,
            reason=getattr(error, "code", None) or type(error).__name__,
            new_values={"whatsapp_account_id": account_id},
        )
    )


def _locked_config(cur, tenant_id: str, account_id: int) -> dict[str, Any]:
    existing = repo.get_config_view(
        cur, tenant_id=tenant_id, whatsapp_account_id=account_id, for_update=True
    )
    if existing is None:
        raise WebhookConfigError("not_found", "webhook config not found")
    return existing


def get_config(
    tenant_id: str,
    account_id: int,
    *,
    conn: PgConnection | None = None,
) -> dict[str, Any] | None:
    """Config view for (tenant, account), or None. Never includes secrets."""
    with txn(conn) as cur:
        return repo.get_config_view(cur, tenant_id=tenant_id, whatsapp_account_id=account_id)


def create_or_update_config(
    *,
    tenant_id: str,
    account_id: int,
    callback_path: str,
    verify_token: str,
    app_secret: str,
    settings: Settings,
    status: str | None = None,
    user_id: str | None = None,
    audit_sink: AuditSink | None = None,
    conn: PgConnection | None = None,
) -> dict[str, Any]:
    """Create the config for (tenant, account), or replace it.

    Args:
        tenant_id: Owning tenant.
        account_id: whatsapp_accounts.id; must belong to the tenant.
        callback_path: Public path segment of the webhook URL.
        verify_token: Plaintext verify token (hashed before storage).
        app_secret: Plaintext app secret (hashed and sealed before storage).
        settings: Provides the hashing and sealing keys.
        status: Optional explicit status; new configs default to "unverified",
                updates keep the current status.
        user_id: Acting operator.
        audit_sink: Receives CREATE/UPDATE records.
        conn: Optional connection (a new one is opened if None).

    Returns:
        The config view.

    Raises:
        WebhookConfigError: Invalid input, unknown account or taken path.
    """
    sink = audit_sink or NullAuditSink()
    action = "UPSERT"

    try:
        _validate_callback_path(callback_path)
        _require_secret(verify_token, "verify_token")
        _require_secret(app_secret, "app_secret")
        if status is not None and status not in ("unverified", *SETTABLE_STATUSES):
            raise WebhookConfigError("invalid_status", f"unknown status: {status}")

        secrets = {
            "verify_token_hash": hash_secret(verify_token, key=settings.webhook_hash_secret),
            "app_secret_hash": hash_secret(app_secret, key=settings.webhook_hash_secret),
            "app_secret_enc": seal_secret(app_secret, key_hex=settings.webhook_secrets_key),
        }

        with txn(conn) as cur:
            if not repo.account_exists(cur, tenant_id=tenant_id, whatsapp_account_id=account_id):
                raise WebhookConfigError("account_not_found", "whatsapp account not found")

            existing = repo.get_config_view(
                cur, tenant_id=tenant_id, whatsapp_account_id=account_id, for_update=True
            )
            if existing is None:
                action = "CREATE"
                config = repo.insert_config(
                    cur,
                    tenant_id=tenant_id,
                    whatsapp_account_id=account_id,
                    callback_path=callback_path,
                    status=status or "unverified",
                    user_id=user_id,
                    **secrets,
                )
                old_values = None
            else:
                action = "UPDATE"
                config = repo.update_config(
                    cur,
                    config_id=existing["id"],
                    callback_path=callback_path,
                    status=status or existing["status"],
                    user_id=user_id,
                    **secrets,
                )
                old_values = {
                    "callback_path": existing["callback_path"],
                    "status": existing["status"],
                }
    except pg_errors.UniqueViolation as e:
        err = _unique_violation_error(e)
        _report_failure(
            sink, action, tenant_id=tenant_id, account_id=account_id, user_id=user_id, error=err
        )
        raise err from e
    except Exception as e:
        _report_failure(
            sink, action, tenant_id=tenant_id, account_id=account_id, user_id=user_id, error=e
        )
        raise

    sink.record(
        AuditEvent(
            entity_type=ENTITY_TYPE,
            entity_id=str(config["id"]),
            tenant_id=tenant_id,
            action=action,
            changed_by=user_id,
            old_values=old_values,
            new_values={
                "callback_path": config["callback_path"],
                "status": config["status"],
                "verify_token": "***",
                "app_secret": "***",
            },
        )
    )
    return config


def rotate_app_secret(
    *,
    tenant_id: str,
    account_id: int,
    app_secret: str,
    settings: Settings,
    user_id: str | None = None,
    audit_sink: AuditSink | None = None,
    conn: PgConnection | None = None,
) -> dict[str, Any]:
    """Replace the app secret used to verify delivery signatures.

    Raises:
        WebhookConfigError: Empty secret or no config.
    """
    sink = audit_sink or NullAuditSink()
    try:
        _require_secret(app_secret, "app_secret")
        app_secret_hash = hash_secret(app_secret, key=settings.webhook_hash_secret)
        app_secret_enc = seal_secret(app_secret, key_hex=settings.webhook_secrets_key)
        with txn(conn) as cur:
            existing = _locked_config(cur, tenant_id, account_id)
            config = repo.update_app_secret(
                cur,
                config_id=existing["id"],
                app_secret_hash=app_secret_hash,
                app_secret_enc=app_secret_enc,
                user_id=user_id,
            )
    except Exception as e:
        _report_failure(
            sink,
            "ROTATE_APP_SECRET",
            tenant_id=tenant_id,
            account_id=account_id,
            user_id=user_id,
            error=e,
        )
        raise

    sink.record(
        AuditEvent(
            entity_type=ENTITY_TYPE,
            entity_id=str(config["id"]),
            tenant_id=tenant_id,
            action="ROTATE_APP_SECRET",
            changed_by=user_id,
            old_values={"app_secret": "***"},
            new_values={"app_secret": "***"},
        )
    )
    return config


def rotate_verify_token(
    *,
    tenant_id: str,
    account_id: int,
    settings: Settings,
    user_id: str | None = None,
    audit_sink: AuditSink | None = None,
    conn: PgConnection | None = None,
) -> tuple[dict[str, Any], str]:
    """Generate a new verify token; the config goes back to "unverified".

    Returns:
        (config view, new plaintext token). The token is not retrievable later.

    Raises:
        WebhookConfigError: No config.
    """
    sink = audit_sink or NullAuditSink()
    token = generate_token()
    try:
        token_hash = hash_secret(token, key=settings.webhook_hash_secret)
        with txn(conn) as cur:
            existing = _locked_config(cur, tenant_id, account_id)
            config = repo.update_verify_token(
                cur,
                config_id=existing["id"],
                verify_token_hash=token_hash,
                user_id=user_id,
            )
    except Exception as e:
        _report_failure(
            sink,
            "ROTATE_TOKEN",
            tenant_id=tenant_id,
            account_id=account_id,
            user_id=user_id,
            error=e,
        )
        raise

    sink.record(
        AuditEvent(
            entity_type=ENTITY_TYPE,
            entity_id=str(config["id"]),
            tenant_id=tenant_id,
            action="ROTATE_TOKEN",
            changed_by=user_id,
            old_values={"verify_token": "***", "status": existing["status"]},
            new_values={"verify_token": "***", "status": config["status"]},
        )
    )
    return config, token


def set_config_status(
    *,
    tenant_id: str,
    account_id: int,
    status: str,
    user_id: str | None = None,
    audit_sink: AuditSink | None = None,
    conn: PgConnection | None = None,
) -> dict[str, Any]:
    """Force status to "verified" or "disabled".

    Raises:
        WebhookConfigError: Unknown status or no config.
    """
    sink = audit_sink or NullAuditSink()
    try:
        if status not in SETTABLE_STATUSES:
            raise WebhookConfigError("invalid_status", f"unknown status: {status}")
        with txn(conn) as cur:
            existing = _locked_config(cur, tenant_id, account_id)
            config = repo.update_status(
                cur, config_id=existing["id"], status=status, user_id=user_id
            )
    except Exception as e:
        _report_failure(
            sink,
            "SET_STATUS",
            tenant_id=tenant_id,
            account_id=account_id,
            user_id=user_id,
            error=e,
        )
        raise

    sink.record(
        AuditEvent(
            entity_type=ENTITY_TYPE,
            entity_id=str(config["id"]),
            tenant_id=tenant_id,
            action="SET_STATUS",
            changed_by=user_id,
            reason=f"status set to {status}",
            old_values={"status": existing["status"]},
            new_values={"status": config["status"]},
        )
    )
    return config


def set_config_active(
    *,
    tenant_id: str,
    account_id: int,
    is_active: bool,
    user_id: str | None = None,
    audit_sink: AuditSink | None = None,
    conn: PgConnection | None = None,
) -> dict[str, Any]:
    """Enable or disable ingestion for the config.

    Raises:
        WebhookConfigError: No config.
    """
    sink = audit_sink or NullAuditSink()
    action = "ENABLE" if is_active else "DISABLE"
    try:
        with txn(conn) as cur:
            existing = _locked_config(cur, tenant_id, account_id)
            config = repo.update_active(
                cur, config_id=existing["id"], is_active=is_active, user_id=user_id
            )
    except Exception as e:
        _report_failure(
            sink, action, tenant_id=tenant_id, account_id=account_id, user_id=user_id, error=e
        )
        raise

    sink.record(
        AuditEvent(
            entity_type=ENTITY_TYPE,
            entity_id=str(config["id"]),
            tenant_id=tenant_id,
            action=action,
            changed_by=user_id,
            old_values={"is_active": existing["is_active"]},
            new_values={"is_active": config["is_active"]},
        )
    )
    return config
