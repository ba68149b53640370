"""Resolve the tenant webhook config for an inbound delivery.

Read-only. Callers map both error types to generic responses so a caller
cannot tell which tenants or accounts exist.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from psycopg2.extensions import cursor as PgCursor

from waingest.infra.repositories.webhook_configs_repository import (
    get_ingress_config,
    get_verification_config,
)
from waingest.infra.secrets import open_secret, secret_matches


class WebhookConfigNotFoundError(Exception):
    """Unknown inbound account, or no config for it."""

    pass


class WebhookConfigInactiveError(Exception):
    """Account or config exists but is disabled."""

    pass


@dataclass(frozen=True)
class ResolvedWebhookConfig:
    """Active config for one delivery. app_secret is plaintext, in memory only."""

    tenant_id: str
    account_id: int
    config_id: int
    callback_path: str
    app_secret: str = field(repr=False)


def resolve_webhook_config(
    cur: PgCursor,
    phone_number_id: str,
    *,
    secrets_key: str,
) -> ResolvedWebhookConfig:
    """Look up the active config for the account behind `phone_number_id`.

    Args:
        cur: Database cursor.
        phone_number_id: value.metadata.phone_number_id from the payload.
        secrets_key: AES key (hex) the app secret is sealed with.

    Returns:
        ResolvedWebhookConfig with the opened app secret.

    Raises:
        WebhookConfigNotFoundError: Unknown account or missing config.
        WebhookConfigInactiveError: Inactive account/config or disabled status.
        SecretDecryptionError: Sealed secret cannot be opened with the key.
    """
    row = get_ingress_config(cur, phone_number_id)
    if row is None or row["config_id"] is None:
        raise WebhookConfigNotFoundError("webhook config not found")

    if not row["account_active"] or not row["config_active"] or row["status"] == "disabled":
        raise WebhookConfigInactiveError("webhook config inactive")

    return ResolvedWebhookConfig(
        tenant_id=row["tenant_id"],
        account_id=row["account_id"],
        config_id=row["config_id"],
        callback_path=row["callback_path"],
        app_secret=open_secret(row["app_secret_enc"], key_hex=secrets_key),
    )


def match_verification_token(
    cur: PgCursor,
    callback_path: str,
    verify_token: str | None,
    *,
    hash_key: str,
) -> int | None:
    """Check a GET handshake token against the config for `callback_path`.

    Returns:
        The config id when the config is active and the token matches,
        otherwise None.
    """
    row = get_verification_config(cur, callback_path)
    if row is None or not row["is_active"] or row["status"] == "disabled":
        return None
    if not secret_matches(verify_token, row["verify_token_hash"], key=hash_key):
        return None
    return row["id"]
