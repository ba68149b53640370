"""Webhook config repository - per (tenant, inbound account) settings.

Uses raw SQL with psycopg2 (no ORM). Functions returning a "view" never
select secret columns; only get_ingress_config() reads the sealed app secret.
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

_VIEW_COLUMNS = """
    id, tenant_id, whatsapp_account_id, callback_path, status,
    last_verified_at, is_active, created_at, updated_at
"""


def _view_to_dict(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": row[0],
        "tenant_id": row[1],
        "whatsapp_account_id": row[2],
        "callback_path": row[3],
        "status": row[4],
        "last_verified_at": row[5],
        "is_active": row[6],
        "created_at": row[7],
        "updated_at": row[8],
    }


def get_ingress_config(cur: PgCursor, phone_number_id: str) -> dict[str, Any] | None:
    """Account and config for a provider phone_number_id.

    Returns:
        Dict with account fields and config fields (config fields are None
        when the account has no config), or None for an unknown account.
    """
    cur.execute(
        """
        SELECT a.id, a.tenant_id, a.is_active,
               c.id, c.callback_path, c.app_secret_enc, c.status, c.is_active
        FROM whatsapp_accounts a
        LEFT JOIN webhook_configs c
          ON c.whatsapp_account_id = a.id AND c.tenant_id = a.tenant_id
        WHERE a.phone_number_id = %s
        """,
        (phone_number_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None

    return {
        "account_id": row[0],
        "tenant_id": row[1],
        "account_active": row[2],
        "config_id": row[3],
        "callback_path": row[4],
        "app_secret_enc": row[5],
        "status": row[6],
        "config_active": row[7],
    }


def get_verification_config(cur: PgCursor, callback_path: str) -> dict[str, Any] | None:
    """Config fields needed for the GET verification handshake."""
    cur.execute(
        """
        SELECT c.id, c.tenant_id, c.verify_token_hash, c.status,
               c.is_active AND a.is_active
        FROM webhook_configs c
        JOIN whatsapp_accounts a ON a.id = c.whatsapp_account_id
        WHERE c.callback_path = %s
        """,
        (callback_path,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {
        "id": row[0],
        "tenant_id": row[1],
        "verify_token_hash": row[2],
        "status": row[3],
        "is_active": row[4],
    }


def account_exists(cur: PgCursor, *, tenant_id: str, whatsapp_account_id: int) -> bool:
    cur.execute(
        "SELECT 1 FROM whatsapp_accounts WHERE id = %s AND tenant_id = %s",
        (whatsapp_account_id, tenant_id),
    )
    return cur.fetchone() is not None


def get_config_view(
    cur: PgCursor,
    *,
    tenant_id: str,
    whatsapp_account_id: int,
    for_update: bool = False,
) -> dict[str, Any] | None:
    """Config without secret columns."""
    suffix = " FOR UPDATE" if for_update else ""
    cur.execute(
        f"""
        SELECT {_VIEW_COLUMNS}
        FROM webhook_configs
        WHERE tenant_id = %s AND whatsapp_account_id = %s{suffix}
        """,
        (tenant_id, whatsapp_account_id),
    )
    row = cur.fetchone()
    return _view_to_dict(row) if row else None


def insert_config(
    cur: PgCursor,
    *,
    tenant_id: str,
    whatsapp_account_id: int,
    callback_path: str,
    verify_token_hash: str,
    app_secret_hash: str,
    app_secret_enc: str,
    status: str,
    user_id: str | None,
) -> dict[str, Any]:
    cur.execute(
        f"""
        INSERT INTO webhook_configs (
            tenant_id, whatsapp_account_id, callback_path,
            verify_token_hash, app_secret_hash, app_secret_enc,
            status, created_by, updated_by
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING {_VIEW_COLUMNS}
        """,
        (
            tenant_id,
            whatsapp_account_id,
            callback_path,
            verify_token_hash,
            app_secret_hash,
            app_secret_enc,
            status,
            user_id,
            user_id,
        ),
    )
    return _view_to_dict(cur.fetchone())


def update_config(
    cur: PgCursor,
    *,
    config_id: int,
    callback_path: str,
    verify_token_hash: str,
    app_secret_hash: str,
    app_secret_enc: str,
    status: str,
    user_id: str | None,
) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE webhook_configs
        SET callback_path = %s,
            verify_token_hash = %s,
            app_secret_hash = %s,
            app_secret_enc = %s,
            status = %s,
            updated_by = %s,
            updated_at = now()
        WHERE id = %s
        RETURNING {_VIEW_COLUMNS}
        """,
        (
            callback_path,
            verify_token_hash,
            app_secret_hash,
            app_secret_enc,
            status,
            user_id,
            config_id,
        ),
    )
    return _view_to_dict(cur.fetchone())


def update_app_secret(
    cur: PgCursor,
    *,
    config_id: int,
    app_secret_hash: str,
    app_secret_enc: str,
    user_id: str | None,
) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE webhook_configs
        SET app_secret_hash = %s, app_secret_enc = %s,
            updated_by = %s, updated_at = now()
        WHERE id = %s
        RETURNING {_VIEW_COLUMNS}
        """,
        (app_secret_hash, app_secret_enc, user_id, config_id),
    )
    return _view_to_dict(cur.fetchone())


def update_verify_token(
    cur: PgCursor,
    *,
    config_id: int,
    verify_token_hash: str,
    user_id: str | None,
) -> dict[str, Any]:
    """Replace the verify token; the config must be verified again."""
    cur.execute(
        f"""
        UPDATE webhook_configs
        SET verify_token_hash = %s, status = 'unverified',
            updated_by = %s, updated_at = now()
        WHERE id = %s
        RETURNING {_VIEW_COLUMNS}
        """,
        (verify_token_hash, user_id, config_id),
    )
    return _view_to_dict(cur.fetchone())


def update_status(
    cur: PgCursor,
    *,
    config_id: int,
    status: str,
    user_id: str | None,
) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE webhook_configs
        SET status = %s,
            last_verified_at = CASE WHEN %s = 'verified' THEN now() ELSE last_verified_at END,
            updated_by = %s,
            updated_at = now()
        WHERE id = %s
        RETURNING {_VIEW_COLUMNS}
        """,
        (status, status, user_id, config_id),
    )
    return _view_to_dict(cur.fetchone())


def update_active(
    cur: PgCursor,
    *,
    config_id: int,
    is_active: bool,
    user_id: str | None,
) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE webhook_configs
        SET is_active = %s, updated_by = %s, updated_at = now()
        WHERE id = %s
        RETURNING {_VIEW_COLUMNS}
        """,
        (is_active, user_id, config_id),
    )
    return _view_to_dict(cur.fetchone())


def mark_verified(cur: PgCursor, config_id: int) -> None:
    """Record a successful provider verification handshake."""
    cur.execute(
        """
        UPDATE webhook_configs
        SET status = 'verified', last_verified_at = now(), updated_at = now()
        WHERE id = %s AND status <> 'disabled'
        """,
        (config_id,),
    )
