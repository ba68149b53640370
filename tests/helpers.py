"""Shared test helpers: payload builders and database seeding.

Regular functions, not fixtures, so both conftest.py and test modules can
import them.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from unittest.mock import MagicMock

from waingest.infra.db import txn
from waingest.infra.secrets import hash_secret, seal_secret
from waingest.whatsapp.signature import compute_signature

TEST_HASH_SECRET = "test-webhook-hash-secret"
TEST_SECRETS_KEY = "0" * 64
TEST_ADMIN_TOKEN = "test-admin-token"
TEST_APP_SECRET = "test-app-secret"
TEST_VERIFY_TOKEN = "test-verify-token"


def _envelope(phone_number_id: str, value: dict, field: str = "messages") -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA-TEST",
                "changes": [
                    {
                        "field": field,
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "15550001111",
                                "phone_number_id": phone_number_id,
                            },
                            **value,
                        },
                    }
                ],
            }
        ],
    }


def message_payload(
    *,
    phone_number_id: str = "PNID-TEST",
    message_id: str = "wamid.TEST1",
    sender: str = "5511888888888",
    name: str | None = "Test User",
    text: str | None = "hello there",
    timestamp: str = "1704067200",
    msg_type: str = "text",
    media: dict | None = None,
) -> dict:
    """Inbound message delivery. `media` is the block for `msg_type`."""
    message: dict = {
        "from": sender,
        "id": message_id,
        "timestamp": timestamp,
        "type": msg_type,
    }
    if text is not None:
        message["text"] = {"body": text}
    if media is not None:
        message[msg_type] = media

    contact: dict = {"wa_id": sender}
    if name is not None:
        contact["profile"] = {"name": name}

    return _envelope(phone_number_id, {"contacts": [contact], "messages": [message]})


def status_payload(
    *,
    phone_number_id: str = "PNID-TEST",
    message_id: str = "wamid.TEST1",
    status: str = "read",
    timestamp: str = "1704067300",
) -> dict:
    return _envelope(
        phone_number_id,
        {
            "statuses": [
                {
                    "id": message_id,
                    "status": status,
                    "recipient_id": "5511888888888",
                    "timestamp": timestamp,
                }
            ]
        },
    )


def template_status_payload(phone_number_id: str = "PNID-TEST") -> dict:
    return _envelope(
        phone_number_id,
        {"event": "APPROVED", "message_template_id": 42},
        field="message_template_status_update",
    )


def body_and_signature(payload: dict, app_secret: str = TEST_APP_SECRET) -> tuple[bytes, str]:
    body = json.dumps(payload).encode()
    return body, compute_signature(body, app_secret)


@contextmanager
def mock_txn(cur: MagicMock | None = None):
    """Stand-in for infra.db.txn yielding a MagicMock cursor."""
    yield cur if cur is not None else MagicMock()


def seed_account(cur, *, tenant_id: str, phone_number_id: str, is_active: bool = True) -> int:
    cur.execute(
        """
        INSERT INTO whatsapp_accounts (tenant_id, phone_number_id, is_active)
        VALUES (%s, %s, %s)
        RETURNING id
        """,
        (tenant_id, phone_number_id, is_active),
    )
    return cur.fetchone()[0]


def seed_config(
    cur,
    *,
    tenant_id: str,
    account_id: int,
    callback_path: str,
    app_secret: str = TEST_APP_SECRET,
    verify_token: str = TEST_VERIFY_TOKEN,
    status: str = "unverified",
    is_active: bool = True,
) -> int:
    cur.execute(
        """
        INSERT INTO webhook_configs (
            tenant_id, whatsapp_account_id, callback_path,
            verify_token_hash, app_secret_hash, app_secret_enc, status, is_active
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            tenant_id,
            account_id,
            callback_path,
            hash_secret(verify_token, key=TEST_HASH_SECRET),
            hash_secret(app_secret, key=TEST_HASH_SECRET),
            seal_secret(app_secret, key_hex=TEST_SECRETS_KEY),
            status,
            is_active,
        ),
    )
    return cur.fetchone()[0]


def cleanup_tenant(tenant_id: str) -> None:
    """Delete every row owned by a test tenant (children first)."""
    with txn() as cur:
        for table in (
            "messages",
            "conversations",
            "contacts",
            "webhook_event_logs",
            "webhook_configs",
            "audit_logs",
            "whatsapp_accounts",
        ):
            cur.execute(f"DELETE FROM {table} WHERE tenant_id = %s", (tenant_id,))
