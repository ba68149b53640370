"""Inbox repository - contacts, conversations and messages.

Uses raw SQL with psycopg2 (no ORM). All writes are upserts keyed by the
natural unique constraints so a retried projection converges on the same rows.
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor


def upsert_contact(
    cur: PgCursor,
    *,
    tenant_id: str,
    phone: str,
    name: str,
) -> int:
    """Insert or update a contact by (tenant_id, phone).

    On conflict the display name is refreshed.

    Returns:
        Contact id.
    """
    cur.execute(
        """
        INSERT INTO contacts (tenant_id, phone, name, is_active)
        VALUES (%s, %s, %s, TRUE)
        ON CONFLICT (tenant_id, phone) DO UPDATE
        SET name = EXCLUDED.name,
            updated_at = now()
        RETURNING id
        """,
        (tenant_id, phone, name),
    )
    return cur.fetchone()[0]


def upsert_conversation(
    cur: PgCursor,
    *,
    tenant_id: str,
    contact_id: int,
    whatsapp_account_id: int,
    last_message_preview: str,
    last_message_at: datetime,
) -> int:
    """Insert or update a conversation by (tenant_id, contact_id, account).

    On conflict the last-message preview and time are replaced.

    Returns:
        Conversation id.
    """
    cur.execute(
        """
        INSERT INTO conversations (
            tenant_id, contact_id, whatsapp_account_id,
            last_message_preview, last_message_at, is_active
        )
        VALUES (%s, %s, %s, %s, %s, TRUE)
        ON CONFLICT (tenant_id, contact_id, whatsapp_account_id) DO UPDATE
        SET last_message_preview = EXCLUDED.last_message_preview,
            last_message_at = EXCLUDED.last_message_at,
            updated_at = now()
        RETURNING id
        """,
        (tenant_id, contact_id, whatsapp_account_id, last_message_preview, last_message_at),
    )
    return cur.fetchone()[0]


def insert_inbound_message(
    cur: PgCursor,
    *,
    tenant_id: str,
    conversation_id: int,
    contact_id: int,
    whatsapp_account_id: int,
    content: str,
    media_type: str | None,
    media_id: str | None,
    media_url: str | None,
    media_mime_type: str | None,
    provider_message_id: str,
    sent_at: datetime,
    status: str = "delivered",
) -> int | None:
    """Insert an inbound message.

    A message whose provider id already exists for the tenant is left
    untouched.

    Returns:
        New message id, or None if the provider id was already stored.
    """
    cur.execute(
        """
        INSERT INTO messages (
            tenant_id, conversation_id, contact_id, whatsapp_account_id,
            direction, status, content,
            media_type, media_id, media_url, media_mime_type,
            provider_message_id, sent_at, is_active
        )
        VALUES (%s, %s, %s, %s, 'inbound', %s, %s, %s, %s, %s, %s, %s, %s, TRUE)
        ON CONFLICT (tenant_id, provider_message_id)
            WHERE provider_message_id IS NOT NULL
            DO NOTHING
        RETURNING id
        """,
        (
            tenant_id,
            conversation_id,
            contact_id,
            whatsapp_account_id,
            status,
            content,
            media_type,
            media_id,
            media_url,
            media_mime_type,
            provider_message_id,
            sent_at,
        ),
    )
    row = cur.fetchone()
    return row[0] if row else None


def update_message_status(
    cur: PgCursor,
    *,
    tenant_id: str,
    provider_message_id: str,
    status: str,
) -> int:
    """Set a message's delivery status in place.

    Returns:
        Number of rows updated (0 when the message is not stored yet).
    """
    cur.execute(
        """
        UPDATE messages
        SET status = %s, updated_at = now()
        WHERE tenant_id = %s AND provider_message_id = %s
        """,
        (status, tenant_id, provider_message_id),
    )
    return cur.rowcount
