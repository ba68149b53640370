"""WhatsApp Cloud API payload inspection.

Pure functions over the decoded webhook body. Payload structure:

    {
      "object": "whatsapp_business_account",
      "entry": [{
        "id": "<WABA id>",
        "changes": [{
          "field": "messages",
          "value": {
            "metadata": {"phone_number_id": "..."},
            "contacts": [{"wa_id": "PHONE", "profile": {"name": "..."}}],
            "messages": [{"from": "PHONE", "id": "wamid...", "timestamp": "1704067200",
                          "type": "text", "text": {"body": "..."}}],
            "statuses": [{"id": "wamid...", "status": "read",
                          "recipient_id": "PHONE", "timestamp": "1704067300"}]
          }
        }]
      }]
    }

Only the first entry and its first change are inspected.
"""

from datetime import datetime
from typing import Any

from waingest.infra.time import from_epoch_seconds

from .models import MEDIA_KINDS, EventType, InboundMessage, MediaRef, StatusUpdate

FIELD_MESSAGES = "messages"
FIELD_TEMPLATE_STATUS = "message_template_status_update"


class InvalidPayloadError(Exception):
    """Raised when a webhook body does not have the expected shape."""

    pass


def _first(items: Any) -> Any:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


def first_entry(payload: dict[str, Any]) -> dict[str, Any] | None:
    return _first(payload.get("entry"))


def first_change(payload: dict[str, Any]) -> dict[str, Any] | None:
    entry = first_entry(payload)
    if entry is None:
        return None
    return _first(entry.get("changes"))


def _first_value(payload: dict[str, Any]) -> dict[str, Any]:
    change = first_change(payload)
    value = change.get("value") if change else None
    return value if isinstance(value, dict) else {}


def validate_delivery(payload: Any) -> None:
    """Check the minimum structure ingress needs before resolving a tenant.

    Raises:
        InvalidPayloadError: If the body is not an object with an entry
            whose first change carries value.metadata.phone_number_id.
    """
    if not isinstance(payload, dict):
        raise InvalidPayloadError("payload is not a JSON object")
    if first_entry(payload) is None:
        raise InvalidPayloadError("missing entry")
    if first_change(payload) is None:
        raise InvalidPayloadError("missing changes")
    if not get_phone_number_id(payload):
        raise InvalidPayloadError("missing metadata.phone_number_id")


def get_phone_number_id(payload: dict[str, Any]) -> str | None:
    """Return value.metadata.phone_number_id, the inbound account key."""
    metadata = _first_value(payload).get("metadata")
    if not isinstance(metadata, dict):
        return None
    phone_number_id = metadata.get("phone_number_id")
    if phone_number_id is None or isinstance(phone_number_id, (dict, list)):
        return None
    return str(phone_number_id) or None


def get_object_id(payload: dict[str, Any]) -> str | None:
    """Return entry[0].id (the business account id)."""
    entry = first_entry(payload)
    if entry is None or entry.get("id") is None:
        return None
    return str(entry["id"])


def classify_event(payload: dict[str, Any]) -> EventType:
    """Classify a delivery as message, status or other.

    Unknown fields are "other" so new provider event types are logged
    rather than rejected.
    """
    change = first_change(payload) if isinstance(payload, dict) else None
    if change is None:
        return EventType.OTHER

    field = change.get("field")
    value = change.get("value") if isinstance(change.get("value"), dict) else {}

    if field == FIELD_MESSAGES:
        if _first(value.get("messages")) is not None:
            return EventType.MESSAGE
        if _first(value.get("statuses")) is not None:
            return EventType.STATUS
        return EventType.OTHER

    if field == FIELD_TEMPLATE_STATUS:
        return EventType.STATUS

    return EventType.OTHER


def extract_event_timestamp(payload: dict[str, Any], received_at: datetime) -> datetime:
    """Event time from the first message or status, else receipt time."""
    value = _first_value(payload)
    for key in ("messages", "statuses"):
        item = _first(value.get(key))
        if item is not None:
            ts = from_epoch_seconds(item.get("timestamp"))
            if ts is not None:
                return ts
    return received_at


def derive_dedup_key(payload: dict[str, Any], event_ts: datetime) -> str:
    """Deterministic key identifying a logical delivery.

    The provider reuses the message id for every status transition
    (sent, delivered, read), so the status value is part of the key. A key
    of the bare status id would drop every transition after the first.
    """
    value = _first_value(payload)

    message = _first(value.get("messages"))
    if message is not None and message.get("id"):
        return f"msg_{message['id']}"

    status = _first(value.get("statuses"))
    if status is not None and status.get("id"):
        return f"status_{status['id']}_{status.get('status') or 'unknown'}"

    object_id = get_object_id(payload)
    if object_id:
        return f"entry_{object_id}_{event_ts.isoformat()}"

    return f"unknown_{event_ts.isoformat()}"


def _extract_media(message: dict[str, Any]) -> MediaRef | None:
    kind = message.get("type")
    candidates = [kind] if kind in MEDIA_KINDS else []
    candidates += [k for k in MEDIA_KINDS if k != kind]
    for media_kind in candidates:
        block = message.get(media_kind)
        if isinstance(block, dict):
            return MediaRef(
                kind=media_kind,
                media_id=block.get("id"),
                mime_type=block.get("mime_type"),
                url=block.get("url") or block.get("link"),
            )
    return None


def extract_message(payload: dict[str, Any]) -> InboundMessage:
    """Extract the first inbound message with its sender profile.

    Raises:
        InvalidPayloadError: If there is no message, message id or sender, or
            the text body is not a string.
    """
    value = _first_value(payload)
    message = _first(value.get("messages"))
    if message is None:
        raise InvalidPayloadError("no message found in payload")

    message_id = message.get("id")
    if not message_id or not isinstance(message_id, str):
        raise InvalidPayloadError("missing or invalid message id")

    contact = _first(value.get("contacts")) or {}
    sender_phone = contact.get("wa_id") or message.get("from")
    if not sender_phone:
        raise InvalidPayloadError("missing sender phone number")
    sender_phone = str(sender_phone)

    profile = contact.get("profile") if isinstance(contact.get("profile"), dict) else {}
    sender_name = profile.get("name") or sender_phone

    kind = str(message.get("type") or "unknown")
    text_obj = message.get("text")
    text = text_obj.get("body") if isinstance(text_obj, dict) else None
    if text is not None and not isinstance(text, str):
        raise InvalidPayloadError("text body is not a string")

    return InboundMessage(
        provider_message_id=message_id,
        sender_phone=sender_phone,
        sender_name=str(sender_name),
        kind=kind,
        text=text or None,
        media=_extract_media(message),
        sent_at=from_epoch_seconds(message.get("timestamp")),
    )


def extract_status(payload: dict[str, Any]) -> StatusUpdate | None:
    """Extract the first delivery status, or None for template status updates."""
    status = _first(_first_value(payload).get("statuses"))
    if status is None or not status.get("id") or not status.get("status"):
        return None
    return StatusUpdate(
        provider_message_id=str(status["id"]),
        status=str(status["status"]),
        recipient_id=status.get("recipient_id"),
        timestamp=from_epoch_seconds(status.get("timestamp")),
    )
