"""WhatsApp Cloud API webhook models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class EventType(str, Enum):
    """Category of a webhook delivery, derived from its first change entry."""

    MESSAGE = "message"
    STATUS = "status"
    OTHER = "other"


# Message kinds that carry a media sub-object
MEDIA_KINDS: tuple[str, ...] = ("image", "video", "audio", "document", "sticker")


@dataclass(frozen=True)
class MediaRef:
    """Reference to provider-hosted media (never downloaded here)."""

    kind: str
    media_id: str | None
    mime_type: str | None
    url: str | None


@dataclass(frozen=True)
class InboundMessage:
    """First message of a messages-shaped delivery.

    Contains PII (sender phone, display name, text). Only persisted into
    the inbox tables, never logged.
    """

    provider_message_id: str
    sender_phone: str
    sender_name: str
    kind: str
    text: str | None
    media: MediaRef | None
    sent_at: datetime | None

    @property
    def content(self) -> str:
        """Text body, or a placeholder naming the media kind."""
        if self.text:
            return self.text
        if self.media is not None:
            return f"[{self.media.kind}]"
        return f"[{self.kind}]" if self.kind and self.kind != "text" else "[media]"


@dataclass(frozen=True)
class StatusUpdate:
    """First status of a statuses-shaped delivery."""

    provider_message_id: str
    status: str
    recipient_id: str | None
    timestamp: datetime | None
