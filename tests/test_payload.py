"""Tests for payload inspection: classification, dedup keys, extraction."""

from datetime import datetime, timezone

import pytest

from waingest.whatsapp.models import EventType
from waingest.whatsapp.payload import (
    InvalidPayloadError,
    classify_event,
    derive_dedup_key,
    extract_event_timestamp,
    extract_message,
    extract_status,
    get_object_id,
    get_phone_number_id,
    validate_delivery,
)

from helpers import message_payload, status_payload, template_status_payload

RECEIVED_AT = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class TestValidateDelivery:
    def test_valid_message_payload(self):
        validate_delivery(message_payload())

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            "text",
            {},
            {"entry": []},
            {"entry": [{"id": "x"}]},
            {"entry": [{"id": "x", "changes": []}]},
            {"entry": [{"id": "x", "changes": [{"field": "messages", "value": {}}]}]},
        ],
    )
    def test_invalid_shapes_rejected(self, payload):
        with pytest.raises(InvalidPayloadError):
            validate_delivery(payload)

    def test_phone_number_id_and_object_id(self):
        payload = message_payload(phone_number_id="PN-42")
        assert get_phone_number_id(payload) == "PN-42"
        assert get_object_id(payload) == "WABA-TEST"


class TestClassifyEvent:
    def test_message(self):
        assert classify_event(message_payload()) is EventType.MESSAGE

    def test_status(self):
        assert classify_event(status_payload()) is EventType.STATUS

    def test_template_status_update_is_status(self):
        assert classify_event(template_status_payload()) is EventType.STATUS

    def test_messages_field_without_messages_or_statuses_is_other(self):
        payload = message_payload()
        value = payload["entry"][0]["changes"][0]["value"]
        value.pop("messages")
        assert classify_event(payload) is EventType.OTHER

    def test_unknown_field_is_other(self):
        payload = message_payload()
        payload["entry"][0]["changes"][0]["field"] = "account_update"
        assert classify_event(payload) is EventType.OTHER

    def test_no_changes_is_other(self):
        assert classify_event({"entry": [{"id": "x"}]}) is EventType.OTHER


class TestEventTimestamp:
    def test_message_timestamp(self):
        ts = extract_event_timestamp(message_payload(timestamp="1704067200"), RECEIVED_AT)
        assert ts == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_status_timestamp(self):
        ts = extract_event_timestamp(status_payload(timestamp="1704067300"), RECEIVED_AT)
        assert ts == datetime(2024, 1, 1, 0, 1, 40, tzinfo=timezone.utc)

    def test_falls_back_to_receipt_time(self):
        assert extract_event_timestamp(template_status_payload(), RECEIVED_AT) == RECEIVED_AT

    def test_non_numeric_timestamp_falls_back(self):
        ts = extract_event_timestamp(message_payload(timestamp="soon"), RECEIVED_AT)
        assert ts == RECEIVED_AT


class TestDedupKey:
    def test_message_key(self):
        key = derive_dedup_key(message_payload(message_id="wamid.ABC"), RECEIVED_AT)
        assert key == "msg_wamid.ABC"

    def test_status_key_includes_status(self):
        delivered = derive_dedup_key(status_payload(message_id="wamid.ABC", status="delivered"), RECEIVED_AT)
        read = derive_dedup_key(status_payload(message_id="wamid.ABC", status="read"), RECEIVED_AT)
        assert delivered == "status_wamid.ABC_delivered"
        assert read == "status_wamid.ABC_read"

    def test_entry_key_for_other_events(self):
        key = derive_dedup_key(template_status_payload(), RECEIVED_AT)
        assert key == f"entry_WABA-TEST_{RECEIVED_AT.isoformat()}"

    def test_unknown_key_without_entry_id(self):
        payload = template_status_payload()
        del payload["entry"][0]["id"]
        assert derive_dedup_key(payload, RECEIVED_AT) == f"unknown_{RECEIVED_AT.isoformat()}"

    def test_same_delivery_same_key(self):
        a = derive_dedup_key(message_payload(), RECEIVED_AT)
        b = derive_dedup_key(message_payload(), datetime.now(timezone.utc))
        assert a == b


class TestExtractMessage:
    def test_text_message(self):
        msg = extract_message(message_payload(message_id="wamid.X", text="Oi"))
        assert msg.provider_message_id == "wamid.X"
        assert msg.sender_phone == "5511888888888"
        assert msg.sender_name == "Test User"
        assert msg.content == "Oi"
        assert msg.media is None
        assert msg.sent_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_name_falls_back_to_phone(self):
        msg = extract_message(message_payload(name=None))
        assert msg.sender_name == msg.sender_phone

    def test_sender_from_message_when_no_contacts(self):
        payload = message_payload(sender="5511777777777")
        payload["entry"][0]["changes"][0]["value"].pop("contacts")
        msg = extract_message(payload)
        assert msg.sender_phone == "5511777777777"

    def test_image_message_placeholder_and_media(self):
        msg = extract_message(
            message_payload(
                msg_type="image",
                text=None,
                media={"id": "MEDIA-1", "mime_type": "image/jpeg", "url": "https://cdn/x"},
            )
        )
        assert msg.content == "[image]"
        assert msg.media is not None
        assert msg.media.kind == "image"
        assert msg.media.media_id == "MEDIA-1"
        assert msg.media.mime_type == "image/jpeg"
        assert msg.media.url == "https://cdn/x"

    def test_no_message_raises(self):
        with pytest.raises(InvalidPayloadError):
            extract_message(status_payload())

    def test_non_string_text_raises(self):
        payload = message_payload()
        payload["entry"][0]["changes"][0]["value"]["messages"][0]["text"] = {"body": 12345}
        with pytest.raises(InvalidPayloadError):
            extract_message(payload)


class TestExtractStatus:
    def test_status_fields(self):
        status = extract_status(status_payload(message_id="wamid.S", status="delivered"))
        assert status is not None
        assert status.provider_message_id == "wamid.S"
        assert status.status == "delivered"

    def test_template_status_has_no_message_status(self):
        assert extract_status(template_status_payload()) is None
