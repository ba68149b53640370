"""Tests for observability utilities."""

import json
import logging

import pytest

from waingest.observability.correlation import (
    correlation_scope,
    get_correlation_id,
)
from waingest.observability.logging import JsonFormatter
from waingest.observability.redaction import (
    id_prefix,
    redact_string,
    redact_value,
    safe_log_context,
)


class TestRedaction:
    def test_redact_phone_number(self):
        result = redact_string("sender +55 11 99999-8888")
        assert "99999" not in result
        assert "[REDACTED]" in result

    def test_redact_email(self):
        assert "user@example.com" not in redact_string("Email: user@example.com")

    def test_redact_signature_digest(self):
        result = redact_string("sig sha256=" + "ab" * 32)
        assert "ab" * 32 not in result
        assert "sha256=[REDACTED]" in result

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"text": {"body": "secret message"}, "from": "5511"})
        assert "secret message" not in result
        assert "text" in result

    def test_redact_value_list_only_len(self):
        assert redact_value(["a", "b"]) == "list(len=2)"

    def test_safe_log_context(self):
        ctx = safe_log_context(phone="+5511999998888", count=42, ok=True, missing=None)
        assert "[REDACTED]" in ctx["phone"]
        assert ctx["count"] == "42"
        assert ctx["ok"] == "true"
        assert ctx["missing"] == "null"

    def test_id_prefix(self):
        assert id_prefix("wamid.HBgLNTUxMTk5OTk5") == "wamid.HBgLNT"
        assert id_prefix(None) is None


class TestJsonFormatter:
    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord("waingest.test", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_outputs_json_with_extra_fields(self):
        out = json.loads(JsonFormatter().format(self._record(extra_fields={"log_id": "7"})))
        assert out["message"] == "hello"
        assert out["level"] == "INFO"
        assert out["logger"] == "waingest.test"
        assert out["service"] == "waingest"
        assert out["log_id"] == "7"

    def test_includes_correlation_id(self):
        with correlation_scope("cid-123"):
            out = json.loads(JsonFormatter().format(self._record()))
        assert out["correlationId"] == "cid-123"
        assert get_correlation_id() == ""


class TestCorrelationScope:
    def test_generates_id_when_missing(self):
        with correlation_scope(None) as cid:
            assert cid
            assert get_correlation_id() == cid
        assert get_correlation_id() == ""

    def test_nested_scope_restores_outer(self):
        with correlation_scope("outer"):
            with correlation_scope("inner") as cid:
                assert cid == "inner"
            assert get_correlation_id() == "outer"

    def test_restored_when_block_raises(self):
        with pytest.raises(RuntimeError):
            with correlation_scope("cid-err"):
                raise RuntimeError("boom")
        assert get_correlation_id() == ""
