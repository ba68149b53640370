"""Tests for scripts/gate_security_pii.py.

The gate must pass on the runtime sources and catch the patterns it exists
for.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))

from gate_security_pii import check_file  # noqa: E402

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def test_runtime_sources_pass():
    errors = []
    for pyfile in sorted(SRC_DIR.rglob("*.py")):
        errors.extend(check_file(pyfile))
    assert errors == []


def test_print_flagged(tmp_path):
    module = tmp_path / "mod.py"
    module.write_text('print("hello")\n')
    assert len(check_file(module)) == 1


def test_unredacted_payload_flagged(tmp_path):
    module = tmp_path / "mod.py"
    module.write_text(
        "logger.info(\n"
        '    "received",\n'
        '    extra={"extra_fields": {"payload": payload}},\n'
        ")\n"
    )
    errors = check_file(module)
    assert errors
    assert "payload" in errors[0]


def test_redacted_call_allowed(tmp_path):
    module = tmp_path / "mod.py"
    module.write_text(
        'logger.info("received", extra={"extra_fields": safe_log_context(payload=payload)})\n'
    )
    assert check_file(module) == []


def test_message_literal_not_inspected(tmp_path):
    module = tmp_path / "mod.py"
    module.write_text('logger.warning("invalid webhook payload")\n')
    assert check_file(module) == []
