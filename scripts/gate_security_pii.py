#!/usr/bin/env python3
"""Gate: security & PII check for runtime sources.

Fails if:
- print( is called in runtime code (src/**)
- a logger call mentions payloads, phone numbers, message content or
  secrets without routing its fields through safe_log_context/redact_*

Whole calls are inspected (not single lines), so multi-line logger calls
are covered.

Usage:
    python scripts/gate_security_pii.py
"""

import ast
import sys
from pathlib import Path

# Names that must not reach a logger without redaction
SENSITIVE_KEYWORDS = (
    "payload",
    "raw_body",
    "request.body",
    "request.json",
    "phone",
    "sender_name",
    "content",
    "text",
    "app_secret",
    "verify_token",
    "signature",
)

LOG_METHODS = {"debug", "info", "warning", "error", "critical", "exception"}

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
)


def _is_logger_call(node: ast.Call) -> bool:
    func = node.func
    return (
        isinstance(func, ast.Attribute)
        and func.attr in LOG_METHODS
        and isinstance(func.value, ast.Name)
        and func.value.id == "logger"
    )


def _argument_source(source: str, node: ast.Call) -> str:
    # The message literal is static text; only the data passed alongside it matters
    parts = [ast.get_source_segment(source, arg) or "" for arg in node.args[1:]]
    parts += [ast.get_source_segment(source, kw) or "" for kw in node.keywords]
    return "\n".join(parts)


def check_file(filepath: Path) -> list[str]:
    """Check a single file for violations. Returns list of error messages."""
    try:
        source = filepath.read_text(encoding="utf-8")
        tree = ast.parse(source, filename=str(filepath))
    except (UnicodeDecodeError, SyntaxError) as e:
        return [f"{filepath}: cannot parse ({type(e).__name__})"]

    errors = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.Call):
            continue

        if isinstance(node.func, ast.Name) and node.func.id == "print":
            errors.append(f"{filepath}:{node.lineno}: print() not allowed in runtime code")
            continue

        if not _is_logger_call(node):
            continue

        args_source = _argument_source(source, node)
        if any(rp in args_source for rp in REDACTION_PATTERNS):
            continue

        lowered = args_source.lower()
        for keyword in SENSITIVE_KEYWORDS:
            if keyword in lowered:
                errors.append(
                    f"{filepath}:{node.lineno}: logger call with '{keyword}' "
                    "must use redaction (safe_log_context/redact_value)"
                )

    return errors


def main() -> int:
    """Run gate check on the src directory."""
    src_dir = Path("src")
    if not src_dir.exists():
        src_dir = Path(__file__).parent.parent / "src"

    if not src_dir.exists():
        sys.stderr.write("Error: src directory not found\n")
        return 1

    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))

    if all_errors:
        sys.stderr.write("Security/PII gate FAILED:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("Security/PII gate PASSED\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
