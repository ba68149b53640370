"""WhatsApp Cloud API webhook signature verification."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


class SignatureVerificationError(Exception):
    """Raised when HMAC signature verification fails."""

    pass


def compute_signature(payload_bytes: bytes, app_secret: str) -> str:
    """Return the `sha256=<hex>` signature the provider sends for a body."""
    digest = hmac.new(
        key=app_secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    payload_bytes: bytes,
    signature_header: str | None,
    app_secret: str,
) -> None:
    """Verify a webhook signature (HMAC-SHA256 over the raw body).

    The digest must be computed over the exact bytes received; re-serialized
    JSON does not match.

    Args:
        payload_bytes: Raw request body bytes.
        signature_header: X-Hub-Signature-256 header value (sha256=...).
        app_secret: Tenant's plaintext app secret.

    Raises:
        SignatureVerificationError: If signature is invalid or missing.
    """
    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    if not signature_header.startswith(SIGNATURE_PREFIX):
        raise SignatureVerificationError("invalid signature format")

    if not app_secret:
        raise SignatureVerificationError("no app secret configured")

    expected = compute_signature(payload_bytes, app_secret)

    if not hmac.compare_digest(expected.encode(), signature_header.strip().encode()):
        raise SignatureVerificationError("signature mismatch")
