"""Shared authentication helpers for Cloud Tasks OIDC.

Used by worker task handlers to verify OIDC tokens from Cloud Tasks.
"""

from __future__ import annotations

import base64
import hmac
import json

from fastapi import Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from waingest.config import Settings
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context

logger = get_logger(__name__)

INTERNAL_TASK_SECRET_HEADER = "X-Internal-Task-Secret"


def _extract_unverified_claim(token: str, claim: str) -> str | None:
    """Decode a single claim from a JWT payload without verifying the signature.

    Used only for diagnostic logging after verification has already failed.
    The returned value must never be trusted for any auth decision.
    """
    try:
        payload_segment = token.split(".")[1]
        payload_segment += "=" * (-len(payload_segment) % 4)
        payload = json.loads(base64.urlsafe_b64decode(payload_segment))
        value = payload.get(claim)
        return str(value) if value is not None else None
    except (IndexError, ValueError, AttributeError):
        return None


def extract_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Returns:
        Token string if valid Bearer format, None otherwise.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


def verify_task_oidc(token: str, settings: Settings) -> bool:
    """Verify a Cloud Tasks OIDC token with Google's id_token library.

    Audience must equal settings.tasks_oidc_audience. When
    settings.tasks_oidc_service_account is set, the token email must match.

    Returns:
        True if token is valid, False otherwise (fails closed when no
        audience is configured).
    """
    if not token:
        return False

    audience = settings.tasks_oidc_audience
    if not audience:
        logger.error(
            "TASKS_OIDC_AUDIENCE not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_audience_env")},
        )
        return False

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as e:
        logger.warning(
            "OIDC token verification failed",
            extra={
                "extra_fields": safe_log_context(
                    error=str(e),
                    expected_audience=audience,
                    received_audience=_extract_unverified_claim(token, "aud"),
                )
            },
        )
        return False

    expected_email = settings.tasks_oidc_service_account
    if expected_email and claims.get("email", "") != expected_email:
        logger.warning(
            "OIDC service account mismatch",
            extra={"extra_fields": safe_log_context(reason="service_account_mismatch")},
        )
        return False

    return True


def verify_task_auth(request: Request, settings: Settings) -> bool:
    """Verify task authentication via OIDC, or internal secret in local dev.

    The X-Internal-Task-Secret header is only honoured when
    settings.local_dev is true and a secret is configured.
    """
    if settings.local_dev and settings.internal_task_secret:
        request_secret = request.headers.get(INTERNAL_TASK_SECRET_HEADER, "")
        if hmac.compare_digest(request_secret.encode(), settings.internal_task_secret.encode()):
            logger.info(
                "task auth via internal secret (local dev)",
                extra={"extra_fields": safe_log_context(auth_method="internal_secret")},
            )
            return True

    token = extract_bearer_token(request)
    if not token:
        logger.warning(
            "task auth failed: missing Bearer token",
            extra={"extra_fields": safe_log_context(reason="missing_bearer_token")},
        )
        return False
    return verify_task_oidc(token, settings)
