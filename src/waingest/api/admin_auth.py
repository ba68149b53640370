"""Bearer-token guard for the operator (admin) routes."""

import hmac

from fastapi import Depends, HTTPException, Request

from waingest.api.deps import get_settings
from waingest.api.task_auth import extract_bearer_token
from waingest.config import Settings
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context

logger = get_logger(__name__)

ACTOR_HEADER = "X-Admin-Actor"


def require_admin(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """FastAPI dependency: require `Authorization: Bearer <ADMIN_API_TOKEN>`.

    Returns:
        Actor id for audit records (X-Admin-Actor header, default "admin").

    Raises:
        HTTPException: 401 if the token is missing or wrong, or if no admin
                       token is configured.
    """
    token = extract_bearer_token(request)
    expected = settings.admin_api_token

    if not expected or not token or not hmac.compare_digest(token.encode(), expected.encode()):
        logger.warning(
            "admin auth failed",
            extra={
                "extra_fields": safe_log_context(
                    has_token=bool(token),
                    configured=bool(expected),
                    path=request.url.path,
                )
            },
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    return request.headers.get(ACTOR_HEADER) or "admin"
