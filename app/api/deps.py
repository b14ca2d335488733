"""Shared FastAPI dependencies for API routes."""

from __future__ import annotations

import logging
import secrets

from fastapi import Header, HTTPException

from app.config import get_settings
from app.db.session import get_db  # re-export
from app.services.pipeline.errors import (
    DealNotFoundError,
    InvalidDealEvent,
    LifecycleViolation,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DOMAIN_ERRORS",
    "get_actor_id",
    "get_db",
    "http_error",
    "require_internal_token",
]

DOMAIN_ERRORS = (DealNotFoundError, InvalidDealEvent, LifecycleViolation)


def http_error(exc: Exception) -> HTTPException:
    """Translate a pipeline domain error into an HTTPException."""
    if isinstance(exc, DealNotFoundError):
        return HTTPException(status_code=404, detail="Deal not found")
    if isinstance(exc, LifecycleViolation):
        return HTTPException(
            status_code=409,
            detail={"error": "lifecycle_violation", "command": exc.command, "reason": exc.reason},
        )
    return HTTPException(status_code=422, detail=str(exc))


def get_actor_id(x_actor_id: str | None = Header(None, alias="X-Actor-Id")) -> str | None:
    """Operator id forwarded by the calling portal; recorded on audit entries."""
    if x_actor_id is None or not x_actor_id.strip():
        return None
    return x_actor_id.strip()[:64]


def require_internal_token(x_internal_token: str = Header(...)) -> None:
    """Validate the internal job token from the request header.

    Uses constant-time comparison to prevent timing attacks.
    Raises 403 if the token is empty or does not match the configured value.
    """
    expected = get_settings().internal_job_token
    if not expected or not secrets.compare_digest(x_internal_token, expected):
        logger.warning("Internal endpoint auth failed: invalid or missing token")
        raise HTTPException(status_code=403, detail="Invalid internal token")
