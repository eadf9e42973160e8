"""API key authentication and caller identity.

In development mode with no API key configured, the key check is bypassed.
In production, write endpoints require a valid key via the X-API-Key header.
User identity arrives in X-User-Id, set by the gateway that handles sessions.
"""

import logging

from fastapi import Header, HTTPException, Security
from fastapi.security import APIKeyHeader

from folio.config import settings

logger = logging.getLogger(__name__)

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_api_key(api_key: str | None = Security(_api_key_header)) -> str:
    """Dependency that enforces API key authentication.

    Bypassed in development mode when no API key is configured.
    """
    if not settings.api_key and settings.app_env == "development":
        return "dev-bypass"

    if not settings.api_key:
        logger.warning("API key not configured but app_env=%s — blocking request", settings.app_env)
        raise HTTPException(status_code=403, detail="API key not configured on server")

    if not api_key or api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")

    return api_key


async def current_user_id(x_user_id: int | None = Header(default=None, alias="X-User-Id")) -> int:
    """Dependency returning the caller's user id."""
    if x_user_id is None or x_user_id <= 0:
        raise HTTPException(status_code=401, detail="Missing or invalid X-User-Id header")
    return x_user_id
