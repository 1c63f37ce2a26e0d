from __future__ import annotations

from uuid import UUID

from fastapi import Request

from orchestrator.core.config import get_settings
from orchestrator.core.errors import UnauthenticatedError
from orchestrator.services.time_zones import TimeZoneResolver, ZoneInfoTimeZoneResolver


def require_user_id(request: Request) -> UUID:
    """Caller identity as forwarded by the authenticating gateway."""
    settings = get_settings()
    raw = (request.headers.get(settings.AUTH_USER_ID_HEADER) or "").strip()
    if not raw:
        raise UnauthenticatedError("Not authenticated")
    try:
        return UUID(raw)
    except ValueError as e:
        raise UnauthenticatedError("Invalid user identity") from e


def get_time_zone_resolver() -> TimeZoneResolver:
    return ZoneInfoTimeZoneResolver()
