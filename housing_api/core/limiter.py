"""
Per-caller rate limits on top of slowapi.

Authenticated requests are keyed as ``<role>|<tenant>|<user>`` so the limit
provider can read the role back out of the key; anonymous requests fall back
to the client address and RATE_LIMIT_DEFAULT. Public routes (access-code
lookup, registration, sync) use a fixed RATE_LIMIT_PUBLIC instead.

    @router.get("")
    @limiter.limit(get_role_limit)
    async def list_reports(request: Request, caller: Caller = Depends(get_caller)):
        ...

get_caller runs as a dependency, so request.state already holds the caller
when slowapi builds the key.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from housing_api.core.config import settings
from housing_api.core.logging import get_logger

logger = get_logger(__name__)

KEY_SEPARATOR = "|"
SUPER_ADMIN_LIMIT = "10000/minute"


def get_tenant_user_key(request: Request) -> str:
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        return get_remote_address(request)

    role = getattr(request.state, "user_role", None) or "anonymous"
    tenant_id = getattr(request.state, "tenant_id", None) or "-"
    return KEY_SEPARATOR.join((role, tenant_id, user_id))


def get_role_limit(key: str) -> str:
    """Limit for the role encoded in a key built by get_tenant_user_key."""
    role = key.split(KEY_SEPARATOR, 1)[0] if KEY_SEPARATOR in key else None
    if role == "super_admin":
        return SUPER_ADMIN_LIMIT
    resolved = {
        "resident": settings.RATE_LIMIT_RESIDENT,
        "admin": settings.RATE_LIMIT_ADMIN,
    }.get(role, settings.RATE_LIMIT_DEFAULT)
    logger.debug("rate_limit.resolved", role=role, limit=resolved)
    return resolved


limiter = Limiter(
    key_func=get_tenant_user_key,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)
