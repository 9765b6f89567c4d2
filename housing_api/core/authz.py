"""
Authorization: who is calling and what they may touch.

get_caller resolves the caller's stored user record once per request
(FastAPI caches dependency results within a request) and publishes
user_id / tenant_id / user_role on request.state for the access log and
the rate limiter.

Rules:
  super_admin → every conjunto, every user; cannot be deleted
  admin       → own conjunto only; report status, internal comments, own access code
  resident    → reads reports of own conjunto; creates reports and public comments there
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from housing_api.core.database import DocumentStore, get_store
from housing_api.core.logging import get_logger
from housing_api.core.security import ADMIN_ROLES, Identity, Role, get_identity
from housing_api.models.user import User
from housing_api.services.user_service import get_user_by_auth_id

logger = get_logger(__name__)


@dataclass(frozen=True)
class Caller:
    identity: Identity
    user: User

    @property
    def id(self) -> str:
        return self.user.id

    @property
    def role(self) -> Role:
        return self.user.role

    @property
    def tenant_id(self) -> str | None:
        return self.user.tenant_id

    @property
    def is_super_admin(self) -> bool:
        return self.user.role == Role.SUPER_ADMIN

    @property
    def is_admin_tier(self) -> bool:
        return self.user.role in ADMIN_ROLES


async def get_caller(
    request: Request,
    identity: Identity = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
) -> Caller:
    """Dependency: authenticated caller with their stored profile."""
    user = await get_user_by_auth_id(store, identity.uid)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found",
        )

    request.state.user_id = user.id
    request.state.tenant_id = user.tenant_id
    request.state.user_role = user.role.value
    return Caller(identity=identity, user=user)


def forbidden(caller: Caller, detail: str, **context) -> HTTPException:
    logger.warning(
        "auth.forbidden",
        user_id=caller.id,
        user_role=caller.role.value,
        reason=detail,
        **context,
    )
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def require_role(*allowed_roles: Role):
    """
    Dependency factory: raises 403 if the caller's role is not in the allowed set.

    Usage:
        @router.get("/all")
        async def list_all(caller: Caller = Depends(require_role(Role.SUPER_ADMIN))):
            ...
    """
    async def _check(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.role not in allowed_roles:
            raise forbidden(
                caller,
                f"Role '{caller.role.value}' is not authorized for this resource",
                required_roles=[r.value for r in allowed_roles],
            )
        return caller

    return _check


def is_same_tenant(caller: Caller, target_tenant_id: str | None) -> bool:
    if caller.is_super_admin:
        return True
    return caller.tenant_id is not None and caller.tenant_id == target_tenant_id


def require_same_tenant(
    caller: Caller,
    target_tenant_id: str | None,
    detail: str = "Cross-tenant access is not permitted",
) -> None:
    """
    Validate that a caller only touches resources within their own conjunto,
    unless they are a super_admin.
    """
    if not is_same_tenant(caller, target_tenant_id):
        raise forbidden(
            caller,
            detail,
            user_tenant=caller.tenant_id,
            target_tenant=target_tenant_id,
        )
