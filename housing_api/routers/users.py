"""
Users router — profiles, conjunto membership and role management.

Permission matrix:
  POST   /users                   → public (account bootstrap; role is always resident)
  POST   /users/sync              → any authenticated identity (idempotent upsert)
  GET    /users/me                → any user
  GET    /users/all               → super_admin
  GET    /users/conjunto/{id}     → admin (own conjunto), super_admin
  POST   /users/assign-admin      → super_admin
  GET    /users/{id}              → self, admin (own conjunto), super_admin
  PUT    /users/{id}              → self, super_admin (role changes: super_admin only)
  DELETE /users/{id}              → super_admin (never self, never another super_admin)
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, EmailStr, Field, field_validator

from housing_api.core.authz import (
    Caller,
    forbidden,
    get_caller,
    require_role,
    require_same_tenant,
)
from housing_api.core.config import settings
from housing_api.core.database import DocumentStore, get_store
from housing_api.core.errors import Envelope, ListEnvelope, ok, ok_list
from housing_api.core.limiter import get_role_limit, limiter
from housing_api.core.logging import get_logger
from housing_api.core.security import Identity, Role, get_identity
from housing_api.models.user import User
from housing_api.services.tenant_service import get_tenant_by_id
from housing_api.services.user_service import (
    UserAlreadyExistsError,
    UserNotFoundError,
    assign_admin,
    create_user,
    delete_user,
    get_user_by_id,
    list_users,
    list_users_by_tenant,
    sync_user,
    update_user,
)

router = APIRouter()
logger = get_logger(__name__)


# ── Schemas ────────────────────────────────────────────────────────────────────
class CreateUserRequest(BaseModel):
    auth_id: str = Field(min_length=1, max_length=128)
    email: EmailStr
    display_name: str = Field(min_length=1, max_length=120)
    tenant_id: str | None = None
    unit: str | None = Field(default=None, max_length=50)


class SyncUserRequest(BaseModel):
    display_name: str | None = Field(default=None, min_length=1, max_length=120)


class UpdateUserRequest(BaseModel):
    display_name: str | None = Field(default=None, min_length=1, max_length=120)
    tenant_id: str | None = None
    unit: str | None = Field(default=None, max_length=50)
    role: Role | None = None

    @field_validator("display_name")
    @classmethod
    def display_name_not_null(cls, v: str | None) -> str:
        # Omit the field to keep the current name; null would erase it
        if v is None:
            raise ValueError("display_name cannot be null")
        return v


class AssignAdminRequest(BaseModel):
    email: EmailStr
    conjunto_id: str = Field(min_length=1)


class RoleSnapshot(BaseModel):
    role: Role
    tenant_id: str | None
    unit: str | None


class AssignAdminResponse(BaseModel):
    user: User
    previous: RoleSnapshot
    current: RoleSnapshot
    changes: list[str]


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


async def _require_tenant_exists(store: DocumentStore, tenant_id: str) -> None:
    if await get_tenant_by_id(store, tenant_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conjunto not found")


# ── Account bootstrap ──────────────────────────────────────────────────────────
@router.post(
    "",
    response_model=Envelope[User],
    status_code=status.HTTP_201_CREATED,
    summary="Create a resident profile (public)",
)
@limiter.limit(settings.RATE_LIMIT_PUBLIC)
async def register_user(
    request: Request,
    body: CreateUserRequest,
    store: DocumentStore = Depends(get_store),
):
    if body.tenant_id:
        await _require_tenant_exists(store, body.tenant_id)

    try:
        user = await create_user(
            store,
            auth_id=body.auth_id,
            email=body.email,
            display_name=body.display_name,
            tenant_id=body.tenant_id,
            unit=body.unit,
            role=Role.RESIDENT,
        )
    except UserAlreadyExistsError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")
    return ok(user)


@router.post(
    "/sync",
    response_model=Envelope[User],
    summary="Create the caller's profile if missing, otherwise return it",
    responses={201: {"description": "Profile created"}, 200: {"description": "Profile existed"}},
)
@limiter.limit(settings.RATE_LIMIT_PUBLIC)
async def sync_profile(
    request: Request,
    response: Response,
    body: SyncUserRequest | None = None,
    identity: Identity = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
):
    user, created = await sync_user(
        store,
        identity,
        display_name=body.display_name if body else None,
        super_admin_emails=settings.SUPER_ADMIN_EMAILS,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    logger.info("user.synced", user_id=user.id, created=created)
    return ok(user)


# ── Reads ──────────────────────────────────────────────────────────────────────
@router.get("/me", response_model=Envelope[User], summary="The caller's profile")
@limiter.limit(get_role_limit)
async def get_me(request: Request, caller: Caller = Depends(get_caller)):
    return ok(caller.user)


@router.get(
    "/all",
    response_model=ListEnvelope[User],
    summary="List every user (super_admin only)",
)
@limiter.limit(get_role_limit)
async def get_all_users(
    request: Request,
    caller: Caller = Depends(require_role(Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    return ok_list(await list_users(store))


@router.get(
    "/conjunto/{tenant_id}",
    response_model=ListEnvelope[User],
    summary="List the users of a conjunto",
)
@limiter.limit(get_role_limit)
async def get_conjunto_users(
    request: Request,
    tenant_id: str,
    caller: Caller = Depends(require_role(Role.ADMIN, Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    require_same_tenant(caller, tenant_id, "You can only list users of your own conjunto")
    users = await list_users_by_tenant(store, tenant_id)
    logger.info("users.listed", requester_id=caller.id, tenant_id=tenant_id, count=len(users))
    return ok_list(users)


@router.post(
    "/assign-admin",
    response_model=Envelope[AssignAdminResponse],
    summary="Make a user the admin of a conjunto (super_admin only)",
)
@limiter.limit(get_role_limit)
async def assign_admin_role(
    request: Request,
    body: AssignAdminRequest,
    caller: Caller = Depends(require_role(Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    await _require_tenant_exists(store, body.conjunto_id)
    try:
        assignment = await assign_admin(store, body.email, body.conjunto_id)
    except UserNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No user registered with that email",
        )

    if assignment.previous["role"] == Role.SUPER_ADMIN.value:
        logger.warning("user.super_admin_demoted", user_id=assignment.user.id, by=caller.id)

    return ok(
        AssignAdminResponse(
            user=assignment.user,
            previous=RoleSnapshot(**assignment.previous),
            current=RoleSnapshot(**assignment.current),
            changes=assignment.changes,
        )
    )


@router.get("/{user_id}", response_model=Envelope[User], summary="Get a user")
@limiter.limit(get_role_limit)
async def get_user(
    request: Request,
    user_id: str,
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    if caller.id == user_id:
        return ok(caller.user)
    if not caller.is_admin_tier:
        raise forbidden(caller, "You can only view your own profile", target_user=user_id)

    user = await get_user_by_id(store, user_id)
    if user is None:
        raise _not_found()
    require_same_tenant(caller, user.tenant_id, "You can only view users of your own conjunto")
    return ok(user)


# ── Writes ─────────────────────────────────────────────────────────────────────
@router.put("/{user_id}", response_model=Envelope[User], summary="Update a user")
@limiter.limit(get_role_limit)
async def edit_user(
    request: Request,
    user_id: str,
    body: UpdateUserRequest,
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    is_self = caller.id == user_id
    if not is_self and not caller.is_super_admin:
        raise forbidden(caller, "You can only edit your own profile", target_user=user_id)

    target = caller.user if is_self else await get_user_by_id(store, user_id)
    if target is None:
        raise _not_found()

    changes = body.model_dump(exclude_unset=True)

    if "role" in changes:
        if not caller.is_super_admin:
            raise forbidden(caller, "Only a super_admin can change roles", target_user=user_id)
        if changes["role"] is None:
            changes.pop("role")

    if "tenant_id" in changes and changes["tenant_id"] != target.tenant_id:
        new_tenant = changes["tenant_id"]
        if is_self and caller.role == Role.ADMIN:
            raise forbidden(caller, "Admins cannot move themselves to another conjunto")
        if new_tenant is not None:
            await _require_tenant_exists(store, new_tenant)
        if "unit" not in changes:
            changes["unit"] = None

    try:
        user = await update_user(store, user_id, changes)
    except UserNotFoundError:
        raise _not_found()
    return ok(user)


@router.delete(
    "/{user_id}",
    response_model=Envelope[dict],
    summary="Delete a user (super_admin only)",
)
@limiter.limit(get_role_limit)
async def remove_user(
    request: Request,
    user_id: str,
    caller: Caller = Depends(require_role(Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    if caller.id == user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account",
        )

    target = await get_user_by_id(store, user_id)
    if target is None:
        raise _not_found()
    if target.role == Role.SUPER_ADMIN:
        raise forbidden(caller, "super_admin accounts cannot be deleted", target_user=user_id)

    try:
        await delete_user(store, user_id, deleted_by=caller.id)
    except UserNotFoundError:
        raise _not_found()
    return ok({"id": user_id, "deleted": True})
