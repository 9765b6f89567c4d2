"""
Conjuntos router — tenant provisioning and access-code lookup.

Permission matrix:
  GET  /conjuntos/code/{code}             → public
  GET  /conjuntos                         → super_admin (all), admin (own)
  GET  /conjuntos/{id}                    → members of that conjunto, super_admin
  POST /conjuntos                         → super_admin
  PUT  /conjuntos/{id}                    → super_admin
  POST /conjuntos/{id}/regenerate-code    → admin (own), super_admin
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from housing_api.core.authz import Caller, get_caller, require_role, require_same_tenant
from housing_api.core.config import settings
from housing_api.core.database import DocumentStore, get_store
from housing_api.core.errors import Envelope, ListEnvelope, ok, ok_list
from housing_api.core.limiter import get_role_limit, limiter
from housing_api.core.logging import get_logger
from housing_api.core.security import Role
from housing_api.models.tenant import Tenant
from housing_api.services.tenant_service import (
    AccessCodeInUseError,
    TenantNotFoundError,
    create_tenant,
    get_tenant_by_access_code,
    get_tenant_by_id,
    list_tenants,
    regenerate_access_code,
    update_tenant,
)

router = APIRouter()
logger = get_logger(__name__)


# ── Schemas ────────────────────────────────────────────────────────────────────
class CreateConjuntoRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    address: str = Field(min_length=1, max_length=300)
    city: str = Field(min_length=1, max_length=120)
    access_code: str | None = Field(default=None, min_length=4, max_length=32)


class UpdateConjuntoRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    address: str | None = Field(default=None, min_length=1, max_length=300)
    city: str | None = Field(default=None, min_length=1, max_length=120)
    access_code: str | None = Field(default=None, min_length=4, max_length=32)


class AccessCodeResponse(BaseModel):
    access_code: str


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conjunto not found")


def _code_in_use(exc: AccessCodeInUseError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


# ── Endpoints ──────────────────────────────────────────────────────────────────
@router.get(
    "/code/{code}",
    response_model=Envelope[Tenant],
    summary="Find a conjunto by access code (public)",
)
@limiter.limit(settings.RATE_LIMIT_PUBLIC)
async def get_by_code(
    request: Request,
    code: str,
    store: DocumentStore = Depends(get_store),
):
    tenant = await get_tenant_by_access_code(store, code.strip().upper())
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No conjunto matches that access code",
        )
    return ok(tenant)


@router.get(
    "",
    response_model=ListEnvelope[Tenant],
    summary="List conjuntos (super_admin: all, admin: own)",
)
@limiter.limit(get_role_limit)
async def list_conjuntos(
    request: Request,
    caller: Caller = Depends(require_role(Role.ADMIN, Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    if caller.is_super_admin:
        return ok_list(await list_tenants(store))

    if caller.tenant_id is None:
        return ok_list([])
    tenant = await get_tenant_by_id(store, caller.tenant_id)
    return ok_list([tenant] if tenant else [])


@router.get(
    "/{tenant_id}",
    response_model=Envelope[Tenant],
    summary="Get a conjunto",
)
@limiter.limit(get_role_limit)
async def get_conjunto(
    request: Request,
    tenant_id: str,
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    require_same_tenant(caller, tenant_id, "You can only view your own conjunto")
    tenant = await get_tenant_by_id(store, tenant_id)
    if tenant is None:
        raise _not_found()
    return ok(tenant)


@router.post(
    "",
    response_model=Envelope[Tenant],
    status_code=status.HTTP_201_CREATED,
    summary="Create a conjunto (super_admin only)",
)
@limiter.limit(get_role_limit)
async def create_conjunto(
    request: Request,
    body: CreateConjuntoRequest,
    caller: Caller = Depends(require_role(Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    try:
        tenant = await create_tenant(
            store,
            name=body.name,
            address=body.address,
            city=body.city,
            access_code=body.access_code.strip().upper() if body.access_code else None,
        )
    except AccessCodeInUseError as exc:
        raise _code_in_use(exc)

    logger.info("conjunto.created", tenant_id=tenant.id, created_by=caller.id)
    return ok(tenant)


@router.put(
    "/{tenant_id}",
    response_model=Envelope[Tenant],
    summary="Update a conjunto (super_admin only)",
)
@limiter.limit(get_role_limit)
async def update_conjunto(
    request: Request,
    tenant_id: str,
    body: UpdateConjuntoRequest,
    caller: Caller = Depends(require_role(Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    changes = body.model_dump(exclude_unset=True)
    if changes.get("access_code"):
        changes["access_code"] = changes["access_code"].strip().upper()

    try:
        tenant = await update_tenant(store, tenant_id, changes)
    except TenantNotFoundError:
        raise _not_found()
    except AccessCodeInUseError as exc:
        raise _code_in_use(exc)
    return ok(tenant)


@router.post(
    "/{tenant_id}/regenerate-code",
    response_model=Envelope[AccessCodeResponse],
    summary="Issue a new access code (admin of the conjunto, super_admin)",
)
@limiter.limit(get_role_limit)
async def regenerate_code(
    request: Request,
    tenant_id: str,
    caller: Caller = Depends(require_role(Role.ADMIN, Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    require_same_tenant(caller, tenant_id, "You can only manage your own conjunto")
    try:
        new_code = await regenerate_access_code(store, tenant_id)
    except TenantNotFoundError:
        raise _not_found()
    except AccessCodeInUseError as exc:
        raise _code_in_use(exc)

    logger.info("conjunto.code_regenerated", tenant_id=tenant_id, regenerated_by=caller.id)
    return ok(AccessCodeResponse(access_code=new_code))
