"""
Tenant service — conjunto provisioning and access codes.

Services sit between routers (HTTP layer) and the document store.
They handle business rules and data transformation; authorization stays in the routers.
"""

import secrets
import string
import uuid
from collections.abc import Mapping
from typing import Any

from housing_api.core.database import (
    COLLECTION_CONJUNTOS,
    DocumentNotFoundError,
    DocumentStore,
)
from housing_api.core.logging import get_logger
from housing_api.models.tenant import Tenant, utcnow

logger = get_logger(__name__)

ACCESS_CODE_LENGTH = 10
ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 5

UPDATABLE_FIELDS = ("name", "address", "city", "access_code")


class TenantNotFoundError(Exception):
    pass


class AccessCodeInUseError(Exception):
    pass


def generate_access_code() -> str:
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH))


async def get_tenant_by_id(store: DocumentStore, tenant_id: str) -> Tenant | None:
    doc = await store.get(COLLECTION_CONJUNTOS, tenant_id)
    return Tenant.from_document(doc) if doc else None


async def get_tenant_by_access_code(store: DocumentStore, code: str) -> Tenant | None:
    docs = await store.find(COLLECTION_CONJUNTOS, {"access_code": code}, limit=1)
    return Tenant.from_document(docs[0]) if docs else None


async def list_tenants(store: DocumentStore) -> list[Tenant]:
    docs = await store.find(COLLECTION_CONJUNTOS)
    return sorted((Tenant.from_document(d) for d in docs), key=lambda t: t.name.lower())


async def _unused_access_code(store: DocumentStore) -> str:
    # Check-then-write is not atomic; a concurrent writer can still collide
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_access_code()
        if await get_tenant_by_access_code(store, code) is None:
            return code
        logger.warning("tenant.access_code_collision")
    raise AccessCodeInUseError("Could not generate an unused access code")


async def _ensure_code_available(
    store: DocumentStore, code: str, tenant_id: str | None = None
) -> None:
    holder = await get_tenant_by_access_code(store, code)
    if holder is not None and holder.id != tenant_id:
        raise AccessCodeInUseError(f"Access code {code} is already in use")


async def create_tenant(
    store: DocumentStore,
    name: str,
    address: str,
    city: str,
    access_code: str | None = None,
) -> Tenant:
    if access_code:
        await _ensure_code_available(store, access_code)
    else:
        access_code = await _unused_access_code(store)

    tenant = Tenant(
        id=str(uuid.uuid4()),
        name=name,
        address=address,
        city=city,
        access_code=access_code,
        created_at=utcnow(),
    )
    await store.create(
        COLLECTION_CONJUNTOS,
        tenant.id,
        tenant.model_dump(exclude={"id", "updated_at"}),
    )
    logger.info("tenant.created", tenant_id=tenant.id, name=name)
    return tenant


async def update_tenant(
    store: DocumentStore, tenant_id: str, changes: Mapping[str, Any]
) -> Tenant:
    patch = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
    if "access_code" in patch:
        await _ensure_code_available(store, patch["access_code"], tenant_id)
    patch["updated_at"] = utcnow()

    try:
        await store.update(COLLECTION_CONJUNTOS, tenant_id, patch)
    except DocumentNotFoundError:
        raise TenantNotFoundError(f"Conjunto {tenant_id} not found")

    logger.info("tenant.updated", tenant_id=tenant_id, fields=sorted(patch))
    tenant = await get_tenant_by_id(store, tenant_id)
    if tenant is None:
        raise TenantNotFoundError(f"Conjunto {tenant_id} not found")
    return tenant


async def regenerate_access_code(store: DocumentStore, tenant_id: str) -> str:
    """Replace the tenant's access code; lookups by the old code stop resolving."""
    new_code = await _unused_access_code(store)
    try:
        await store.update(
            COLLECTION_CONJUNTOS,
            tenant_id,
            {"access_code": new_code, "updated_at": utcnow()},
        )
    except DocumentNotFoundError:
        raise TenantNotFoundError(f"Conjunto {tenant_id} not found")

    logger.info("tenant.access_code_regenerated", tenant_id=tenant_id)
    return new_code
