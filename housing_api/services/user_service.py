"""
User service — resident/admin records keyed by the identity provider uid.

Services sit between routers (HTTP layer) and the document store.
They handle business rules and data transformation, not authorization.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from housing_api.core.database import (
    COLLECTION_USERS,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
)
from housing_api.core.logging import get_logger
from housing_api.core.security import Identity, Role
from housing_api.models.tenant import utcnow
from housing_api.models.user import User

logger = get_logger(__name__)

UPDATABLE_FIELDS = ("display_name", "tenant_id", "unit", "role")


class UserNotFoundError(Exception):
    pass


class UserAlreadyExistsError(Exception):
    pass


def _to_document(user: User) -> dict[str, Any]:
    data = user.model_dump(exclude={"id"})
    data["role"] = user.role.value
    return data


# ── Lookups ────────────────────────────────────────────────────────────────────
async def get_user_by_id(store: DocumentStore, user_id: str) -> User | None:
    doc = await store.get(COLLECTION_USERS, user_id)
    return User.from_document(doc) if doc else None


async def get_user_by_auth_id(store: DocumentStore, auth_id: str) -> User | None:
    docs = await store.find(COLLECTION_USERS, {"auth_id": auth_id}, limit=1)
    return User.from_document(docs[0]) if docs else None


async def get_user_by_email(store: DocumentStore, email: str) -> User | None:
    docs = await store.find(COLLECTION_USERS, {"email": email.strip().lower()}, limit=1)
    return User.from_document(docs[0]) if docs else None


async def user_exists(store: DocumentStore, auth_id: str) -> bool:
    return await get_user_by_auth_id(store, auth_id) is not None


async def list_users_by_tenant(store: DocumentStore, tenant_id: str) -> list[User]:
    docs = await store.find(COLLECTION_USERS, {"tenant_id": tenant_id})
    return sorted((User.from_document(d) for d in docs), key=lambda u: u.created_at)


async def list_users(store: DocumentStore) -> list[User]:
    docs = await store.find(COLLECTION_USERS)
    return sorted((User.from_document(d) for d in docs), key=lambda u: u.created_at)


# ── Writes ─────────────────────────────────────────────────────────────────────
async def create_user(
    store: DocumentStore,
    auth_id: str,
    email: str,
    display_name: str,
    tenant_id: str | None = None,
    unit: str | None = None,
    role: Role = Role.RESIDENT,
) -> User:
    now = utcnow()
    user = User(
        id=auth_id,
        auth_id=auth_id,
        email=email.strip().lower(),
        display_name=display_name,
        tenant_id=tenant_id or None,
        unit=unit or None,
        role=role,
        created_at=now,
        updated_at=now,
    )
    try:
        await store.create(COLLECTION_USERS, user.id, _to_document(user))
    except DocumentExistsError:
        raise UserAlreadyExistsError(f"User {auth_id} already exists")

    logger.info(
        "user.created",
        user_id=user.id,
        email=user.email,
        tenant_id=user.tenant_id,
        role=role.value,
    )
    return user


async def update_user(
    store: DocumentStore, user_id: str, changes: Mapping[str, Any]
) -> User:
    """
    Partial update. Only keys present in `changes` are written, so an absent
    field is never clobbered; an explicit None clears tenant_id/unit.
    """
    patch: dict[str, Any] = {}
    for key in UPDATABLE_FIELDS:
        if key not in changes:
            continue
        value = changes[key]
        if key == "role" and value is not None:
            value = Role(value).value
        patch[key] = value
    patch["updated_at"] = utcnow()

    try:
        await store.update(COLLECTION_USERS, user_id, patch)
    except DocumentNotFoundError:
        raise UserNotFoundError(f"User {user_id} not found")

    logger.info("user.updated", user_id=user_id, fields=sorted(patch))
    user = await get_user_by_id(store, user_id)
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found")
    return user


async def delete_user(store: DocumentStore, user_id: str, deleted_by: str) -> None:
    """Hard delete. Reports, comments and photos by the user are left in place."""
    try:
        await store.delete(COLLECTION_USERS, user_id)
    except DocumentNotFoundError:
        raise UserNotFoundError(f"User {user_id} not found")
    logger.warning("user.deleted", user_id=user_id, deleted_by=deleted_by)


async def sync_user(
    store: DocumentStore,
    identity: Identity,
    display_name: str | None = None,
    super_admin_emails: Iterable[str] = (),
) -> tuple[User, bool]:
    """
    Idempotent upsert run right after sign-in. Returns (user, created).
    Emails listed in SUPER_ADMIN_EMAILS are bootstrapped as super_admin, but
    only when the identity provider has verified the address.
    """
    existing = await get_user_by_id(store, identity.uid)
    if existing is not None:
        return existing, False

    email = (identity.email or "").strip().lower()
    role = Role.RESIDENT
    if email and email in set(super_admin_emails):
        if identity.email_verified:
            role = Role.SUPER_ADMIN
        else:
            logger.warning("user.super_admin_unverified_email", user_id=identity.uid, email=email)
    name = display_name or identity.name or (email.split("@")[0] if email else identity.uid)
    try:
        user = await create_user(store, identity.uid, email, name, role=role)
    except UserAlreadyExistsError:
        # Another request created it between the read and the write
        user = await get_user_by_id(store, identity.uid)
        if user is None:
            raise
        return user, False
    return user, True


# ── Privileged role changes ────────────────────────────────────────────────────
@dataclass
class AdminAssignment:
    user: User
    previous: dict[str, Any]
    current: dict[str, Any]
    changes: list[str] = field(default_factory=list)


def _role_snapshot(user: User) -> dict[str, Any]:
    return {"role": user.role.value, "tenant_id": user.tenant_id, "unit": user.unit}


async def assign_admin(store: DocumentStore, email: str, tenant_id: str) -> AdminAssignment:
    """Grant the admin role for `tenant_id`; unit is cleared only when the tenant changes."""
    target = await get_user_by_email(store, email)
    if target is None:
        raise UserNotFoundError(f"No user with email {email}")

    previous = _role_snapshot(target)
    tenant_changed = target.tenant_id is not None and target.tenant_id != tenant_id

    changes: dict[str, Any] = {"role": Role.ADMIN, "tenant_id": tenant_id}
    if tenant_changed:
        changes["unit"] = None
    updated = await update_user(store, target.id, changes)

    summary: list[str] = []
    if target.role != Role.ADMIN:
        summary.append(f'Role changed from "{target.role.value}" to "admin"')
    else:
        summary.append('Role kept as "admin"')
    if tenant_changed:
        summary.append(f"Conjunto changed (previous: {target.tenant_id}, new: {tenant_id})")
    elif target.tenant_id is None:
        summary.append("Conjunto assigned for the first time")
    else:
        summary.append("Conjunto kept")
    if tenant_changed and target.unit:
        summary.append("Unit cleared because the conjunto changed")

    logger.info(
        "user.admin_assigned",
        user_id=target.id,
        old_role=previous["role"],
        old_tenant=previous["tenant_id"],
        new_tenant=tenant_id,
    )
    return AdminAssignment(
        user=updated,
        previous=previous,
        current=_role_snapshot(updated),
        changes=summary,
    )


async def promote_super_admin(store: DocumentStore, email: str) -> User:
    user = await get_user_by_email(store, email)
    if user is None:
        raise UserNotFoundError(f"No user with email {email}")
    if user.role == Role.SUPER_ADMIN:
        return user
    promoted = await update_user(store, user.id, {"role": Role.SUPER_ADMIN})
    logger.warning("user.promoted_super_admin", user_id=user.id, email=user.email)
    return promoted
