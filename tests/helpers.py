"""Helpers shared by the test modules (imported after conftest sets the environment)."""

from housing_api.core.config import settings
from housing_api.core.security import Role, create_access_token
from housing_api.models.tenant import Tenant
from housing_api.models.user import User
from housing_api.services.user_service import create_user

API = settings.API_PREFIX


async def make_user(
    store,
    uid: str,
    role: Role,
    tenant: Tenant | None,
    unit: str | None = None,
) -> User:
    return await create_user(
        store,
        auth_id=uid,
        email=f"{uid}@housing.test",
        display_name=uid.replace("-", " ").title(),
        tenant_id=tenant.id if tenant else None,
        unit=unit,
        role=role,
    )


def auth_headers(user: User) -> dict:
    token = create_access_token(user.auth_id, user.email, user.display_name)
    return {"Authorization": f"Bearer {token}"}
