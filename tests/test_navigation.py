"""
Route guard tests.
"""

import pytest

from housing_api.client.navigation import resolve_destination
from housing_api.core.security import Role
from housing_api.models.user import User


def user(role: Role = Role.RESIDENT, tenant_id: str | None = "t1") -> User:
    return User(
        id="u1",
        auth_id="u1",
        email="u1@housing.test",
        display_name="U1",
        tenant_id=tenant_id,
        role=role,
    )


@pytest.mark.parametrize("path", ["/dashboard", "/admin", "/select-conjunto", "/"])
def test_anonymous_goes_to_login(path):
    assert resolve_destination(None, path) == "/login"


def test_anonymous_may_stay_on_login():
    assert resolve_destination(None, "/login") == "/login"


def test_tenantless_resident_must_pick_conjunto():
    assert resolve_destination(user(tenant_id=None), "/dashboard") == "/select-conjunto"
    assert resolve_destination(user(tenant_id=None), "/select-conjunto") == "/select-conjunto"
    assert resolve_destination(user(tenant_id=None), "/login") == "/select-conjunto"


def test_super_admin_lands_on_admin():
    boss = user(Role.SUPER_ADMIN, tenant_id=None)
    assert resolve_destination(boss, "/login") == "/admin"
    assert resolve_destination(boss, "/select-conjunto") == "/admin"
    assert resolve_destination(boss, "/dashboard") == "/dashboard"


def test_member_lands_on_dashboard():
    assert resolve_destination(user(), "/") == "/dashboard"
    assert resolve_destination(user(), "/select-conjunto") == "/dashboard"
    assert resolve_destination(user(), "/dashboard/reportes/r1") == "/dashboard/reportes/r1"


def test_role_restricted_pages():
    assert resolve_destination(user(), "/admin") == "/dashboard"
    assert resolve_destination(user(), "/dashboard/admin-conjunto") == "/dashboard"
    assert resolve_destination(user(Role.ADMIN), "/dashboard/admin-conjunto") == (
        "/dashboard/admin-conjunto"
    )
