"""
Route guard for the client application.

resolve_destination(user, path) returns the path the app should show: the
requested one when the user may see it, otherwise where to send them.
"""

from housing_api.core.security import Role
from housing_api.models.user import User

LOGIN = "/login"
SELECT_CONJUNTO = "/select-conjunto"
DASHBOARD = "/dashboard"
ADMIN = "/admin"
CONJUNTO_ADMIN = "/dashboard/admin-conjunto"

PUBLIC_PATHS = {LOGIN}


def landing_page(user: User) -> str:
    if user.role == Role.SUPER_ADMIN:
        return ADMIN
    if user.tenant_id is None:
        return SELECT_CONJUNTO
    return DASHBOARD


def _under(path: str, root: str) -> bool:
    return path == root or path.startswith(root + "/")


def resolve_destination(user: User | None, path: str) -> str:
    if user is None:
        return path if path in PUBLIC_PATHS else LOGIN

    if path in PUBLIC_PATHS or path == "/":
        return landing_page(user)

    if user.role != Role.SUPER_ADMIN and user.tenant_id is None:
        return SELECT_CONJUNTO

    if path == SELECT_CONJUNTO:
        # Already a member; super_admins never pick a conjunto
        return landing_page(user)

    if _under(path, ADMIN) and user.role != Role.SUPER_ADMIN:
        return DASHBOARD
    if _under(path, CONJUNTO_ADMIN) and user.role == Role.RESIDENT:
        return DASHBOARD

    return path
