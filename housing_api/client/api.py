"""
Async client for the Housing API.

Wraps httpx.AsyncClient, attaches the current session's bearer token, unwraps
the {success, data} envelope into domain models, and turns failures into
APIError (HTTP error response) or APIConnectionError (backend unreachable).
"""

from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from housing_api.core.logging import get_logger
from housing_api.models.report import (
    Report,
    ReportComment,
    ReportDetail,
    ReportListItem,
    ReportPhoto,
)
from housing_api.models.tenant import Tenant
from housing_api.models.user import User

logger = get_logger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]


class APIError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return f"<APIError status={self.status_code} message={self.message!r}>"


class APIConnectionError(APIError):
    """The backend could not be reached (down, DNS, refused, timeout)."""

    def __init__(self, base_url: str, cause: Exception):
        super().__init__(
            0,
            f"Could not connect to the backend at {base_url}: {cause}",
        )
        self.base_url = base_url


def _error_from_response(response: httpx.Response) -> APIError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("error") or body.get("message") or f"HTTP error {response.status_code}"
    return APIError(response.status_code, str(message), body.get("details"))


class HousingAPIClient:
    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "HousingAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        auth: bool = True,
    ) -> httpx.Response:
        headers = {}
        if auth and self.token_provider is not None:
            token = await self.token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = await self._http.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.TransportError as exc:
            logger.warning("client.connection_failed", base_url=self.base_url, error=str(exc))
            raise APIConnectionError(self.base_url, exc) from exc

        if response.is_error:
            error = _error_from_response(response)
            logger.info(
                "client.request_failed",
                method=method,
                path=path,
                status_code=error.status_code,
                error=error.message,
            )
            raise error
        return response

    async def _data(self, method: str, path: str, **kwargs) -> Any:
        response = await self._request(method, path, **kwargs)
        return response.json().get("data")

    # ── Health ─────────────────────────────────────────────────────────────────
    async def health(self) -> dict[str, Any]:
        response = await self._request("GET", "/health", auth=False)
        return response.json()

    async def is_available(self) -> bool:
        try:
            await self.health()
        except APIError:
            return False
        return True

    # ── Conjuntos ──────────────────────────────────────────────────────────────
    async def get_conjunto_by_code(self, code: str) -> Tenant:
        data = await self._data("GET", f"/conjuntos/code/{code}", auth=False)
        return Tenant.model_validate(data)

    async def list_conjuntos(self) -> list[Tenant]:
        data = await self._data("GET", "/conjuntos")
        return [Tenant.model_validate(item) for item in data]

    async def get_conjunto(self, tenant_id: str) -> Tenant:
        return Tenant.model_validate(await self._data("GET", f"/conjuntos/{tenant_id}"))

    async def create_conjunto(
        self, name: str, address: str, city: str, access_code: str | None = None
    ) -> Tenant:
        payload = {"name": name, "address": address, "city": city}
        if access_code:
            payload["access_code"] = access_code
        return Tenant.model_validate(await self._data("POST", "/conjuntos", json=payload))

    async def update_conjunto(self, tenant_id: str, **changes: Any) -> Tenant:
        data = await self._data("PUT", f"/conjuntos/{tenant_id}", json=changes)
        return Tenant.model_validate(data)

    async def regenerate_access_code(self, tenant_id: str) -> str:
        data = await self._data("POST", f"/conjuntos/{tenant_id}/regenerate-code")
        return data["access_code"]

    # ── Reports ────────────────────────────────────────────────────────────────
    async def list_reports(
        self, mine: bool = False, conjunto_id: str | None = None
    ) -> list[ReportListItem]:
        params = {"mine": "true" if mine else None, "conjunto_id": conjunto_id}
        data = await self._data("GET", "/reports", params=params)
        return [ReportListItem.model_validate(item) for item in data]

    async def get_report(self, report_id: str) -> ReportDetail:
        return ReportDetail.model_validate(await self._data("GET", f"/reports/{report_id}"))

    async def create_report(
        self,
        title: str,
        description: str,
        category: str,
        location: str = "",
        is_anonymous: bool = False,
    ) -> Report:
        payload = {
            "title": title,
            "description": description,
            "category": category,
            "location": location,
            "is_anonymous": is_anonymous,
        }
        return Report.model_validate(await self._data("POST", "/reports", json=payload))

    async def update_report(self, report_id: str, **changes: Any) -> Report:
        data = await self._data("PUT", f"/reports/{report_id}", json=changes)
        return Report.model_validate(data)

    async def get_statistics(self, conjunto_id: str | None = None) -> dict[str, Any]:
        return await self._data(
            "GET", "/reports/statistics", params={"conjunto_id": conjunto_id}
        )

    async def list_photos(self, report_id: str) -> list[ReportPhoto]:
        data = await self._data("GET", f"/reports/{report_id}/photos")
        return [ReportPhoto.model_validate(item) for item in data]

    async def add_photo(self, report_id: str, external_image_id: str, url: str) -> ReportPhoto:
        payload = {"external_image_id": external_image_id, "url": url}
        data = await self._data("POST", f"/reports/{report_id}/photos", json=payload)
        return ReportPhoto.model_validate(data)

    async def list_comments(
        self, report_id: str, include_internal: bool = False
    ) -> list[ReportComment]:
        params = {"include_internal": "true" if include_internal else None}
        data = await self._data("GET", f"/reports/{report_id}/comments", params=params)
        return [ReportComment.model_validate(item) for item in data]

    async def add_comment(
        self, report_id: str, body: str, is_internal: bool = False
    ) -> ReportComment:
        payload = {"body": body, "is_internal": is_internal}
        data = await self._data("POST", f"/reports/{report_id}/comments", json=payload)
        return ReportComment.model_validate(data)

    # ── Users ──────────────────────────────────────────────────────────────────
    async def register_user(
        self,
        auth_id: str,
        email: str,
        display_name: str,
        tenant_id: str | None = None,
        unit: str | None = None,
    ) -> User:
        payload = {
            "auth_id": auth_id,
            "email": email,
            "display_name": display_name,
            "tenant_id": tenant_id,
            "unit": unit,
        }
        return User.model_validate(await self._data("POST", "/users", json=payload, auth=False))

    async def sync_user(self, display_name: str | None = None) -> tuple[User, bool]:
        """Idempotent profile upsert; returns (user, created)."""
        payload = {"display_name": display_name} if display_name else None
        response = await self._request("POST", "/users/sync", json=payload)
        user = User.model_validate(response.json()["data"])
        return user, response.status_code == httpx.codes.CREATED

    async def get_me(self) -> User:
        return User.model_validate(await self._data("GET", "/users/me"))

    async def list_all_users(self) -> list[User]:
        data = await self._data("GET", "/users/all")
        return [User.model_validate(item) for item in data]

    async def list_conjunto_users(self, tenant_id: str) -> list[User]:
        data = await self._data("GET", f"/users/conjunto/{tenant_id}")
        return [User.model_validate(item) for item in data]

    async def get_user(self, user_id: str) -> User:
        return User.model_validate(await self._data("GET", f"/users/{user_id}"))

    async def update_user(self, user_id: str, **changes: Any) -> User:
        """Keys passed explicitly are sent as-is, so unit=None clears the unit."""
        data = await self._data("PUT", f"/users/{user_id}", json=changes)
        return User.model_validate(data)

    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"/users/{user_id}")

    async def assign_admin(self, email: str, conjunto_id: str) -> dict[str, Any]:
        payload = {"email": email, "conjunto_id": conjunto_id}
        return await self._data("POST", "/users/assign-admin", json=payload)
