"""
Health probes, error envelope, and request tracing.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from helpers import API, auth_headers
from housing_api.core.config import settings
from housing_api.core.database import get_store
from housing_api.main import app


class BrokenStore:
    async def ping(self):
        raise ConnectionError("store offline")

    async def find(self, collection, filters=None, limit=None):
        raise RuntimeError("query exploded")

    async def get(self, collection, doc_id):
        raise RuntimeError("query exploded")


@pytest_asyncio.fixture
async def broken_client(client):
    app.dependency_overrides[get_store] = lambda: BrokenStore()
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, client: AsyncClient):
        resp = await client.get(f"{API}/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"]
        assert "timestamp" in body

    async def test_ready_with_store(self, client: AsyncClient):
        resp = await client.get(f"{API}/health/ready")
        assert resp.status_code == 200
        assert resp.json()["store"] == "connected"

    async def test_ready_without_store(self, broken_client: AsyncClient):
        resp = await broken_client.get(f"{API}/health/ready")
        assert resp.status_code == 503
        assert resp.json()["success"] is False

    async def test_live(self, client: AsyncClient):
        assert (await client.get(f"{API}/health/live")).status_code == 200


@pytest.mark.asyncio
class TestErrorEnvelope:
    async def test_unknown_route(self, client: AsyncClient):
        resp = await client.get(f"{API}/nothing-here")
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert "/api/nothing-here" in body["error"]

    async def test_wrong_method_on_known_route(self, client: AsyncClient):
        resp = await client.delete(f"{API}/reports/some-report")
        assert resp.status_code == 405
        body = resp.json()
        assert body["success"] is False
        assert "GET" in resp.headers["allow"]

    async def test_store_failure_propagates_as_500_with_details(
        self, broken_client: AsyncClient, resident_a
    ):
        resp = await broken_client.get(f"{API}/reports", headers=auth_headers(resident_a))
        assert resp.status_code == 500
        body = resp.json()
        assert body == {
            "success": False,
            "error": "Internal server error",
            "details": "query exploded",
        }

    async def test_production_hides_details(
        self, broken_client: AsyncClient, resident_a, monkeypatch
    ):
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        resp = await broken_client.get(f"{API}/users/me", headers=auth_headers(resident_a))
        assert resp.status_code == 500
        assert "details" not in resp.json()


@pytest.mark.asyncio
class TestRequestTracing:
    async def test_request_id_header(self, client: AsyncClient):
        resp = await client.get(f"{API}/health")
        assert resp.headers["x-request-id"]

    async def test_incoming_request_id_is_echoed(self, client: AsyncClient):
        resp = await client.get(f"{API}/health", headers={"X-Request-ID": "trace-123"})
        assert resp.headers["x-request-id"] == "trace-123"
