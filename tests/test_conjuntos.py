"""
Conjunto tests: provisioning, access codes, and tenant scoping.
"""

import re

import pytest
from httpx import AsyncClient

from helpers import API, auth_headers

ACCESS_CODE = re.compile(r"^[A-Z0-9]{10}$")

NEW_CONJUNTO = {"name": "Altos de Suba", "address": "Av Suba #120-30", "city": "Bogotá"}


@pytest.mark.asyncio
class TestProvisioning:
    async def test_create_generates_access_code_and_lookup_finds_it(
        self, client: AsyncClient, super_admin
    ):
        resp = await client.post(
            f"{API}/conjuntos", json=NEW_CONJUNTO, headers=auth_headers(super_admin)
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        created = body["data"]
        assert ACCESS_CODE.match(created["access_code"])

        lookup = await client.get(f"{API}/conjuntos/code/{created['access_code']}")
        assert lookup.status_code == 200
        assert lookup.json()["data"]["id"] == created["id"]

    async def test_explicit_access_code_is_kept(self, client: AsyncClient, super_admin):
        resp = await client.post(
            f"{API}/conjuntos",
            json={**NEW_CONJUNTO, "access_code": "SUBA2024XY"},
            headers=auth_headers(super_admin),
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["access_code"] == "SUBA2024XY"

    async def test_duplicate_explicit_access_code_conflicts(
        self, client: AsyncClient, super_admin, conjunto_a
    ):
        resp = await client.post(
            f"{API}/conjuntos",
            json={**NEW_CONJUNTO, "access_code": conjunto_a.access_code},
            headers=auth_headers(super_admin),
        )
        assert resp.status_code == 409
        assert resp.json()["success"] is False

    async def test_missing_field_is_validation_error(self, client: AsyncClient, super_admin):
        resp = await client.post(
            f"{API}/conjuntos",
            json={"name": "Sin dirección"},
            headers=auth_headers(super_admin),
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        fields = {d["field"] for d in body["details"]}
        assert {"address", "city"} <= fields

    async def test_admin_cannot_create(self, client: AsyncClient, admin_a):
        resp = await client.post(
            f"{API}/conjuntos", json=NEW_CONJUNTO, headers=auth_headers(admin_a)
        )
        assert resp.status_code == 403

    async def test_create_requires_token(self, client: AsyncClient):
        resp = await client.post(f"{API}/conjuntos", json=NEW_CONJUNTO)
        assert resp.status_code == 401
        assert resp.json()["error"] == "Authentication token not provided"

    async def test_update_is_partial(self, client: AsyncClient, super_admin, conjunto_a):
        resp = await client.put(
            f"{API}/conjuntos/{conjunto_a.id}",
            json={"city": "Chía"},
            headers=auth_headers(super_admin),
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["city"] == "Chía"
        assert data["name"] == conjunto_a.name
        assert data["access_code"] == conjunto_a.access_code
        assert data["updated_at"] is not None

    async def test_update_missing_conjunto(self, client: AsyncClient, super_admin):
        resp = await client.put(
            f"{API}/conjuntos/does-not-exist",
            json={"city": "Cali"},
            headers=auth_headers(super_admin),
        )
        assert resp.status_code == 404


@pytest.mark.asyncio
class TestAccessCodes:
    async def test_unknown_code_is_not_found(self, client: AsyncClient, conjunto_a):
        resp = await client.get(f"{API}/conjuntos/code/NOPE000000")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "No conjunto matches that access code"}

    async def test_lookup_is_case_insensitive(self, client: AsyncClient, conjunto_a):
        resp = await client.get(f"{API}/conjuntos/code/{conjunto_a.access_code.lower()}")
        assert resp.status_code == 200

    async def test_regenerate_invalidates_old_code(
        self, client: AsyncClient, admin_a, conjunto_a
    ):
        old_code = conjunto_a.access_code
        resp = await client.post(
            f"{API}/conjuntos/{conjunto_a.id}/regenerate-code",
            headers=auth_headers(admin_a),
        )
        assert resp.status_code == 200
        new_code = resp.json()["data"]["access_code"]
        assert new_code != old_code
        assert ACCESS_CODE.match(new_code)

        assert (await client.get(f"{API}/conjuntos/code/{old_code}")).status_code == 404
        found = await client.get(f"{API}/conjuntos/code/{new_code}")
        assert found.json()["data"]["id"] == conjunto_a.id

    async def test_admin_cannot_regenerate_other_conjunto(
        self, client: AsyncClient, admin_b, conjunto_a
    ):
        resp = await client.post(
            f"{API}/conjuntos/{conjunto_a.id}/regenerate-code",
            headers=auth_headers(admin_b),
        )
        assert resp.status_code == 403

    async def test_resident_cannot_regenerate(self, client: AsyncClient, resident_a, conjunto_a):
        resp = await client.post(
            f"{API}/conjuntos/{conjunto_a.id}/regenerate-code",
            headers=auth_headers(resident_a),
        )
        assert resp.status_code == 403


@pytest.mark.asyncio
class TestTenantScoping:
    async def test_super_admin_lists_all(
        self, client: AsyncClient, super_admin, conjunto_a, conjunto_b
    ):
        resp = await client.get(f"{API}/conjuntos", headers=auth_headers(super_admin))
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 2
        assert {c["id"] for c in body["data"]} == {conjunto_a.id, conjunto_b.id}

    async def test_admin_lists_only_own(
        self, client: AsyncClient, admin_a, conjunto_a, conjunto_b
    ):
        resp = await client.get(f"{API}/conjuntos", headers=auth_headers(admin_a))
        assert [c["id"] for c in resp.json()["data"]] == [conjunto_a.id]

    async def test_resident_cannot_list(self, client: AsyncClient, resident_a):
        resp = await client.get(f"{API}/conjuntos", headers=auth_headers(resident_a))
        assert resp.status_code == 403

    async def test_resident_reads_own_conjunto(
        self, client: AsyncClient, resident_a, conjunto_a
    ):
        resp = await client.get(
            f"{API}/conjuntos/{conjunto_a.id}", headers=auth_headers(resident_a)
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == conjunto_a.name

    async def test_resident_cannot_read_other_conjunto(
        self, client: AsyncClient, resident_a, conjunto_b
    ):
        resp = await client.get(
            f"{API}/conjuntos/{conjunto_b.id}", headers=auth_headers(resident_a)
        )
        assert resp.status_code == 403
