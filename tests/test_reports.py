"""
Report tests: lifecycle, tenant isolation, photos, and comment visibility.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from helpers import API, auth_headers
from housing_api.models.report import ReportCategory
from housing_api.services.report_service import create_report

LEAKING_PIPE = {
    "title": "Fuga en el parqueadero",
    "description": "Hay agua saliendo de la tubería del sótano 2",
    "category": "infrastructure",
    "location": "Sótano 2",
}


@pytest_asyncio.fixture
async def report_a(store, resident_a):
    return await create_report(
        store,
        tenant_id=resident_a.tenant_id,
        author_user_id=resident_a.id,
        title="Ascensor detenido",
        description="El ascensor de la torre 1 no funciona",
        category=ReportCategory.INFRASTRUCTURE,
    )


@pytest.mark.asyncio
class TestReportLifecycle:
    async def test_resident_creates_open_report_in_own_conjunto(
        self, client: AsyncClient, resident_a
    ):
        resp = await client.post(
            f"{API}/reports", json=LEAKING_PIPE, headers=auth_headers(resident_a)
        )
        assert resp.status_code == 201
        report = resp.json()["data"]
        assert report["status"] == "open"
        assert report["tenant_id"] == resident_a.tenant_id
        assert report["author_user_id"] == resident_a.id
        assert report["is_anonymous"] is False

        listing = await client.get(f"{API}/reports", headers=auth_headers(resident_a))
        assert report["id"] in {r["id"] for r in listing.json()["data"]}

    async def test_tenant_id_in_body_is_ignored(
        self, client: AsyncClient, resident_a, conjunto_b
    ):
        resp = await client.post(
            f"{API}/reports",
            json={**LEAKING_PIPE, "tenant_id": conjunto_b.id},
            headers=auth_headers(resident_a),
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["tenant_id"] == resident_a.tenant_id

    async def test_user_without_conjunto_cannot_file(self, client: AsyncClient, newcomer):
        resp = await client.post(
            f"{API}/reports", json=LEAKING_PIPE, headers=auth_headers(newcomer)
        )
        assert resp.status_code == 400

    async def test_invalid_category_rejected(self, client: AsyncClient, resident_a):
        resp = await client.post(
            f"{API}/reports",
            json={**LEAKING_PIPE, "category": "noise"},
            headers=auth_headers(resident_a),
        )
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "category"

    async def test_list_is_newest_first(self, client: AsyncClient, resident_a):
        for title in ("Primero", "Segundo", "Tercero"):
            await client.post(
                f"{API}/reports",
                json={**LEAKING_PIPE, "title": title},
                headers=auth_headers(resident_a),
            )
        listing = await client.get(f"{API}/reports", headers=auth_headers(resident_a))
        assert [r["title"] for r in listing.json()["data"]] == ["Tercero", "Segundo", "Primero"]

    async def test_mine_lists_only_callers_reports(
        self, client: AsyncClient, store, resident_a, admin_a, report_a
    ):
        await create_report(
            store,
            tenant_id=admin_a.tenant_id,
            author_user_id=admin_a.id,
            title="Poda de jardines",
            description="Programar poda",
            category=ReportCategory.CLEANING,
        )
        all_reports = await client.get(f"{API}/reports", headers=auth_headers(resident_a))
        mine = await client.get(
            f"{API}/reports", params={"mine": "true"}, headers=auth_headers(resident_a)
        )
        assert all_reports.json()["count"] == 2
        assert [r["id"] for r in mine.json()["data"]] == [report_a.id]

    async def test_admin_changes_status(self, client: AsyncClient, admin_a, report_a):
        resp = await client.put(
            f"{API}/reports/{report_a.id}",
            json={"status": "in_progress"},
            headers=auth_headers(admin_a),
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "in_progress"
        assert data["title"] == report_a.title
        assert data["tenant_id"] == report_a.tenant_id

    async def test_resident_cannot_change_status(
        self, client: AsyncClient, resident_a, report_a
    ):
        resp = await client.put(
            f"{API}/reports/{report_a.id}",
            json={"status": "closed"},
            headers=auth_headers(resident_a),
        )
        assert resp.status_code == 403

    async def test_unknown_report(self, client: AsyncClient, resident_a):
        resp = await client.get(f"{API}/reports/missing", headers=auth_headers(resident_a))
        assert resp.status_code == 404


@pytest.mark.asyncio
class TestReportTenantIsolation:
    async def test_admin_of_other_conjunto_gets_403(
        self, client: AsyncClient, admin_b, report_a
    ):
        resp = await client.get(f"{API}/reports/{report_a.id}", headers=auth_headers(admin_b))
        assert resp.status_code == 403

    async def test_resident_of_other_conjunto_cannot_read_or_write(
        self, client: AsyncClient, resident_b, report_a
    ):
        headers = auth_headers(resident_b)
        assert (await client.get(f"{API}/reports/{report_a.id}", headers=headers)).status_code == 403
        comment = await client.post(
            f"{API}/reports/{report_a.id}/comments", json={"body": "hola"}, headers=headers
        )
        assert comment.status_code == 403
        photos = await client.get(f"{API}/reports/{report_a.id}/photos", headers=headers)
        assert photos.status_code == 403

    async def test_other_conjunto_list_excludes_report(
        self, client: AsyncClient, resident_b, report_a
    ):
        listing = await client.get(f"{API}/reports", headers=auth_headers(resident_b))
        assert listing.json()["data"] == []

    async def test_super_admin_sees_every_conjunto(
        self, client: AsyncClient, store, super_admin, report_a, resident_b
    ):
        other = await create_report(
            store,
            tenant_id=resident_b.tenant_id,
            author_user_id=resident_b.id,
            title="Ruido",
            description="Fiesta hasta tarde",
            category=ReportCategory.COMMUNITY,
        )
        listing = await client.get(f"{API}/reports", headers=auth_headers(super_admin))
        assert {r["id"] for r in listing.json()["data"]} == {report_a.id, other.id}

        filtered = await client.get(
            f"{API}/reports",
            params={"conjunto_id": resident_b.tenant_id},
            headers=auth_headers(super_admin),
        )
        assert [r["id"] for r in filtered.json()["data"]] == [other.id]

        detail = await client.get(f"{API}/reports/{report_a.id}", headers=auth_headers(super_admin))
        assert detail.status_code == 200


@pytest.mark.asyncio
class TestPhotos:
    async def test_author_attaches_photo_and_list_shows_preview(
        self, client: AsyncClient, resident_a, report_a
    ):
        headers = auth_headers(resident_a)
        for n in (1, 2):
            resp = await client.post(
                f"{API}/reports/{report_a.id}/photos",
                json={"external_image_id": f"reports/img{n}", "url": f"https://img.test/{n}.jpg"},
                headers=headers,
            )
            assert resp.status_code == 201

        photos = await client.get(f"{API}/reports/{report_a.id}/photos", headers=headers)
        assert [p["external_image_id"] for p in photos.json()["data"]] == [
            "reports/img1",
            "reports/img2",
        ]

        listing = await client.get(f"{API}/reports", headers=headers)
        item = listing.json()["data"][0]
        assert item["first_photo"]["url"] == "https://img.test/1.jpg"

    async def test_other_resident_cannot_attach(
        self, client: AsyncClient, store, conjunto_a, report_a
    ):
        from helpers import make_user
        from housing_api.core.security import Role

        neighbour = await make_user(store, "neighbour", Role.RESIDENT, conjunto_a)
        resp = await client.post(
            f"{API}/reports/{report_a.id}/photos",
            json={"external_image_id": "x", "url": "https://img.test/x.jpg"},
            headers=auth_headers(neighbour),
        )
        assert resp.status_code == 403

    async def test_report_without_photos_has_no_preview(
        self, client: AsyncClient, resident_a, report_a
    ):
        listing = await client.get(f"{API}/reports", headers=auth_headers(resident_a))
        assert listing.json()["data"][0]["first_photo"] is None


@pytest.mark.asyncio
class TestComments:
    async def test_internal_comments_hidden_from_residents(
        self, client: AsyncClient, resident_a, admin_a, report_a
    ):
        url = f"{API}/reports/{report_a.id}/comments"
        internal = await client.post(
            url,
            json={"body": "Proveedor agendado para el lunes", "is_internal": True},
            headers=auth_headers(admin_a),
        )
        public = await client.post(
            url, json={"body": "Gracias por avisar"}, headers=auth_headers(resident_a)
        )
        assert internal.json()["data"]["is_internal"] is True
        assert public.json()["data"]["is_internal"] is False

        as_resident = await client.get(
            url, params={"include_internal": "true"}, headers=auth_headers(resident_a)
        )
        assert [c["body"] for c in as_resident.json()["data"]] == ["Gracias por avisar"]

        as_admin = await client.get(
            url, params={"include_internal": "true"}, headers=auth_headers(admin_a)
        )
        assert as_admin.json()["count"] == 2

        admin_default = await client.get(url, headers=auth_headers(admin_a))
        assert admin_default.json()["count"] == 1

    async def test_resident_internal_flag_is_dropped(
        self, client: AsyncClient, resident_a, report_a
    ):
        resp = await client.post(
            f"{API}/reports/{report_a.id}/comments",
            json={"body": "Solo para admins", "is_internal": True},
            headers=auth_headers(resident_a),
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["is_internal"] is False

    async def test_detail_filters_comments_by_role(
        self, client: AsyncClient, resident_a, admin_a, report_a
    ):
        url = f"{API}/reports/{report_a.id}/comments"
        await client.post(url, json={"body": "nota", "is_internal": True}, headers=auth_headers(admin_a))
        await client.post(url, json={"body": "pública"}, headers=auth_headers(resident_a))

        resident_view = await client.get(
            f"{API}/reports/{report_a.id}", headers=auth_headers(resident_a)
        )
        admin_view = await client.get(f"{API}/reports/{report_a.id}", headers=auth_headers(admin_a))
        assert [c["body"] for c in resident_view.json()["data"]["comments"]] == ["pública"]
        assert len(admin_view.json()["data"]["comments"]) == 2
        assert resident_view.json()["data"]["photos"] == []

    async def test_empty_body_rejected(self, client: AsyncClient, resident_a, report_a):
        resp = await client.post(
            f"{API}/reports/{report_a.id}/comments",
            json={"body": ""},
            headers=auth_headers(resident_a),
        )
        assert resp.status_code == 400
