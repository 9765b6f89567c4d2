"""
Report service — reports, their photos and comments, and statistics.

Lists are sorted in memory: reports newest first, photos and comments oldest
first. Statistics load every matching report and reduce them here rather than
in the store.
"""

import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from housing_api.core.database import (
    COLLECTION_REPORT_COMMENTS,
    COLLECTION_REPORT_PHOTOS,
    COLLECTION_REPORTS,
    DocumentNotFoundError,
    DocumentStore,
)
from housing_api.core.logging import get_logger
from housing_api.models.report import (
    Report,
    ReportCategory,
    ReportComment,
    ReportPhoto,
    ReportStatus,
)
from housing_api.models.tenant import utcnow

logger = get_logger(__name__)

# tenant_id and author_user_id are fixed at creation
UPDATABLE_FIELDS = ("title", "description", "category", "location", "status", "is_anonymous")


class ReportNotFoundError(Exception):
    pass


def _newest_first(reports: Iterable[Report]) -> list[Report]:
    return sorted(reports, key=lambda r: r.created_at, reverse=True)


# ── Reports ────────────────────────────────────────────────────────────────────
async def create_report(
    store: DocumentStore,
    tenant_id: str,
    author_user_id: str,
    title: str,
    description: str,
    category: ReportCategory,
    location: str = "",
    is_anonymous: bool = False,
) -> Report:
    now = utcnow()
    report = Report(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        author_user_id=author_user_id,
        title=title,
        description=description,
        category=category,
        location=location,
        status=ReportStatus.OPEN,
        is_anonymous=is_anonymous,
        created_at=now,
        updated_at=now,
    )
    data = report.model_dump(exclude={"id"})
    data["category"] = report.category.value
    data["status"] = report.status.value
    await store.create(COLLECTION_REPORTS, report.id, data)

    logger.info(
        "report.created",
        report_id=report.id,
        tenant_id=tenant_id,
        category=report.category.value,
        author_user_id=author_user_id,
    )
    return report


async def get_report_by_id(store: DocumentStore, report_id: str) -> Report | None:
    doc = await store.get(COLLECTION_REPORTS, report_id)
    return Report.from_document(doc) if doc else None


async def list_reports_by_tenant(store: DocumentStore, tenant_id: str) -> list[Report]:
    docs = await store.find(COLLECTION_REPORTS, {"tenant_id": tenant_id})
    return _newest_first(Report.from_document(d) for d in docs)


async def list_reports_by_author(store: DocumentStore, author_user_id: str) -> list[Report]:
    docs = await store.find(COLLECTION_REPORTS, {"author_user_id": author_user_id})
    return _newest_first(Report.from_document(d) for d in docs)


async def list_reports(store: DocumentStore) -> list[Report]:
    docs = await store.find(COLLECTION_REPORTS)
    return _newest_first(Report.from_document(d) for d in docs)


async def update_report(
    store: DocumentStore, report_id: str, changes: Mapping[str, Any], updated_by: str
) -> Report:
    patch: dict[str, Any] = {}
    for key in UPDATABLE_FIELDS:
        value = changes.get(key)
        if value is None:
            continue
        if key == "category":
            value = ReportCategory(value).value
        elif key == "status":
            value = ReportStatus(value).value
        patch[key] = value
    patch["updated_at"] = utcnow()

    try:
        await store.update(COLLECTION_REPORTS, report_id, patch)
    except DocumentNotFoundError:
        raise ReportNotFoundError(f"Report {report_id} not found")

    logger.info(
        "report.updated",
        report_id=report_id,
        fields=sorted(patch),
        new_status=patch.get("status"),
        updated_by=updated_by,
    )
    report = await get_report_by_id(store, report_id)
    if report is None:
        raise ReportNotFoundError(f"Report {report_id} not found")
    return report


# ── Photos ─────────────────────────────────────────────────────────────────────
async def add_photo(
    store: DocumentStore, report_id: str, external_image_id: str, url: str
) -> ReportPhoto:
    photo = ReportPhoto(
        id=str(uuid.uuid4()),
        report_id=report_id,
        external_image_id=external_image_id,
        url=url,
        created_at=utcnow(),
    )
    await store.create(COLLECTION_REPORT_PHOTOS, photo.id, photo.model_dump(exclude={"id"}))
    logger.info("report.photo_added", report_id=report_id, photo_id=photo.id)
    return photo


async def list_photos(store: DocumentStore, report_id: str) -> list[ReportPhoto]:
    docs = await store.find(COLLECTION_REPORT_PHOTOS, {"report_id": report_id})
    return sorted((ReportPhoto.from_document(d) for d in docs), key=lambda p: p.created_at)


async def first_photos(
    store: DocumentStore, report_ids: Iterable[str]
) -> dict[str, ReportPhoto | None]:
    """Oldest photo per report, for list previews."""
    previews: dict[str, ReportPhoto | None] = {}
    for report_id in report_ids:
        photos = await list_photos(store, report_id)
        previews[report_id] = photos[0] if photos else None
    return previews


# ── Comments ───────────────────────────────────────────────────────────────────
async def add_comment(
    store: DocumentStore,
    report_id: str,
    author_user_id: str,
    body: str,
    is_internal: bool = False,
) -> ReportComment:
    comment = ReportComment(
        id=str(uuid.uuid4()),
        report_id=report_id,
        author_user_id=author_user_id,
        body=body,
        is_internal=is_internal,
        created_at=utcnow(),
    )
    await store.create(
        COLLECTION_REPORT_COMMENTS, comment.id, comment.model_dump(exclude={"id"})
    )
    logger.info(
        "report.comment_added",
        report_id=report_id,
        comment_id=comment.id,
        is_internal=is_internal,
    )
    return comment


async def list_comments(
    store: DocumentStore, report_id: str, include_internal: bool = False
) -> list[ReportComment]:
    filters: dict[str, Any] = {"report_id": report_id}
    if not include_internal:
        filters["is_internal"] = False
    docs = await store.find(COLLECTION_REPORT_COMMENTS, filters)
    return sorted((ReportComment.from_document(d) for d in docs), key=lambda c: c.created_at)


# ── Statistics ─────────────────────────────────────────────────────────────────
def _bucket(count: int, total: int) -> dict[str, Any]:
    percentage = round(count / total * 100, 2) if total else 0
    return {"count": count, "percentage": percentage}


def compute_statistics(reports: Iterable[Report]) -> dict[str, Any]:
    """Counts and percentages per status and per category; every bucket is always present."""
    reports = list(reports)
    total = len(reports)

    by_status = {s.value: 0 for s in ReportStatus}
    by_category = {c.value: 0 for c in ReportCategory}
    for report in reports:
        by_status[report.status.value] += 1
        by_category[report.category.value] += 1

    return {
        "total": total,
        "by_status": {k: _bucket(v, total) for k, v in by_status.items()},
        "by_category": {k: _bucket(v, total) for k, v in by_category.items()},
    }


async def get_statistics(store: DocumentStore, tenant_id: str | None = None) -> dict[str, Any]:
    if tenant_id:
        reports = await list_reports_by_tenant(store, tenant_id)
    else:
        reports = await list_reports(store)
    return compute_statistics(reports)
