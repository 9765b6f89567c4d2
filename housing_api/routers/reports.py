"""
Reports router — issue reports, their photos and comments, and statistics.

Permission matrix:
  GET  /reports                      → super_admin (all), others (own conjunto; mine=true → own reports)
  GET  /reports/statistics           → super_admin
  GET  /reports/{id}                 → members of the report's conjunto, super_admin
  POST /reports                      → any member of a conjunto
  PUT  /reports/{id}                 → admin (own conjunto), super_admin
  GET  /reports/{id}/photos          → members of the report's conjunto, super_admin
  POST /reports/{id}/photos          → report author, admin (own conjunto), super_admin
  GET  /reports/{id}/comments        → members; internal comments only for admin tier
  POST /reports/{id}/comments        → members; only admin tier may post internal comments
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from housing_api.core.authz import (
    Caller,
    forbidden,
    get_caller,
    require_role,
    require_same_tenant,
)
from housing_api.core.database import DocumentStore, get_store
from housing_api.core.errors import Envelope, ListEnvelope, ok, ok_list
from housing_api.core.limiter import get_role_limit, limiter
from housing_api.core.logging import get_logger
from housing_api.core.security import Role
from housing_api.models.report import (
    Report,
    ReportCategory,
    ReportComment,
    ReportDetail,
    ReportListItem,
    ReportPhoto,
    ReportStatus,
)
from housing_api.services.report_service import (
    ReportNotFoundError,
    add_comment,
    add_photo,
    create_report,
    first_photos,
    get_report_by_id,
    get_statistics,
    list_comments,
    list_photos,
    list_reports,
    list_reports_by_author,
    list_reports_by_tenant,
    update_report,
)

router = APIRouter()
logger = get_logger(__name__)


# ── Schemas ────────────────────────────────────────────────────────────────────
class CreateReportRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    category: ReportCategory
    location: str = Field(default="", max_length=300)
    is_anonymous: bool = False


class UpdateReportRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1, max_length=5000)
    category: ReportCategory | None = None
    location: str | None = Field(default=None, max_length=300)
    status: ReportStatus | None = None
    is_anonymous: bool | None = None


class AddPhotoRequest(BaseModel):
    external_image_id: str = Field(min_length=1, max_length=300)
    url: str = Field(min_length=1, max_length=2000)


class AddCommentRequest(BaseModel):
    body: str = Field(min_length=1, max_length=5000)
    is_internal: bool = False


class Bucket(BaseModel):
    count: int
    percentage: float


class StatisticsResponse(BaseModel):
    total: int
    by_status: dict[str, Bucket]
    by_category: dict[str, Bucket]


async def _load_report(store: DocumentStore, caller: Caller, report_id: str) -> Report:
    """Fetch a report the caller may see: 404 if absent, 403 if in another conjunto."""
    report = await get_report_by_id(store, report_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    require_same_tenant(
        caller,
        report.tenant_id,
        "You can only access reports from your own conjunto",
    )
    return report


async def _with_previews(store: DocumentStore, reports: list[Report]) -> list[ReportListItem]:
    previews = await first_photos(store, [r.id for r in reports])
    return [
        ReportListItem(**r.model_dump(), first_photo=previews.get(r.id))
        for r in reports
    ]


# ── Reports ────────────────────────────────────────────────────────────────────
@router.get(
    "",
    response_model=ListEnvelope[ReportListItem],
    summary="List reports visible to the caller",
)
@limiter.limit(get_role_limit)
async def list_visible_reports(
    request: Request,
    mine: bool = Query(default=False, description="Only reports filed by the caller"),
    conjunto_id: str | None = Query(default=None, description="super_admin only: filter by conjunto"),
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    if mine:
        reports = await list_reports_by_author(store, caller.id)
    elif caller.is_super_admin:
        if conjunto_id:
            reports = await list_reports_by_tenant(store, conjunto_id)
        else:
            reports = await list_reports(store)
    elif caller.tenant_id is None:
        reports = []
    else:
        reports = await list_reports_by_tenant(store, caller.tenant_id)

    return ok_list(await _with_previews(store, reports))


@router.get(
    "/statistics",
    response_model=Envelope[StatisticsResponse],
    summary="Report counts by status and category (super_admin only)",
)
@limiter.limit(get_role_limit)
async def report_statistics(
    request: Request,
    conjunto_id: str | None = Query(default=None),
    caller: Caller = Depends(require_role(Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    stats = await get_statistics(store, tenant_id=conjunto_id)
    logger.info("reports.statistics", tenant_id=conjunto_id, total=stats["total"])
    return ok(StatisticsResponse(**stats))


@router.get(
    "/{report_id}",
    response_model=Envelope[ReportDetail],
    summary="Get a report with its photos and comments",
)
@limiter.limit(get_role_limit)
async def get_report(
    request: Request,
    report_id: str,
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    report = await _load_report(store, caller, report_id)
    photos = await list_photos(store, report.id)
    comments = await list_comments(store, report.id, include_internal=caller.is_admin_tier)
    return ok(ReportDetail(**report.model_dump(), photos=photos, comments=comments))


@router.post(
    "",
    response_model=Envelope[Report],
    status_code=status.HTTP_201_CREATED,
    summary="File a report in the caller's conjunto",
)
@limiter.limit(get_role_limit)
async def file_report(
    request: Request,
    body: CreateReportRequest,
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    if caller.tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You must join a conjunto before filing reports",
        )

    report = await create_report(
        store,
        tenant_id=caller.tenant_id,
        author_user_id=caller.id,
        title=body.title,
        description=body.description,
        category=body.category,
        location=body.location,
        is_anonymous=body.is_anonymous,
    )
    return ok(report)


@router.put(
    "/{report_id}",
    response_model=Envelope[Report],
    summary="Update a report (admin of the conjunto, super_admin)",
)
@limiter.limit(get_role_limit)
async def edit_report(
    request: Request,
    report_id: str,
    body: UpdateReportRequest,
    caller: Caller = Depends(require_role(Role.ADMIN, Role.SUPER_ADMIN)),
    store: DocumentStore = Depends(get_store),
):
    await _load_report(store, caller, report_id)
    try:
        report = await update_report(
            store, report_id, body.model_dump(exclude_unset=True), updated_by=caller.id
        )
    except ReportNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return ok(report)


# ── Photos ─────────────────────────────────────────────────────────────────────
@router.get(
    "/{report_id}/photos",
    response_model=ListEnvelope[ReportPhoto],
    summary="List a report's photos",
)
@limiter.limit(get_role_limit)
async def get_report_photos(
    request: Request,
    report_id: str,
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    await _load_report(store, caller, report_id)
    return ok_list(await list_photos(store, report_id))


@router.post(
    "/{report_id}/photos",
    response_model=Envelope[ReportPhoto],
    status_code=status.HTTP_201_CREATED,
    summary="Attach an uploaded image to a report",
)
@limiter.limit(get_role_limit)
async def attach_photo(
    request: Request,
    report_id: str,
    body: AddPhotoRequest,
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    report = await _load_report(store, caller, report_id)
    if report.author_user_id != caller.id and not caller.is_admin_tier:
        raise forbidden(caller, "Only the author or an admin can add photos", report_id=report_id)

    photo = await add_photo(store, report_id, body.external_image_id, body.url)
    return ok(photo)


# ── Comments ───────────────────────────────────────────────────────────────────
@router.get(
    "/{report_id}/comments",
    response_model=ListEnvelope[ReportComment],
    summary="List a report's comments",
)
@limiter.limit(get_role_limit)
async def get_report_comments(
    request: Request,
    report_id: str,
    include_internal: bool = Query(default=False),
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    await _load_report(store, caller, report_id)
    comments = await list_comments(
        store, report_id, include_internal=include_internal and caller.is_admin_tier
    )
    return ok_list(comments)


@router.post(
    "/{report_id}/comments",
    response_model=Envelope[ReportComment],
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a report",
)
@limiter.limit(get_role_limit)
async def post_comment(
    request: Request,
    report_id: str,
    body: AddCommentRequest,
    caller: Caller = Depends(get_caller),
    store: DocumentStore = Depends(get_store),
):
    await _load_report(store, caller, report_id)
    # Residents cannot post internal notes; the flag is dropped rather than rejected
    is_internal = body.is_internal and caller.is_admin_tier
    comment = await add_comment(
        store, report_id, author_user_id=caller.id, body=body.body, is_internal=is_internal
    )
    return ok(comment)
