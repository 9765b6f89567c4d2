"""
Multi-step client workflows.

join_conjunto: resolve a conjunto by access code, then move the user into it.
submit_report: create a report, then attach photos already uploaded to the
image host. There is no rollback: a failure part-way leaves the report (and
any photos attached so far) in place and is reported through
ReportSubmissionError.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from housing_api.client.api import APIError, HousingAPIClient
from housing_api.core.logging import get_logger
from housing_api.models.report import Report, ReportPhoto
from housing_api.models.tenant import Tenant
from housing_api.models.user import User

logger = get_logger(__name__)


@dataclass(frozen=True)
class UploadedImage:
    external_image_id: str
    url: str


class ReportSubmissionError(Exception):
    def __init__(
        self,
        message: str,
        report: Report | None,
        attached: list[ReportPhoto],
        pending: list[UploadedImage],
    ):
        super().__init__(message)
        self.report = report
        self.attached = attached
        self.pending = pending


async def join_conjunto(
    client: HousingAPIClient, user: User, access_code: str, unit: str | None = None
) -> tuple[User, Tenant]:
    tenant = await client.get_conjunto_by_code(access_code.strip().upper())
    changes = {"tenant_id": tenant.id}
    if unit:
        changes["unit"] = unit.strip()
    updated = await client.update_user(user.id, **changes)
    logger.info("client.conjunto_joined", user_id=user.id, tenant_id=tenant.id)
    return updated, tenant


async def submit_report(
    client: HousingAPIClient,
    title: str,
    description: str,
    category: str,
    location: str = "",
    is_anonymous: bool = False,
    images: Iterable[UploadedImage] = (),
) -> tuple[Report, list[ReportPhoto]]:
    images = list(images)
    try:
        report = await client.create_report(
            title=title,
            description=description,
            category=category,
            location=location,
            is_anonymous=is_anonymous,
        )
    except APIError as exc:
        raise ReportSubmissionError(
            f"Report could not be created: {exc.message}", None, [], images
        ) from exc

    attached: list[ReportPhoto] = []
    for index, image in enumerate(images):
        try:
            attached.append(await client.add_photo(report.id, image.external_image_id, image.url))
        except APIError as exc:
            logger.warning(
                "client.photo_attach_failed",
                report_id=report.id,
                attached=len(attached),
                pending=len(images) - index,
            )
            raise ReportSubmissionError(
                f"Report created but photos could not be attached: {exc.message}",
                report,
                attached,
                images[index:],
            ) from exc

    return report, attached
