"""
Report, photo and comment models.

A report's tenant_id is fixed at creation to the author's conjunto.
author_user_id is always stored; is_anonymous only hides it in the UI.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from housing_api.core.database import DocumentSnapshot
from housing_api.models.tenant import utcnow


class ReportCategory(str, Enum):
    INFRASTRUCTURE = "infrastructure"
    SECURITY = "security"
    CLEANING = "cleaning"
    COMMUNITY = "community"
    OTHER = "other"


class ReportStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ReportPhoto(BaseModel):
    id: str
    report_id: str
    external_image_id: str
    url: str
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_document(cls, doc: DocumentSnapshot) -> "ReportPhoto":
        data = doc.data
        return cls(
            id=doc.id,
            report_id=data.get("report_id", ""),
            external_image_id=data.get("external_image_id", ""),
            url=data.get("url", ""),
            created_at=data.get("created_at") or utcnow(),
        )


class ReportComment(BaseModel):
    id: str
    report_id: str
    author_user_id: str
    body: str
    is_internal: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_document(cls, doc: DocumentSnapshot) -> "ReportComment":
        data = doc.data
        return cls(
            id=doc.id,
            report_id=data.get("report_id", ""),
            author_user_id=data.get("author_user_id", ""),
            body=data.get("body", ""),
            is_internal=bool(data.get("is_internal", False)),
            created_at=data.get("created_at") or utcnow(),
        )


class Report(BaseModel):
    id: str
    tenant_id: str
    author_user_id: str
    title: str
    description: str
    category: ReportCategory
    location: str = ""
    status: ReportStatus = ReportStatus.OPEN
    is_anonymous: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: DocumentSnapshot) -> "Report":
        data = doc.data
        return cls(
            id=doc.id,
            tenant_id=data.get("tenant_id", ""),
            author_user_id=data.get("author_user_id", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            category=data.get("category") or ReportCategory.OTHER,
            location=data.get("location") or "",
            status=data.get("status") or ReportStatus.OPEN,
            is_anonymous=bool(data.get("is_anonymous", False)),
            created_at=data.get("created_at") or utcnow(),
            updated_at=data.get("updated_at"),
        )

    def __repr__(self) -> str:
        return f"<Report id={self.id} status={self.status.value} tenant={self.tenant_id}>"


class ReportListItem(Report):
    first_photo: ReportPhoto | None = None


class ReportDetail(Report):
    photos: list[ReportPhoto] = []
    comments: list[ReportComment] = []
