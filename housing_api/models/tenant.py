"""
Tenant ("conjunto") model — a residential complex scoping users and reports.

Residents join a conjunto by presenting its 10-character access code.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from housing_api.core.database import DocumentSnapshot


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tenant(BaseModel):
    id: str
    name: str
    address: str
    city: str
    access_code: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: DocumentSnapshot) -> "Tenant":
        data = doc.data
        return cls(
            id=doc.id,
            name=data.get("name", ""),
            address=data.get("address", ""),
            city=data.get("city", ""),
            access_code=data.get("access_code", ""),
            created_at=data.get("created_at") or utcnow(),
            updated_at=data.get("updated_at"),
        )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name}>"
