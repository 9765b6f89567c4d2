"""
User model.

Tenant isolation: every resident and admin belongs to at most one conjunto
(tenant_id is None until they join one). super_admin users are global.
The document id is the identity provider's uid.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from housing_api.core.database import DocumentSnapshot
from housing_api.core.security import Role
from housing_api.models.tenant import utcnow


class User(BaseModel):
    id: str
    auth_id: str
    email: str
    display_name: str
    tenant_id: str | None = None
    unit: str | None = None
    role: Role = Role.RESIDENT
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_document(cls, doc: DocumentSnapshot) -> "User":
        data = doc.data
        return cls(
            id=doc.id,
            auth_id=data.get("auth_id") or doc.id,
            email=data.get("email", ""),
            display_name=data.get("display_name") or "",
            tenant_id=data.get("tenant_id") or None,
            unit=data.get("unit") or None,
            role=data.get("role") or Role.RESIDENT,
            created_at=data.get("created_at") or utcnow(),
            updated_at=data.get("updated_at") or data.get("created_at") or utcnow(),
        )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role.value}>"
