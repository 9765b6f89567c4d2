"""
Document store used by the services layer.

Two backends share the DocumentStore contract:
  - FirestoreDocumentStore — production, google-cloud-firestore AsyncClient
  - SQLDocumentStore       — local dev and tests, one JSON table via async SQLAlchemy

The store is built once in the app lifespan (build_store) and handed to
route handlers through the get_store dependency, so tests can swap it.
"""

import inspect
import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from fastapi import Request
from sqlalchemy import JSON, DateTime, String, delete, func, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from housing_api.core.config import Settings
from housing_api.core.logging import get_logger

logger = get_logger(__name__)

# ── Collections ────────────────────────────────────────────────────────────────
COLLECTION_CONJUNTOS = "conjuntos"
COLLECTION_USERS = "users"
COLLECTION_REPORTS = "reports"
COLLECTION_REPORT_PHOTOS = "report_photos"
COLLECTION_REPORT_COMMENTS = "report_comments"

ALL_COLLECTIONS = (
    COLLECTION_CONJUNTOS,
    COLLECTION_USERS,
    COLLECTION_REPORTS,
    COLLECTION_REPORT_PHOTOS,
    COLLECTION_REPORT_COMMENTS,
)


class DocumentExistsError(Exception):
    """Raised by create() when the document id is already taken."""


class DocumentNotFoundError(Exception):
    """Raised by update()/delete() when the document does not exist."""


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: dict[str, Any]


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None: ...

    async def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None: ...

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None: ...

    async def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def find(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]: ...

    async def ping(self) -> None: ...

    async def close(self) -> None: ...


# ── SQL backend ────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Shared declarative base for the SQL document table."""
    pass


class StoredDocument(Base):
    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    stored_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<StoredDocument {self.collection}/{self.id}>"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _json_serializer(obj: Any) -> str:
    return json.dumps(obj, default=_json_default)


def _field_clause(field: str, value: Any):
    # bool before int: bool is an int subclass
    column = StoredDocument.data[field]
    if value is None:
        return column.as_string().is_(None)
    if isinstance(value, bool):
        return column.as_boolean() == value
    if isinstance(value, int):
        return column.as_integer() == value
    if isinstance(value, float):
        return column.as_float() == value
    return column.as_string() == str(value)


class SQLDocumentStore:
    """Documents stored as JSON rows keyed by (collection, id)."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_url(cls, url: str, echo: bool = False, **engine_kwargs: Any) -> "SQLDocumentStore":
        engine = create_async_engine(
            url,
            echo=echo,
            json_serializer=_json_serializer,
            **engine_kwargs,
        )
        return cls(engine)

    async def init_schema(self) -> None:
        """Create the documents table (idempotent)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.tables_created")

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        async with self._sessions() as session:
            row = await session.get(StoredDocument, (collection, doc_id))
            if row is None:
                return None
            return DocumentSnapshot(row.id, dict(row.data))

    async def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        async with self._sessions() as session, session.begin():
            if await session.get(StoredDocument, (collection, doc_id)) is not None:
                raise DocumentExistsError(f"{collection}/{doc_id} already exists")
            session.add(StoredDocument(collection=collection, id=doc_id, data=dict(data)))

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        async with self._sessions() as session, session.begin():
            row = await session.get(StoredDocument, (collection, doc_id))
            if row is None:
                session.add(StoredDocument(collection=collection, id=doc_id, data=dict(data)))
            else:
                row.data = dict(data)

    async def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
        async with self._sessions() as session, session.begin():
            row = await session.get(StoredDocument, (collection, doc_id))
            if row is None:
                raise DocumentNotFoundError(f"{collection}/{doc_id} not found")
            # Reassign so the JSON column is flagged dirty
            row.data = {**row.data, **changes}

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(StoredDocument).where(
                    StoredDocument.collection == collection,
                    StoredDocument.id == doc_id,
                )
            )
            if result.rowcount == 0:
                raise DocumentNotFoundError(f"{collection}/{doc_id} not found")

    async def find(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        stmt = select(StoredDocument).where(StoredDocument.collection == collection)
        for field, value in (filters or {}).items():
            stmt = stmt.where(_field_clause(field, value))
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._sessions() as session:
            result = await session.execute(stmt)
            return [DocumentSnapshot(row.id, dict(row.data)) for row in result.scalars()]

    async def ping(self) -> None:
        async with self._sessions() as session:
            await session.execute(select(1))

    async def close(self) -> None:
        await self._engine.dispose()


# ── Firestore backend ──────────────────────────────────────────────────────────
_FIRESTORE_SCOPE = "https://www.googleapis.com/auth/datastore"


def _firestore_credentials(settings: Settings):
    """Service account credentials from a key file or the discrete env vars."""
    from google.oauth2 import service_account

    if settings.FIREBASE_SERVICE_ACCOUNT_PATH:
        return service_account.Credentials.from_service_account_file(
            settings.FIREBASE_SERVICE_ACCOUNT_PATH, scopes=[_FIRESTORE_SCOPE]
        )
    info = {
        "type": "service_account",
        "project_id": settings.FIREBASE_PROJECT_ID,
        "client_email": settings.FIREBASE_CLIENT_EMAIL,
        "private_key": settings.firebase_private_key(),
        "token_uri": "https://oauth2.googleapis.com/token",
    }
    return service_account.Credentials.from_service_account_info(info, scopes=[_FIRESTORE_SCOPE])


class FirestoreDocumentStore:
    """Thin adapter over google.cloud.firestore.AsyncClient."""

    def __init__(self, client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirestoreDocumentStore":
        from google.cloud import firestore

        client = firestore.AsyncClient(
            project=settings.FIREBASE_PROJECT_ID,
            credentials=_firestore_credentials(settings),
        )
        logger.info("firestore.client_ready", project_id=settings.FIREBASE_PROJECT_ID)
        return cls(client)

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        snapshot = await self._client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return DocumentSnapshot(snapshot.id, snapshot.to_dict() or {})

    async def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        from google.api_core.exceptions import AlreadyExists, Conflict

        try:
            await self._client.collection(collection).document(doc_id).create(dict(data))
        except (AlreadyExists, Conflict) as exc:
            raise DocumentExistsError(f"{collection}/{doc_id} already exists") from exc

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        await self._client.collection(collection).document(doc_id).set(dict(data))

    async def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
        from google.api_core.exceptions import NotFound

        try:
            await self._client.collection(collection).document(doc_id).update(dict(changes))
        except NotFound as exc:
            raise DocumentNotFoundError(f"{collection}/{doc_id} not found") from exc

    async def delete(self, collection: str, doc_id: str) -> None:
        ref = self._client.collection(collection).document(doc_id)
        snapshot = await ref.get()
        if not snapshot.exists:
            raise DocumentNotFoundError(f"{collection}/{doc_id} not found")
        await ref.delete()

    async def find(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        from google.cloud.firestore_v1.base_query import FieldFilter

        query = self._client.collection(collection)
        for field, value in (filters or {}).items():
            query = query.where(filter=FieldFilter(field, "==", value))
        if limit is not None:
            query = query.limit(limit)
        return [
            DocumentSnapshot(snapshot.id, snapshot.to_dict() or {})
            async for snapshot in query.stream()
        ]

    async def ping(self) -> None:
        async for _ in self._client.collection(COLLECTION_CONJUNTOS).limit(1).stream():
            break

    async def close(self) -> None:
        result = self._client.close()
        if inspect.isawaitable(result):
            await result


# ── Wiring ─────────────────────────────────────────────────────────────────────
async def build_store(settings: Settings) -> DocumentStore:
    """Construct the configured backend (called once from the app lifespan)."""
    if settings.DOCUMENT_STORE == "sql":
        store = SQLDocumentStore.from_url(settings.DATABASE_URL, echo=settings.DEBUG)
        await store.init_schema()
        return store
    return FirestoreDocumentStore.from_settings(settings)


def get_store(request: Request) -> DocumentStore:
    """FastAPI dependency returning the store built at startup."""
    return request.app.state.store
