"""
Shared fixtures.

The app runs against an in-memory SQLite document store and local HS256
tokens, injected through app.dependency_overrides (ASGITransport does not run
the lifespan that would otherwise build them).
"""

import os

os.environ.update(
    {
        "ENVIRONMENT": "development",
        "CORS_ORIGINS": '["http://localhost:3000"]',
        "AUTH_PROVIDER": "local",
        "DOCUMENT_STORE": "sql",
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "JWT_SECRET_KEY": "test-secret-key-not-for-production",
        "RATE_LIMIT_ENABLED": "false",
        "SUPER_ADMIN_EMAILS": '["boss@housing.test"]',
        "LOG_LEVEL": "WARNING",
    }
)

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from housing_api.core.config import settings  # noqa: E402
from housing_api.core.database import SQLDocumentStore, get_store  # noqa: E402
from housing_api.core.security import LocalTokenVerifier, Role, get_token_verifier  # noqa: E402
from housing_api.main import app  # noqa: E402
from housing_api.models.tenant import Tenant  # noqa: E402
from housing_api.services.tenant_service import create_tenant  # noqa: E402
from helpers import make_user  # noqa: E402


# ── Store and app wiring ───────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def store():
    store = SQLDocumentStore.from_url(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await store.init_schema()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def client(store):
    verifier = LocalTokenVerifier(settings.JWT_SECRET_KEY, settings.JWT_ALGORITHM)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_token_verifier] = lambda: verifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Seed data ──────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def conjunto_a(store) -> Tenant:
    return await create_tenant(store, "Torres del Parque", "Cra 5 #26-10", "Bogotá")


@pytest_asyncio.fixture
async def conjunto_b(store) -> Tenant:
    return await create_tenant(store, "Reserva del Lago", "Calle 80 #12-40", "Medellín")


@pytest_asyncio.fixture
async def resident_a(store, conjunto_a):
    return await make_user(store, "resident-a", Role.RESIDENT, conjunto_a, unit="T1-101")


@pytest_asyncio.fixture
async def resident_b(store, conjunto_b):
    return await make_user(store, "resident-b", Role.RESIDENT, conjunto_b, unit="B-202")


@pytest_asyncio.fixture
async def admin_a(store, conjunto_a):
    return await make_user(store, "admin-a", Role.ADMIN, conjunto_a)


@pytest_asyncio.fixture
async def admin_b(store, conjunto_b):
    return await make_user(store, "admin-b", Role.ADMIN, conjunto_b)


@pytest_asyncio.fixture
async def super_admin(store):
    return await make_user(store, "super-admin", Role.SUPER_ADMIN, None)


@pytest_asyncio.fixture
async def newcomer(store):
    return await make_user(store, "newcomer", Role.RESIDENT, None)

