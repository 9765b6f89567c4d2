"""
Housing API — issue reporting for residential complexes ("conjuntos")
Firebase Auth · Firestore · RBAC · Rate Limiting · Structured Logging
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from housing_api.core.config import settings
from housing_api.core.database import build_store
from housing_api.core.errors import register_exception_handlers
from housing_api.core.limiter import limiter
from housing_api.core.logging import get_logger, setup_logging
from housing_api.core.security import build_token_verifier
from housing_api.middleware.audit import AuditLogMiddleware
from housing_api.routers import conjuntos, health, reports, users

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the document store and token verifier; release them on shutdown."""
    logger.info(
        "api.startup",
        version=settings.API_VERSION,
        env=settings.ENVIRONMENT,
        store=settings.DOCUMENT_STORE,
        auth=settings.AUTH_PROVIDER,
    )
    app.state.store = await build_store(settings)
    app.state.token_verifier = build_token_verifier(settings)
    logger.info("api.store_ready")
    try:
        yield
    finally:
        await app.state.token_verifier.aclose()
        await app.state.store.close()
        logger.info("api.shutdown")


app = FastAPI(
    title="Housing API",
    description="""
## Conjunto issue reporting

Residents file reports about their residential complex, admins triage them,
and a super administrator provisions conjuntos and reads global statistics.

- **Firebase Auth** — every protected route takes `Authorization: Bearer <ID token>`
- **Role-Based Access Control** — resident → admin → super_admin
- **Tenant isolation** — residents and admins only see their own conjunto
- **Envelope responses** — `{success, data?, error?, details?}`

### Roles

| Role | Rate Limit | Scope |
|------|-----------|-------|
| `resident` | 60/min | Read and file reports in own conjunto |
| `admin` | 300/min | Triage reports, internal comments, access code of own conjunto |
| `super_admin` | unlimited | Every conjunto, users, statistics |
    """,
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuditLogMiddleware)

# ── Rate limiting and error envelope ───────────────────────────────────────────
app.state.limiter = limiter
register_exception_handlers(app)

# ── Routers ────────────────────────────────────────────────────────────────────
prefix = settings.API_PREFIX
app.include_router(health.router, prefix=f"{prefix}/health", tags=["Health"])
app.include_router(conjuntos.router, prefix=f"{prefix}/conjuntos", tags=["Conjuntos"])
app.include_router(reports.router, prefix=f"{prefix}/reports", tags=["Reports"])
app.include_router(users.router, prefix=f"{prefix}/users", tags=["Users"])


@app.get("/", include_in_schema=False)
async def root():
    return {
        "success": True,
        "data": {"name": "Housing API", "version": settings.API_VERSION, "docs": "/docs"},
    }
