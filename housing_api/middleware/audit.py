"""
Access log middleware — one structured entry per request.

Each entry carries request_id (also returned as X-Request-ID), method, path,
status_code, duration_ms, and the caller's tenant_id / user_id / user_role
when get_caller resolved them during the request.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from housing_api.core.config import settings
from housing_api.core.logging import bind_request_context, clear_request_context, get_logger

logger = get_logger(__name__)

_HEALTH = f"{settings.API_PREFIX}/health"
SKIP_PATHS = {
    _HEALTH,
    f"{_HEALTH}/live",
    f"{_HEALTH}/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
}


class AuditLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        clear_request_context()
        bind_request_context(request_id=request_id, method=request.method, path=request.url.path)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http.request_failed",
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

        response.headers["X-Request-ID"] = request_id

        if request.url.path in SKIP_PATHS:
            return response

        log_fn = logger.warning if response.status_code >= 400 else logger.info
        log_fn(
            "http.request",
            query=str(request.query_params) or None,
            status_code=response.status_code,
            duration_ms=duration_ms,
            tenant_id=getattr(request.state, "tenant_id", None),
            user_id=getattr(request.state, "user_id", None),
            user_role=getattr(request.state, "user_role", None),
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

        return response
