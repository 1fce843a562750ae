"""HTTP middleware: request correlation, access logging and response headers"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.core.logging import get_logger, correlation_id_var

logger = get_logger(__name__)

# Load balancers poll these every few seconds
_QUIET_PATHS = frozenset({"/health", "/health/ready"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with a correlation id (the caller's X-Request-ID, or a
    new one), time it, and write one access log line per request.

    The id is echoed back in X-Request-ID so a scheduler calling
    /admin/process-bills can match its run against our logs.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = correlation_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            if request.url.path not in _QUIET_PATHS:
                level = "warning" if response.status_code >= 500 else "info"
                getattr(logger, level)(
                    f"{request.method} {request.url.path} {response.status_code}",
                    extra={
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": response.status_code,
                        "duration_ms": round(elapsed * 1000, 2),
                        "org_header": request.headers.get("X-Org-ID"),
                        "via_job_token": "X-Job-Token" in request.headers,
                    },
                )
        finally:
            correlation_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.6f}"
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers; API responses are marked no-store"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if not settings.is_development:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        if request.url.path.startswith(settings.API_V1_PREFIX):
            response.headers["Cache-Control"] = "no-store"
        return response
