"""
HTTP middleware: request context for logs, per-admin rate limiting and
response headers.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict
from datetime import datetime
from uuid import uuid4

from fastapi import FastAPI, Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

import structlog

from bigwin_admin.admin.admin_auth import hash_api_key
from bigwin_admin.core.config import settings


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Never throttled
EXEMPT_PATHS = ("/health", "/ws/")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Bind request_id, method and path into the structlog context for the
    duration of a request and log its outcome.

    An incoming X-Request-ID header is reused so admin dashboard calls can
    be traced end to end; otherwise a new id is generated.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                error=str(e),
                error_type=e.__class__.__name__,
                process_time=round(time.perf_counter() - start_time, 4),
            )
            response = JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": "INTERNAL_SERVER_ERROR",
                    "message": "An internal server error occurred",
                    "details": {"request_id": request_id},
                    "timestamp": datetime.utcnow().isoformat()
                }
            )
        else:
            logger.info(
                "Request completed",
                status_code=response.status_code,
                process_time=round(time.perf_counter() - start_time, 4),
            )
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RateLimitingMiddleware(BaseHTTPMiddleware):
    """Sliding-window limit per admin API key, or per client IP when anonymous."""

    def __init__(self, app: FastAPI, max_requests: int = 100, window_seconds: int = 60):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: Dict[str, Deque[float]] = {}

    def _get_client_key(self, request: Request) -> str:
        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith("Bearer ") and auth_header[7:].strip():
            return f"admin:{hash_api_key(auth_header[7:].strip())[:16]}"

        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _hits(self, client_key: str, now: float) -> Deque[float]:
        hits = self.requests.setdefault(client_key, deque())
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()
        return hits

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(EXEMPT_PATHS):
            return await call_next(request)

        client_key = self._get_client_key(request)
        now = time.monotonic()
        hits = self._hits(client_key, now)

        if len(hits) >= self.max_requests:
            retry_after = max(1, int(hits[0] + self.window_seconds - now))
            logger.warning("Rate limit exceeded", client_key=client_key, path=request.url.path)

            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "success": False,
                    "error": "RATE_LIMIT_EXCEEDED",
                    "message": f"Rate limit exceeded. Max {self.max_requests} requests per {self.window_seconds} seconds",
                    "details": {"retry_after": retry_after},
                    "timestamp": datetime.utcnow().isoformat()
                },
                headers={
                    "X-RateLimit-Limit": str(self.max_requests),
                    "Retry-After": str(retry_after)
                }
            )

        hits.append(now)
        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.max_requests - len(hits)))
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Security headers; admin API responses carry balances and are never cached."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["X-API-Version"] = settings.app_version
        if request.url.path.startswith(settings.api_v1_prefix):
            response.headers["Cache-Control"] = "no-store"

        return response


def add_middleware(app: FastAPI) -> None:
    """Install middleware. The last one added runs first."""
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
            expose_headers=[REQUEST_ID_HEADER],
        )

    app.add_middleware(SecurityHeadersMiddleware)

    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitingMiddleware,
            max_requests=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window
        )

    app.add_middleware(RequestContextMiddleware)

    logger.info("Middleware configured", rate_limit=settings.rate_limit_enabled)
