"""
Main FastAPI application for the BigWin admin backend.
Configures the API server with routes, middleware, background watchers
and the admin WebSocket channel.
"""

from typing import Optional

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import structlog

from bigwin_admin.core.config import settings
from bigwin_admin.core.logging import setup_logging
from bigwin_admin.core.database import init_database, close_database, DatabaseManager
from bigwin_admin.core.exceptions import BigWinAdminException
from bigwin_admin.api.middleware import add_middleware
from bigwin_admin.api.schemas.common import (
    HealthCheckResponse, SuccessResponse, create_error_response, field_errors
)
from bigwin_admin.api.routes import games, withdrawals, users, wallets
from bigwin_admin.services.approval_service import ApprovalService
from bigwin_admin.services.withdrawal_service import WithdrawalService
from bigwin_admin.services.credentials_notifier import CredentialsNotifier
from bigwin_admin.services.email_service import EmailService
from bigwin_admin.watcher.change_notifier import ChangeNotifier
from bigwin_admin.watcher.sources import ChangeSource, create_change_source
from bigwin_admin.websocket.connection_manager import ConnectionManager
from bigwin_admin.websocket.broadcaster import Broadcaster
from bigwin_admin.websocket.websocket_handler import AdminWebSocketHandler, connection_stats


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting BigWin admin API server")

    owns_database = app.state.session_maker is None
    if owns_database:
        await init_database()

    if settings.websocket_enabled:
        await app.state.change_notifier.start()

    yield

    logger.info("Shutting down BigWin admin API server")

    try:
        await app.state.change_notifier.stop()
        await app.state.credentials_notifier.drain()
        await app.state.connection_manager.close_all()
    except Exception as e:
        logger.error("Error during shutdown", error=str(e))

    if owns_database:
        await close_database()


def error_response(exc: BigWinAdminException) -> JSONResponse:
    body = create_error_response(exc.message, exc.code, exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


def add_exception_handlers(app: FastAPI) -> None:
    """Render every error in the common envelope."""

    @app.exception_handler(BigWinAdminException)
    async def handle_app_error(request: Request, exc: BigWinAdminException):
        log = logger.warning if exc.status_code < 500 else logger.error
        log("Request rejected", code=exc.code, message=exc.message)
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        body = create_error_response(
            "Request validation failed",
            "VALIDATION_ERROR",
            {"errors": [e.model_dump() for e in field_errors(exc.errors())]}
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=body.model_dump(mode="json")
        )


def create_app(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    change_source: Optional[ChangeSource] = None,
    email_service: Optional[EmailService] = None,
    configure_logging: bool = True
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    A session maker may be injected (tests); otherwise the global database
    is initialized on startup from settings.
    """
    if configure_logging:
        setup_logging(settings.log_file)

    app = FastAPI(
        title="BigWin Admin API",
        description="""
        Back-office API for the BigWin gaming platform.

        ## Authentication

        ```
        Authorization: Bearer <admin-api-key>
        ```

        Admins only see and act on users assigned to them; superadmins are
        unrestricted.

        ## Real-time updates

        Connect to `/ws/admin`, send `{"type": "authenticate", "data": {"token": "..."}}`
        and receive `pendingWithdrawals`, `gameProfiles` and `gameStatistics`
        snapshots on connect and after every relevant change.
        """,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # Shared services and registries
    credentials_notifier = CredentialsNotifier(email_service)
    connection_manager = ConnectionManager()
    broadcaster = Broadcaster(connection_manager, session_maker)

    app.state.session_maker = session_maker
    app.state.credentials_notifier = credentials_notifier
    app.state.connection_manager = connection_manager
    app.state.broadcaster = broadcaster
    app.state.approval_service = ApprovalService(session_maker, credentials_notifier)
    app.state.withdrawal_service = WithdrawalService(session_maker)
    app.state.websocket_handler = AdminWebSocketHandler(connection_manager, broadcaster, session_maker)
    app.state.change_notifier = ChangeNotifier(
        change_source or create_change_source(),
        broadcaster.handle_change
    )

    add_middleware(app)
    add_exception_handlers(app)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check",
        description="Check API server health and service status"
    )
    async def health_check():
        """Health check endpoint."""
        database_ok = await DatabaseManager.health_check(app.state.session_maker)
        notifier = app.state.change_notifier

        services = {
            "database": "healthy" if database_ok else "unhealthy",
            "api": "healthy",
            "change_watcher": notifier.status.value,
        }

        if not database_ok:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unhealthy", "services": services}
            )

        return HealthCheckResponse(
            status="healthy",
            version=settings.app_version,
            services=services
        )

    @app.get(
        "/",
        response_model=SuccessResponse,
        tags=["System"],
        summary="API Information"
    )
    async def root():
        """Root endpoint with API information."""
        return SuccessResponse(
            message=f"BigWin Admin API v{settings.app_version}",
            data={
                "version": settings.app_version,
                "environment": settings.environment,
                "websocket": "/ws/admin",
            }
        )

    @app.get("/ws/stats", tags=["WebSocket"])
    async def websocket_stats():
        return connection_stats(app.state.connection_manager)

    @app.websocket("/ws/admin")
    async def admin_websocket(websocket: WebSocket):
        await app.state.websocket_handler.handle(
            websocket,
            websocket.query_params.get("client_id")
        )

    app.include_router(
        games.router,
        prefix=f"{settings.api_v1_prefix}/admin/games",
        tags=["Admin Games"]
    )

    app.include_router(
        withdrawals.router,
        prefix=f"{settings.api_v1_prefix}/admin/withdrawals",
        tags=["Admin Withdrawals"]
    )

    app.include_router(
        users.router,
        prefix=f"{settings.api_v1_prefix}/users",
        tags=["Users"]
    )

    app.include_router(
        wallets.router,
        prefix=f"{settings.api_v1_prefix}/wallets",
        tags=["Wallets"]
    )

    logger.info("FastAPI application created successfully")
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bigwin_admin.api.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
