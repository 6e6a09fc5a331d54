############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# main.py: FastAPI application entry point and configuration
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""FastAPI application entry point."""

import asyncio
import contextlib
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.api import api_router
from backend.app.db.session import Database
from backend.app.logging_config import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from backend.app.security.sessions import SessionManager, run_session_sweeper
from backend.app.services.accounts import AccountService
from backend.app.services.approval import ApprovalEngine
from backend.app.services.duplicates import DuplicateChecker
from backend.app.services.ledger import RequestLedger
from backend.app.services.notifier import EmailNotifier, NullNotifier
from backend.app.settings import Settings, get_settings

# Setup logging first
setup_logging()
logger = get_logger(__name__)


def init_services(app: FastAPI, database: Database, settings: Settings) -> None:
    """Build the application's services around one database handle."""
    notifier = EmailNotifier(database, settings) if settings.email_enabled else NullNotifier()

    app.state.settings = settings
    app.state.database = database
    app.state.session_manager = SessionManager.from_settings(database, settings)
    app.state.accounts = AccountService(database, password_min_length=settings.password_min_length)
    app.state.ledger = RequestLedger(database, tracking_id_attempts=settings.tracking_id_attempts)
    app.state.duplicates = DuplicateChecker(database)
    app.state.notifier = notifier
    app.state.approval = ApprovalEngine(database, notifier=notifier)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    database: Database = app.state.database
    logger.info("Starting LAB Chain directory...")

    if settings.auto_create_tables:
        await database.create_all()

    sweeper: Optional[asyncio.Task] = None
    if settings.session_cleanup_interval > 0:
        sweeper = asyncio.create_task(
            run_session_sweeper(app.state.session_manager, settings.session_cleanup_interval)
        )

    logger.info("LAB Chain directory started successfully")

    yield

    # Shutdown
    logger.info("Shutting down LAB Chain directory...")
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await database.dispose()
    logger.info("LAB Chain directory shutdown complete")


class RequestIDMiddleware:
    """Raw ASGI middleware for request ID injection.

    Unlike @app.middleware("http") which wraps in BaseHTTPMiddleware,
    this does NOT run the handler in a separate task, so client disconnects
    won't cancel in-flight DB operations and leak connections.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # Extract request ID from headers
        headers = dict(scope.get("headers", []))
        request_id = (
            headers.get(b"x-request-id", b"").decode()
            or str(uuid.uuid4())
        )

        bind_request_context(request_id=request_id)

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                # Inject X-Request-ID into response headers
                response_headers = list(message.get("headers", []))
                response_headers.append(
                    (b"x-request-id", request_id.encode())
                )
                message = {**message, "headers": response_headers}
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            clear_request_context()


def create_app(
    database: Optional[Database] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Tests pass their own ``database``; otherwise one is built from settings.
    """
    settings = settings or get_settings()
    database = database or Database.from_settings(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="LAB Chain network directory, node submissions and token faucet",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    init_services(app, database, settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware, raw ASGI so client disconnects cannot cancel DB work
    app.add_middleware(RequestIDMiddleware)

    # Exception handlers
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.exception("unhandled_exception", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"error": {"message": "Internal server error", "type": "server_error"}},
        )

    # Include routers
    app.include_router(api_router)

    return app


# Create application instance
app = create_app()


def main():
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "backend.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
