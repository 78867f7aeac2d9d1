# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the Users API.
# It configures the FastAPI application with the database startup sync,
# routers, and exception handlers.
#
# Usage:
#   uvicorn app.main:app --port 3000
#   python -m app.main
# =============================================================================

import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app import __version__
from app.config import Settings, settings
from app.exceptions import (
    UserServiceException,
    user_service_exception_handler,
    validation_exception_handler,
)
from app.routers import health, users
from core.services import ConnectionStateHolder, RetryPolicy, StartupSequencer, UserService
from lib.database import Database

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


async def _wait_interruptibly(task: asyncio.Task) -> None:
    """
    Await a startup task while SIGINT/SIGTERM stay effective.

    The server does not act on signals until startup returns, so for the
    duration of the wait a shutdown signal cancels the task instead. The
    previous handlers are put back afterwards and the signal is re-raised
    so the server (or the default action) still sees it.
    """
    loop = asyncio.get_running_loop()
    previous = {}
    received: list[signal.Signals] = []

    def interrupt(signum: signal.Signals) -> None:
        received.append(signum)
        task.cancel()

    for signum in _SHUTDOWN_SIGNALS:
        handler = signal.getsignal(signum)
        try:
            loop.add_signal_handler(signum, interrupt, signum)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not the main thread, or a platform without loop signal support
            continue
        previous[signum] = handler

    try:
        await task
    except asyncio.CancelledError:
        if not received:
            raise
        logger.warning(f"Received {received[0].name} during database sync, shutting down")
    finally:
        for signum, handler in previous.items():
            loop.remove_signal_handler(signum)
            if handler is not None:
                signal.signal(signum, handler)

    if received:
        signal.raise_signal(received[0])


def create_app(
    app_settings: Settings | None = None,
    database: Database | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: Settings to use (defaults to the global settings)
        database: Data layer to use (defaults to one built from settings)
        sleep: Wait used between sync attempts
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        - Startup: run the database sync, either before serving
          (DB_SYNC_BLOCKING) or as a background task
        - Shutdown: stop a sync still in progress, close the pool
        """
        db = database or Database.from_settings(app_settings)
        state = ConnectionStateHolder()
        sequencer = StartupSequencer(
            db, state, RetryPolicy.from_settings(app_settings), sleep=sleep
        )

        app.state.settings = app_settings
        app.state.database = db
        app.state.connection_state = state
        app.state.user_service = UserService(db, state)

        logger.info(f"Starting Users API in {app_settings.ENVIRONMENT} mode")

        sync_task = asyncio.create_task(sequencer.run())
        if app_settings.DB_SYNC_BLOCKING:
            await _wait_interruptibly(sync_task)

        yield

        # Shutdown
        logger.info("Shutting down Users API")
        if not sync_task.done():
            sync_task.cancel()
            try:
                await sync_task
            except asyncio.CancelledError:
                pass
        db.dispose()

    app = FastAPI(
        title="Users API",
        description="""
## Users CRUD API

A single `User` resource (`id`, `name`, `email`, `createdAt`, `updatedAt`)
stored in MySQL.

The service starts serving before the database is necessarily up.
Until `GET /health/ready` reports `ready`, the `/users` routes answer 503.
""",
        version=__version__,
        docs_url="/docs" if app_settings.DOCS_ENABLED else None,
        redoc_url="/redoc" if app_settings.DOCS_ENABLED else None,
        openapi_url="/openapi.json" if app_settings.DOCS_ENABLED else None,
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "Users",
                "description": "Create, read, update and delete users",
            },
            {
                "name": "Health",
                "description": "API health and readiness checks",
            },
        ],
    )

    # =========================================================================
    # Exception Handlers
    # =========================================================================

    app.add_exception_handler(UserServiceException, user_service_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    @app.exception_handler(Exception)
    async def handle_general_exception(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception(f"Unexpected error: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "message": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            }
        )

    # =========================================================================
    # Routers
    # =========================================================================

    # Health check endpoints
    app.include_router(health.router, tags=["Health"])

    # User endpoints
    app.include_router(users.router, prefix="/users", tags=["Users"])

    # =========================================================================
    # Root Endpoint
    # =========================================================================

    @app.get("/", tags=["Root"])
    async def root():
        """
        Root endpoint - returns API info.
        """
        return {
            "message": "Welcome to the Users API!",
            "version": __version__,
            "docs": "/docs" if app_settings.DOCS_ENABLED else None,
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
