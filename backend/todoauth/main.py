"""Todo Auth Service - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from todoauth.api import api_router
from todoauth.api.deps import get_token_codec
from todoauth.api.errors import register_exception_handlers
from todoauth.core import async_session_maker, settings
from todoauth.core.logging import get_logger
from todoauth.core.shared_lifespan import (
    common_shutdown,
    common_startup,
    refresh_token_cleanup_loop,
    task_done_callback,
)
from todoauth.middleware import SecurityHeadersMiddleware

# Import all models to ensure they're registered with Base for Alembic
from todoauth.models import RefreshToken, User  # noqa: F401

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    common_startup(logger)

    tasks: list[asyncio.Task] = []
    cleanup_task = asyncio.create_task(
        refresh_token_cleanup_loop(
            async_session_maker,
            get_token_codec(),
            interval_seconds=settings.token_cleanup_interval_seconds,
            retention_days=settings.revoked_token_retention_days,
        ),
        name="refresh-token-cleanup",
    )
    cleanup_task.add_done_callback(task_done_callback)
    tasks.append(cleanup_task)

    yield

    await common_shutdown(logger, tasks)


def create_app() -> FastAPI:
    """Create and configure the auth service application."""
    app = FastAPI(
        title=settings.app_name,
        description="Authentication and token lifecycle service",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    register_exception_handlers(app)

    app.add_middleware(SecurityHeadersMiddleware)

    # CORS must be outermost (added last in Starlette LIFO order)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )

    app.include_router(api_router)

    return app


# Application instance
app = create_app()
