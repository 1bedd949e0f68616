"""Todo API Gateway - edge app in front of the auth and task services.

Every request is logged, authenticated by GatewayAuthMiddleware and then
relayed by ServiceProxy:

  - /api/auth/*                      -> AUTH_SERVICE_URL
  - /api/tasks/*, /api/categories/*,
    /api/tags/*, /api/comments/*     -> TASK_SERVICE_URL

Downstream services receive the caller's identity in X-User-Id and
X-User-Name; those headers are never taken from the client.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from todoauth.api.deps import get_token_codec
from todoauth.core import get_redis, settings
from todoauth.core.logging import get_logger
from todoauth.core.shared_lifespan import common_shutdown, common_startup
from todoauth.middleware import (
    GatewayAuthMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from todoauth.services.proxy import ServiceProxy
from todoauth.services.revocation import RevocationStore

logger = get_logger("gateway")

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def create_gateway_app(
    revocation: RevocationStore | None = None,
    proxy: ServiceProxy | None = None,
) -> FastAPI:
    """Create the gateway application.

    ``revocation`` and ``proxy`` default to ones built from settings.
    """
    if revocation is None:
        revocation = RevocationStore(get_redis(), get_token_codec())
    if proxy is None:
        proxy = ServiceProxy(
            auth_service_url=settings.auth_service_url,
            task_service_url=settings.task_service_url,
            timeout=settings.gateway_upstream_timeout,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        common_startup(logger)
        logger.info(
            f"Routing /api/auth to {settings.auth_service_url}, "
            f"task APIs to {settings.task_service_url}"
        )
        yield
        await proxy.close()
        await common_shutdown(logger, [])

    app = FastAPI(
        title=f"{settings.app_name} Gateway",
        description="JWT-verifying API gateway",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.proxy = proxy

    # Starlette runs middleware added last first: logging sees every request,
    # including the ones rejected by GatewayAuthMiddleware
    app.add_middleware(
        GatewayAuthMiddleware,
        revocation=revocation,
        public_paths=settings.gateway_public_paths_list,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    # CORS - MUST be outermost so CORS headers are present on 401 responses too
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=[*PROXY_METHODS, "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Gateway liveness. Does not call upstream services."""
        return {"status": "UP", "service": "api-gateway"}

    @app.api_route("/api/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def proxy_api(request: Request) -> Response:
        return await request.app.state.proxy.forward(request)

    return app


# Application instance
app = create_gateway_app()
