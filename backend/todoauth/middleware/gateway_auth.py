"""Gateway authentication middleware.

Every request entering the gateway passes through here once. Identity
headers (``X-User-Id``, ``X-User-Name``, ``X-Token-Valid``) are only ever
set by this middleware: any client-supplied copies are stripped before the
allow-list or the token are looked at.

Protected requests must carry ``Authorization: Bearer <access token>``. The
token is validated against the codec and the Redis blacklist; on success the
identity headers are injected for downstream services.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from todoauth.core.logging import security_context
from todoauth.core.request_utils import get_bearer_token, get_client_ip
from todoauth.services.errors import ErrorKind, ServiceUnavailableError, TokenError
from todoauth.services.revocation import RevocationStore

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"
USER_NAME_HEADER = "x-user-name"
TOKEN_VALID_HEADER = "x-token-valid"
FORWARDED_HOST_HEADER = "x-forwarded-host"

IDENTITY_HEADERS = frozenset({USER_ID_HEADER, USER_NAME_HEADER, TOKEN_VALID_HEADER})


def is_public_path(path: str, public_paths: Iterable[str]) -> bool:
    """Exact or segment-boundary match against the allow-list."""
    for public in public_paths:
        if path == public or path.startswith(public.rstrip("/") + "/"):
            return True
    return False


def _unauthorized(path: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={
            "error": "Unauthorized",
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
            "path": path,
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


def _unavailable(path: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            "error": ErrorKind.UNAVAILABLE.value,
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
            "path": path,
            "status": 503,
        },
    )


class GatewayAuthMiddleware(BaseHTTPMiddleware):
    """Authenticate gateway requests and propagate identity downstream.

    - OPTIONS preflight and allow-listed paths pass through unauthenticated
    - Missing or malformed bearer token, invalid or revoked token: 401
    - Revocation store unreachable: 503, the request is not forwarded
    """

    def __init__(
        self,
        app: ASGIApp,
        revocation: RevocationStore,
        public_paths: Iterable[str],
    ):
        super().__init__(app)
        self.revocation = revocation
        self.public_paths = tuple(public_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        self._strip_identity_headers(request)

        # CORS preflight never requires auth
        if request.method == "OPTIONS":
            return await call_next(request)

        if is_public_path(path, self.public_paths):
            return await call_next(request)

        context = security_context(
            event="gateway_rejected",
            method=request.method,
            path=path,
            client_ip=get_client_ip(request),
        )
        token = get_bearer_token(request)
        if not token:
            logger.warning(f"Gateway request without token: {request.method} {path}", extra=context)
            return _unauthorized(path, "Missing or invalid Authorization header")

        try:
            claims = await self.revocation.validate_access(token)
        except TokenError as e:
            logger.warning(
                f"Rejected token for: {request.method} {path} - {e.message}", extra=context
            )
            return _unauthorized(path, e.message)
        except ServiceUnavailableError as e:
            logger.error(
                f"Cannot verify token for: {request.method} {path} - {e.message}", extra=context
            )
            return _unavailable(path, e.message)

        self._inject_identity_headers(request, claims["userId"], claims["sub"])
        request.state.user_id = str(claims["userId"])
        return await call_next(request)

    @staticmethod
    def _strip_identity_headers(request: Request) -> None:
        request.scope["headers"] = [
            (name, value)
            for name, value in request.scope["headers"]
            if name.decode("latin-1").lower() not in IDENTITY_HEADERS
        ]

    @staticmethod
    def _inject_identity_headers(request: Request, user_id: str, username: str) -> None:
        headers = [
            (name, value)
            for name, value in request.scope["headers"]
            if name.decode("latin-1").lower() != FORWARDED_HOST_HEADER
        ]
        headers.append((USER_ID_HEADER.encode("latin-1"), str(user_id).encode("latin-1")))
        headers.append((USER_NAME_HEADER.encode("latin-1"), username.encode("utf-8")))
        headers.append((TOKEN_VALID_HEADER.encode("latin-1"), b"true"))
        host = request.headers.get("host")
        if host:
            headers.append((FORWARDED_HOST_HEADER.encode("latin-1"), host.encode("latin-1")))
        request.scope["headers"] = headers
