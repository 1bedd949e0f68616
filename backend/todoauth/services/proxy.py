"""Service proxy - forwards gateway requests to the auth and task services."""

import logging
from datetime import UTC, datetime

import httpx
from fastapi import Request, Response
from starlette.responses import JSONResponse

from todoauth.core.request_utils import get_client_ip
from todoauth.services.errors import ErrorKind

logger = logging.getLogger(__name__)

AUTH_PREFIXES = ("/api/auth",)
TASK_PREFIXES = ("/api/tasks", "/api/categories", "/api/tags", "/api/comments")

# Connection-level headers that must not be forwarded (RFC 9110 §7.6.1)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# Recomputed by httpx on the way out and by Starlette on the way back
_REQUEST_SKIP = HOP_BY_HOP_HEADERS | {"host", "content-length"}
_RESPONSE_SKIP = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


class ServiceProxy:
    """Route requests by path prefix and relay them over HTTP.

    The underlying ``httpx.AsyncClient`` is created lazily unless one is
    passed in (tests pass a client backed by an ASGI transport).
    """

    def __init__(
        self,
        auth_service_url: str,
        task_service_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.routes: list[tuple[str, str]] = [
            *((prefix, auth_service_url.rstrip("/")) for prefix in AUTH_PREFIXES),
            *((prefix, task_service_url.rstrip("/")) for prefix in TASK_PREFIXES),
        ]
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def upstream_for(self, path: str) -> str | None:
        """Base URL of the service owning ``path``, or None."""
        for prefix, base_url in self.routes:
            if _matches(path, prefix):
                return base_url
        return None

    def _forward_headers(self, request: Request) -> list[tuple[str, str]]:
        headers = [
            (name, value)
            for name, value in request.headers.items()
            if name.lower() not in _REQUEST_SKIP
        ]
        client_host = request.client.host if request.client else None
        forwarded_for = request.headers.get("x-forwarded-for")
        if client_host:
            headers = [(n, v) for n, v in headers if n.lower() != "x-forwarded-for"]
            value = f"{forwarded_for}, {client_host}" if forwarded_for else client_host
            headers.append(("x-forwarded-for", value))
        return headers

    async def forward(self, request: Request) -> Response:
        """Relay ``request`` upstream and return the upstream response."""
        path = request.url.path
        base_url = self.upstream_for(path)
        if base_url is None:
            return JSONResponse(
                status_code=404,
                content={
                    "error": ErrorKind.NOT_FOUND.value,
                    "message": f"No route for {path}",
                    "timestamp": datetime.now(UTC).isoformat(),
                    "path": path,
                    "status": 404,
                },
            )

        url = f"{base_url}{path}"
        body = await request.body()
        try:
            upstream = await self._get_client().request(
                request.method,
                url,
                params=list(request.query_params.multi_items()),
                headers=self._forward_headers(request),
                content=body,
            )
        except httpx.RequestError as e:
            logger.error(
                f"Upstream unreachable for {request.method} {path} "
                f"(client {get_client_ip(request)}): {e}"
            )
            return JSONResponse(
                status_code=503,
                content={
                    "error": ErrorKind.UNAVAILABLE.value,
                    "message": "Upstream service is unavailable",
                    "timestamp": datetime.now(UTC).isoformat(),
                    "path": path,
                    "status": 503,
                },
            )

        response = Response(content=upstream.content, status_code=upstream.status_code)
        # multi_items keeps repeated headers such as Set-Cookie
        for name, value in upstream.headers.multi_items():
            if name.lower() not in _RESPONSE_SKIP:
                response.headers.append(name, value)
        return response

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
