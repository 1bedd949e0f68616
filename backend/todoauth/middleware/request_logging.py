"""Request/response logging for the gateway."""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from todoauth.core.logging import security_context
from todoauth.core.request_utils import get_client_ip

logger = logging.getLogger(__name__)

SENSITIVE_HEADER_MARKERS = ("authorization", "cookie", "password", "token", "secret", "key")
USER_AGENT_LOG_LENGTH = 50
ANONYMOUS = "anonymous"


def is_sensitive_header(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in SENSITIVE_HEADER_MARKERS)


def verified_user_id(request: Request) -> str:
    return getattr(request.state, "user_id", None) or ANONYMOUS


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request on entry and exit with its duration.

    The user is only known once the authentication filter further in has
    verified a token (``request.state.user_id``), so it is reported on the
    exit line. Client-sent identity headers are never logged as the user.
    Header dumps are only emitted at DEBUG and never include credentials.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        method = request.method
        path = request.url.path
        query = f"?{request.url.query}" if request.url.query else ""
        client_ip = get_client_ip(request)
        user_agent = request.headers.get("user-agent")

        logger.info(
            f"→ {method} {path}{query} - IP: {client_ip or 'unknown'} "
            f"- UA: {user_agent[:USER_AGENT_LOG_LENGTH] if user_agent else 'unknown'}",
            extra=security_context(event="request", method=method, path=path, client_ip=client_ip),
        )
        if logger.isEnabledFor(logging.DEBUG):
            for name, value in request.headers.items():
                if not is_sensitive_header(name):
                    logger.debug(f"Request Header: {name}: {value}")

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            user_id = verified_user_id(request)
            logger.error(
                f"✗ {method} {path} - User: {user_id} - Duration: {duration_ms}ms - Error: {e}",
                exc_info=True,
                extra=security_context(
                    event="request_failed",
                    method=method,
                    path=path,
                    client_ip=client_ip,
                    user_id=user_id,
                    duration_ms=duration_ms,
                ),
            )
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        user_id = verified_user_id(request)
        logger.info(
            f"← {method} {path} - Status: {response.status_code} - User: {user_id} "
            f"- Duration: {duration_ms}ms",
            extra=security_context(
                event="response",
                method=method,
                path=path,
                client_ip=client_ip,
                user_id=user_id,
                status=response.status_code,
                duration_ms=duration_ms,
            ),
        )
        if logger.isEnabledFor(logging.DEBUG):
            for name, value in response.headers.items():
                if not is_sensitive_header(name):
                    logger.debug(f"Response Header: {name}: {value}")
        return response
