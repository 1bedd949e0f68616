"""Exception handlers rendering domain and infrastructure errors as JSON."""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import InterfaceError, OperationalError

from todoauth.services.errors import AuthError, ErrorKind

logger = logging.getLogger(__name__)

VALIDATION_ERROR = "validation_error"


def error_body(
    kind: str, message: str, path: str, status_code: int, **extra: Any
) -> dict[str, Any]:
    body = {
        "error": kind,
        "message": message,
        "timestamp": datetime.now(UTC).isoformat(),
        "path": path,
        "status": status_code,
    }
    body.update(extra)
    return body


def error_response(
    request: Request, kind: str, message: str, status_code: int, **extra: Any
) -> JSONResponse:
    headers = None
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=status_code,
        content=error_body(kind, message, request.url.path, status_code, **extra),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for AuthError, backing-store outages and validation errors."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(f"{request.method} {request.url.path} -> {exc.kind}: {exc.message}")
        return error_response(request, exc.kind, exc.message, exc.status_code)

    @app.exception_handler(OperationalError)
    @app.exception_handler(InterfaceError)
    async def handle_database_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Database unavailable during {request.method} {request.url.path}: {exc}")
        return error_response(
            request,
            ErrorKind.UNAVAILABLE,
            "Database is unavailable",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.exception_handler(RedisError)
    async def handle_redis_error(request: Request, exc: RedisError) -> JSONResponse:
        logger.error(f"Redis unavailable during {request.method} {request.url.path}: {exc}")
        return error_response(
            request,
            ErrorKind.UNAVAILABLE,
            "Token store is unavailable",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors: dict[str, str] = {}
        for err in exc.errors():
            # Drop the leading "body"/"query" location segment
            loc = [str(part) for part in err.get("loc", ())[1:]]
            errors[".".join(loc) or "request"] = err.get("msg", "Invalid value")
        return error_response(
            request,
            VALIDATION_ERROR,
            "Validation failed",
            status.HTTP_400_BAD_REQUEST,
            errors=errors,
        )
