"""Middleware module for the auth service and gateway."""

from todoauth.middleware.gateway_auth import GatewayAuthMiddleware
from todoauth.middleware.request_logging import RequestLoggingMiddleware
from todoauth.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "GatewayAuthMiddleware",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
