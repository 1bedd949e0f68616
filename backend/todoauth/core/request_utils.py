"""Request utility functions for handling common request operations."""

import ipaddress
import logging

from fastapi import Request

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE = "Unknown Device"
MAX_DEVICE_INFO_LENGTH = 255


def _is_valid_ip(ip_str: str) -> bool:
    """Check if a string is a valid IP address."""
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request) -> str | None:
    """Get the client IP address from a request.

    Priority order:
    1. X-Forwarded-For (first hop, set by the gateway / load balancer)
    2. X-Real-IP (set by nginx)
    3. Direct client connection

    Header values that are not valid IP addresses are ignored.

    Args:
        request: The FastAPI request object

    Returns:
        Client IP address or None if not available
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip = forwarded_for.split(",")[0].strip()
        if _is_valid_ip(ip):
            return ip
        logger.warning(f"Invalid X-Forwarded-For: {forwarded_for}")

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        ip = real_ip.strip()
        if _is_valid_ip(ip):
            return ip
        logger.warning(f"Invalid X-Real-IP: {real_ip}")

    if request.client:
        return request.client.host

    return None


def get_device_info(request: Request) -> str:
    """Describe the client device from its User-Agent, truncated to 255 chars."""
    user_agent = request.headers.get("User-Agent")
    if not user_agent:
        return UNKNOWN_DEVICE
    return user_agent[:MAX_DEVICE_INFO_LENGTH]


def get_bearer_token(request: Request) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        return token or None
    return None
