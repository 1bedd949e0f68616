"""Tests for request utility functions."""

import logging
from unittest.mock import MagicMock

from todoauth.core.request_utils import (
    MAX_DEVICE_INFO_LENGTH,
    UNKNOWN_DEVICE,
    _is_valid_ip,
    get_bearer_token,
    get_client_ip,
    get_device_info,
)


def _create_mock_request(headers=None, client_host=None):
    """Create a mock FastAPI request."""
    request = MagicMock()
    headers = headers or {}
    request.headers.get = lambda key, default=None: headers.get(key, default)

    if client_host:
        request.client = MagicMock()
        request.client.host = client_host
    else:
        request.client = None

    return request


class TestIsValidIP:
    """Tests for _is_valid_ip function."""

    def test_valid_addresses(self):
        assert _is_valid_ip("192.168.1.1") is True
        assert _is_valid_ip("0.0.0.0") is True
        assert _is_valid_ip("::1") is True
        assert _is_valid_ip("2001:db8::1") is True

    def test_invalid_addresses(self):
        assert _is_valid_ip("") is False
        assert _is_valid_ip("not-an-ip") is False
        assert _is_valid_ip("256.1.1.1") is False
        assert _is_valid_ip("192.168.1.1:8080") is False
        assert _is_valid_ip(" 192.168.1.1") is False


class TestGetClientIP:
    """Tests for get_client_ip function."""

    def test_forwarded_for_first_hop_wins(self):
        """The first X-Forwarded-For entry is the original client."""
        request = _create_mock_request(
            headers={"X-Forwarded-For": "1.2.3.4, 10.0.0.2", "X-Real-IP": "5.6.7.8"},
            client_host="9.10.11.12",
        )
        assert get_client_ip(request) == "1.2.3.4"

    def test_real_ip_when_no_forwarded_for(self):
        request = _create_mock_request(
            headers={"X-Real-IP": " 5.6.7.8 "},
            client_host="9.10.11.12",
        )
        assert get_client_ip(request) == "5.6.7.8"

    def test_client_host_fallback(self):
        request = _create_mock_request(client_host="127.0.0.1")
        assert get_client_ip(request) == "127.0.0.1"

    def test_no_ip_available(self):
        assert get_client_ip(_create_mock_request()) is None

    def test_invalid_headers_skipped(self, caplog):
        """Spoofed non-IP values fall through to the next source."""
        request = _create_mock_request(
            headers={"X-Forwarded-For": "<script>", "X-Real-IP": "invalid"},
            client_host="192.168.1.1",
        )

        with caplog.at_level(logging.WARNING):
            assert get_client_ip(request) == "192.168.1.1"

        assert "Invalid X-Forwarded-For" in caplog.text
        assert "Invalid X-Real-IP" in caplog.text

    def test_ipv6_forwarded_for(self):
        request = _create_mock_request(headers={"X-Forwarded-For": "2001:db8::1"})
        assert get_client_ip(request) == "2001:db8::1"


class TestGetDeviceInfo:
    def test_user_agent(self):
        request = _create_mock_request(headers={"User-Agent": "Mozilla/5.0"})
        assert get_device_info(request) == "Mozilla/5.0"

    def test_missing_user_agent(self):
        assert get_device_info(_create_mock_request()) == UNKNOWN_DEVICE

    def test_long_user_agent_truncated(self):
        request = _create_mock_request(headers={"User-Agent": "a" * 1000})
        assert len(get_device_info(request)) == MAX_DEVICE_INFO_LENGTH


class TestGetBearerToken:
    def test_bearer_token(self):
        request = _create_mock_request(headers={"Authorization": "Bearer abc.def.ghi"})
        assert get_bearer_token(request) == "abc.def.ghi"

    def test_missing_header(self):
        assert get_bearer_token(_create_mock_request()) is None

    def test_other_scheme(self):
        request = _create_mock_request(headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert get_bearer_token(request) is None

    def test_empty_bearer(self):
        request = _create_mock_request(headers={"Authorization": "Bearer   "})
        assert get_bearer_token(request) is None
