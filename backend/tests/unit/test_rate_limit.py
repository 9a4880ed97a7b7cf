"""Unit tests for rate limiting helpers."""

import pytest
from starlette.requests import Request

from api.middleware.rate_limit import RATE_LIMITS, _get_real_ip, get_rate_limit


def _request(headers: dict[str, str] | None = None, client_host: str = "198.51.100.20") -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/webhooks/moneyhash/moneyhash_main",
        "headers": [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()],
        "client": (client_host, 52000),
    }
    return Request(scope)


class TestGetRealIp:
    def test_forwarded_for_first_entry(self):
        request = _request({"X-Forwarded-For": "8.8.8.8, 10.0.0.1"})
        assert _get_real_ip(request) == "8.8.8.8"

    def test_real_ip_header(self):
        request = _request({"X-Real-IP": "8.8.4.4"})
        assert _get_real_ip(request) == "8.8.4.4"

    @pytest.mark.parametrize("forwarded", ["10.0.0.5", "127.0.0.1", "not-an-ip", "169.254.1.1"])
    def test_untrusted_forwarded_values_fall_back_to_client(self, forwarded):
        request = _request({"X-Forwarded-For": forwarded})
        assert _get_real_ip(request) == "198.51.100.20"

    def test_no_headers(self):
        assert _get_real_ip(_request()) == "198.51.100.20"


class TestGetRateLimit:
    def test_moneyhash_webhook_limit(self):
        assert get_rate_limit("moneyhash_webhook") == "300/minute"

    def test_unknown_endpoint_uses_default(self):
        assert get_rate_limit("unknown") == RATE_LIMITS["default"]
