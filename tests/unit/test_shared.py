"""
Unit tests for the shared/ utility modules.

Covers:
- shared.crypto          (hash_token, generate_secure_token)
- shared.datetime_utils  (parse_expiry, ensure_utc)
- shared.ip_utils        (get_client_ip, get_user_agent, RequestMeta)
- shared.user_agent      (parse_user_agent)
- shared.logging         (redact_sensitive_fields)
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from shared.crypto import generate_secure_token, hash_token
from shared.datetime_utils import DEFAULT_EXPIRY_SECONDS, ensure_utc, parse_expiry
from shared.ip_utils import RequestMeta, get_client_ip, get_user_agent
from shared.logging import redact_sensitive_fields
from shared.user_agent import parse_user_agent


def _request(headers=None, client_host="10.0.0.1", path="/api/auth/login", method="POST"):
    req = MagicMock()
    req.headers = headers or {}
    req.client = MagicMock(host=client_host) if client_host else None
    req.url.path = path
    req.method = method
    return req


# ---------------------------------------------------------------------------
# crypto
# ---------------------------------------------------------------------------


class TestCrypto:
    def test_hash_token_is_sha256_hex(self):
        assert hash_token("abc") == hashlib.sha256(b"abc").hexdigest()

    def test_generate_secure_token_length(self):
        assert len(generate_secure_token(16)) == 32
        assert generate_secure_token() != generate_secure_token()


# ---------------------------------------------------------------------------
# datetime_utils
# ---------------------------------------------------------------------------


class TestParseExpiry:
    @pytest.mark.parametrize(
        "value, seconds",
        [("15m", 900), ("7d", 604800), ("30s", 30), ("2h", 7200)],
    )
    def test_units(self, value, seconds):
        assert parse_expiry(value) == seconds

    @pytest.mark.parametrize("value", ["", "15", "m15", "1w", "1.5h", None])
    def test_malformed_falls_back(self, value):
        assert parse_expiry(value) == DEFAULT_EXPIRY_SECONDS


class TestEnsureUtc:
    def test_naive_assumed_utc(self):
        naive = datetime(2024, 1, 1, 12, 0)
        assert ensure_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_converts_other_zones(self):
        plus5 = datetime(2024, 1, 1, 17, 0, tzinfo=timezone(timedelta(hours=5)))
        assert ensure_utc(plus5).hour == 12

    def test_none(self):
        assert ensure_utc(None) is None


# ---------------------------------------------------------------------------
# ip_utils
# ---------------------------------------------------------------------------


class TestClientIp:
    def test_cloudflare_header_wins(self):
        req = _request({"CF-Connecting-IP": "1.1.1.1", "X-Forwarded-For": "2.2.2.2"})
        assert get_client_ip(req) == "1.1.1.1"

    def test_first_forwarded_for(self):
        req = _request({"X-Forwarded-For": "3.3.3.3, 4.4.4.4"})
        assert get_client_ip(req) == "3.3.3.3"

    def test_falls_back_to_connection(self):
        assert get_client_ip(_request()) == "10.0.0.1"

    def test_unknown_without_client(self):
        assert get_client_ip(_request(client_host=None)) == "unknown"

    def test_user_agent_default(self):
        assert get_user_agent(_request()) == "Unknown"

    def test_request_meta(self):
        meta = RequestMeta.from_request(
            _request({"User-Agent": "curl/8", "X-Device-Id": "dev-1"})
        )
        assert meta.user_agent == "curl/8"
        assert meta.device_id == "dev-1"
        assert meta.audit_fields() == {
            "ip_address": "10.0.0.1",
            "user_agent": "curl/8",
            "endpoint": "/api/auth/login",
            "method": "POST",
        }


# ---------------------------------------------------------------------------
# user_agent
# ---------------------------------------------------------------------------

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/120.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0"
SAFARI_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Safari/604.1"
)


class TestParseUserAgent:
    @pytest.mark.parametrize(
        "ua, expected",
        [
            (CHROME_WINDOWS, ("Desktop", "Chrome", "Windows")),
            (EDGE_WINDOWS, ("Desktop", "Edge", "Windows")),
            (SAFARI_IPHONE, ("Mobile", "Safari", "iOS")),
            (FIREFOX_LINUX, ("Desktop", "Firefox", "Linux")),
            (SAFARI_IPAD, ("Tablet", "Safari", "iOS")),
            ("SomeBot/1.0", ("Desktop", "Unknown", "Unknown")),
        ],
        ids=["chrome", "edge", "iphone", "firefox", "ipad", "bot"],
    )
    def test_classification(self, ua, expected):
        fp = parse_user_agent(ua)
        assert (fp.device_type, fp.browser, fp.os) == expected

    @pytest.mark.parametrize("ua", [None, "", "Unknown"])
    def test_missing_user_agent(self, ua):
        fp = parse_user_agent(ua)
        assert (fp.device_type, fp.browser, fp.os) == ("Unknown", "Unknown", "Unknown")


# ---------------------------------------------------------------------------
# logging
# ---------------------------------------------------------------------------


class TestRedaction:
    def test_sensitive_keys_redacted(self):
        event = {
            "event": "login",
            "password": "hunter2",
            "refresh_token": "abc",
            "jwt_secret": "s",
            "user_id": "42",
        }
        out = redact_sensitive_fields(None, "info", event)
        assert out["password"] == "***REDACTED***"
        assert out["refresh_token"] == "***REDACTED***"
        assert out["jwt_secret"] == "***REDACTED***"
        assert out["user_id"] == "42"

    def test_safe_keys_kept(self):
        out = redact_sensitive_fields(None, "info", {"token_version": 3})
        assert out["token_version"] == 3
