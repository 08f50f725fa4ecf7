"""
Request metadata extraction for FastAPI requests: client IP, user agent and
the optional device id header. Takes an explicit ``Request`` so the helpers
are testable without a running app.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

DEVICE_ID_HEADER = "X-Device-Id"


def get_client_ip(request: Request) -> str:
    """Extract the real client IP from a FastAPI ``Request``.

    Checks proxy headers in priority order before falling back to the
    direct connection address:

    1. ``CF-Connecting-IP`` — Cloudflare
    2. ``X-Forwarded-For`` — standard proxy header (first IP in list)
    3. ``X-Real-IP`` — nginx / other reverse proxies

    Returns:
        The resolved client IP string, or ``"unknown"`` if none can be found.
    """
    for header in ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP"):
        ip_value: str | None = request.headers.get(header)
        if ip_value:
            client_ip: str = ip_value.split(",")[0].strip()
            if client_ip:
                return client_ip

    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent") or "Unknown"


def get_device_id(request: Request) -> Optional[str]:
    return request.headers.get(DEVICE_ID_HEADER) or None


@dataclass(frozen=True)
class RequestMeta:
    """Request context handed to services, which never see the Request itself."""

    ip_address: str = "unknown"
    user_agent: str = "Unknown"
    device_id: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestMeta":
        return cls(
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
            device_id=get_device_id(request),
            endpoint=request.url.path,
            method=request.method,
        )

    def audit_fields(self) -> dict:
        return {
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "endpoint": self.endpoint,
            "method": self.method,
        }
