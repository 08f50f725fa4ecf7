"""
Authentication guard as FastAPI dependencies.

require_auth   — 401 unless a bearer access token verifies AND its session
                 validates against the database.
optional_auth  — same checks, but any failure yields None instead of 401.

Every 401 is recorded as an AUTHENTICATION_FAILED security event (MEDIUM).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from dependencies import get_audit_service, get_session_store, get_token_service
from errors import AuthenticationError, InvalidSessionError
from schemas.models.session import SessionDoc
from schemas.models.user import UserDoc
from services.audit_service import AuditService, SecurityEventContext
from services.session_service import SessionStore
from services.token_service import TokenService
from shared.ip_utils import RequestMeta
from shared.logging import get_logger, hash_ip

log = get_logger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    user: UserDoc
    session: SessionDoc
    claims: dict
    token: str

    @property
    def user_id(self) -> str:
        return str(self.user.id)

    @property
    def session_id(self) -> str:
        return str(self.session.id)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


async def _authenticate(
    request: Request, tokens: TokenService, sessions: SessionStore
) -> AuthContext:
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise AuthenticationError("Access token is required", code="TOKEN_REQUIRED")

    claims = tokens.verify_access(token)
    result = await tokens.validate_session(claims)
    if not result.valid:
        raise InvalidSessionError(
            "Session is invalid or expired", details={"reason": result.reason}
        )

    await sessions.update_activity(result.session.id)
    context = AuthContext(user=result.user, session=result.session, claims=claims, token=token)
    request.state.auth = context
    return context


async def _record_failure(
    request: Request, audit: AuditService, exc: AuthenticationError
) -> None:
    meta = RequestMeta.from_request(request)
    log.info(
        "authentication_failed",
        code=exc.error_code,
        path=meta.endpoint,
        ip=hash_ip(meta.ip_address),
    )
    await audit.record_security_event(
        "AUTHENTICATION_FAILED",
        SecurityEventContext(
            description=exc.message,
            status="FAILED",
            status_code=exc.status_code,
            error_code=exc.error_code,
            metadata=exc.details or {},
            **meta.audit_fields(),
        ),
    )


async def require_auth(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
    sessions: SessionStore = Depends(get_session_store),
    audit: AuditService = Depends(get_audit_service),
) -> AuthContext:
    try:
        return await _authenticate(request, tokens, sessions)
    except AuthenticationError as exc:
        await _record_failure(request, audit, exc)
        raise


async def optional_auth(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
    sessions: SessionStore = Depends(get_session_store),
) -> Optional[AuthContext]:
    try:
        return await _authenticate(request, tokens, sessions)
    except AuthenticationError:
        return None
