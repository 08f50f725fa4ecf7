"""
Session store.

Owns the lifecycle of `sessions` documents: creation (Provisional), issue,
activity tracking, expiry extension and revocation. Token minting lives in
services.token_service; this module never signs anything.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from bson import ObjectId

from errors import NotFoundError
from repositories.session_repository import SessionRepository
from schemas.models.session import (
    DeviceInfo,
    LoginMethod,
    Location,
    RevokeReason,
    SessionDoc,
)
from shared.datetime_utils import utcnow
from shared.logging import get_logger
from shared.user_agent import parse_user_agent

log = get_logger(__name__)

# Revoked sessions are kept this long for the "recent devices" audit trail.
REVOKED_RETENTION = timedelta(hours=24)
PLACEHOLDER_PREFIX = "pending-"


def is_session_id(value: Any) -> bool:
    """True when *value* can name a session document. Token claims are untrusted."""
    return bool(value) and ObjectId.is_valid(str(value))


class SessionStore:
    def __init__(self, session_repo: SessionRepository, *, session_ttl_days: int = 7) -> None:
        self._repo = session_repo
        self._ttl = timedelta(days=session_ttl_days)

    async def create(
        self,
        user_id: Any,
        *,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        device_id: Optional[str] = None,
        location: Optional[Location] = None,
        login_method: LoginMethod = LoginMethod.PASSWORD,
        expires_at: Optional[datetime] = None,
    ) -> SessionDoc:
        """Insert a Provisional session holding a unique placeholder refresh token."""
        now = utcnow()
        fingerprint = parse_user_agent(user_agent)
        session = SessionDoc(
            user_id=user_id,
            refresh_token=PLACEHOLDER_PREFIX + uuid.uuid4().hex,
            device_info=DeviceInfo(
                user_agent=user_agent or "Unknown",
                device_type=fingerprint.device_type,
                browser=fingerprint.browser,
                os=fingerprint.os,
                device_id=device_id,
            ),
            ip_address=ip_address or "unknown",
            location=location,
            login_method=login_method,
            last_activity=now,
            expires_at=expires_at or now + self._ttl,
            created_at=now,
        )
        return await self._repo.insert(session)

    async def mark_issued(self, session_id: Any, refresh_token: str) -> SessionDoc:
        session = await self._repo.mark_issued(session_id, refresh_token)
        if session is None:
            raise NotFoundError("Provisional session not found", code="SESSION_NOT_FOUND")
        return session

    async def get(self, session_id: Any) -> Optional[SessionDoc]:
        return await self._repo.find_by_id(session_id)

    async def find_for_refresh(self, session_id: Any, refresh_token: str) -> Optional[SessionDoc]:
        if not is_session_id(session_id):
            return None
        return await self._repo.find_by_id_and_refresh_token(session_id, refresh_token)

    async def bump_version(self, session_id: Any) -> Optional[SessionDoc]:
        return await self._repo.bump_version(session_id, utcnow())

    async def store_refresh_token(
        self, session_id: Any, expected_version: int, refresh_token: str
    ) -> bool:
        """Write the rotated refresh token if the session is still at expected_version."""
        return await self._repo.rotate_refresh_token(session_id, expected_version, refresh_token)

    async def update_activity(self, session_id: Any) -> None:
        """Best-effort last_activity touch; failures are logged only."""
        try:
            await self._repo.touch(session_id, utcnow())
        except Exception as exc:
            log.warning("session_activity_update_failed", session_id=str(session_id), error=str(exc))

    async def revoke(
        self, session_id: Any, reason: RevokeReason = RevokeReason.USER_LOGOUT
    ) -> Optional[SessionDoc]:
        session = await self._repo.revoke(session_id, reason, utcnow())
        if session is not None:
            log.info(
                "session_revoked",
                session_id=str(session_id),
                reason=session.revoked_reason.value if session.revoked_reason else None,
            )
        return session

    async def extend(self, session_id: Any, *, days: Optional[int] = None) -> SessionDoc:
        delta = timedelta(days=days) if days is not None else self._ttl
        session = await self._repo.set_expiry(session_id, utcnow() + delta)
        if session is None:
            raise NotFoundError("Session not found", code="SESSION_NOT_FOUND")
        return session

    async def get_active_sessions(self, user_id: Any) -> list[SessionDoc]:
        return await self._repo.find_active_for_user(user_id, utcnow())

    async def revoke_all_for_user(
        self,
        user_id: Any,
        reason: RevokeReason = RevokeReason.USER_LOGOUT_ALL,
        *,
        except_session_id: Any = None,
    ) -> int:
        count = await self._repo.revoke_all_for_user(
            user_id, reason, utcnow(), except_session_id=except_session_id
        )
        log.info(
            "user_sessions_revoked",
            user_id=str(user_id),
            reason=reason.value,
            count=count,
        )
        return count

    async def cleanup_expired(self) -> int:
        """Delete expired sessions and sessions revoked more than 24h ago."""
        now = utcnow()
        deleted = await self._repo.delete_stale(now, now - REVOKED_RETENTION)
        log.info("sessions_cleaned_up", deleted=deleted)
        return deleted
