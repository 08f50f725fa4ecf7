"""
JWT issuance, verification and session-bound validation.

Access and refresh tokens are HS256 JWTs signed with separate secrets and
carrying the configured issuer and audience. Signature checks alone never
authorise a request: validate_session() re-reads the session and the user on
every call, so a revoke or a refresh takes effect before the token expires.

Refresh is last-write-wins on the session document. Each refresh bumps
``access_token_version`` with ``$inc`` and mints tokens for the bumped
version; the rotated refresh token is stored only if the session still holds
that version. Two concurrent refreshes therefore both return tokens, but only
the later bump's access token keeps validating.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

import jwt

from config import JWTSettings
from errors import AccountInactiveError, InvalidSessionError, InvalidTokenError
from repositories.user_repository import UserRepository
from schemas.models.session import LoginMethod, Location, RevokeReason, SessionDoc
from schemas.models.user import UserDoc
from services.role_service import RoleService
from services.session_service import SessionStore, is_session_id
from shared.datetime_utils import ensure_utc, parse_expiry, utcnow
from shared.logging import get_logger

log = get_logger(__name__)

ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud"]


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    session_id: str
    expires_in: int


@dataclass(frozen=True)
class SessionValidation:
    valid: bool
    session: Optional[SessionDoc] = None
    user: Optional[UserDoc] = None
    reason: Optional[str] = None


class TokenService:
    def __init__(
        self,
        settings: JWTSettings,
        *,
        sessions: SessionStore,
        users: UserRepository,
        roles: RoleService,
    ) -> None:
        self._issuer = settings.jwt_issuer
        self._audience = settings.jwt_audience
        self._access_secret = settings.access_secret
        self._refresh_secret = settings.refresh_secret
        self._access_ttl = parse_expiry(settings.jwt_access_expire)
        self._refresh_ttl = parse_expiry(settings.jwt_refresh_expire)
        self._sessions = sessions
        self._users = users
        self._roles = roles

    @staticmethod
    def parse_expiry(expiry: str) -> int:
        return parse_expiry(expiry)

    # ── minting ─────────────────────────────────────────────────────────────

    def _encode(self, claims: dict, secret: str, ttl: int) -> str:
        now = utcnow()
        payload = {
            **claims,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": now,
            "exp": now + timedelta(seconds=ttl),
        }
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    async def _access_claims(self, user: UserDoc, session_id: str, version: int) -> dict:
        permissions = await self._roles.effective_permissions(user)
        return {
            "userId": str(user.id),
            "role": user.role,
            "permissions": sorted(permissions),
            "instituteId": str(user.institute_id) if user.institute_id else None,
            "sessionId": session_id,
            "tokenVersion": version,
            "type": ACCESS_TOKEN_TYPE,
        }

    def _refresh_claims(self, user_id: Any, session_id: str, version: int) -> dict:
        return {
            "userId": str(user_id),
            "sessionId": session_id,
            "tokenVersion": version,
            "jti": uuid.uuid4().hex,
            "type": REFRESH_TOKEN_TYPE,
        }

    async def _mint_pair(self, user: UserDoc, session_id: str, version: int) -> tuple[str, str]:
        access = self._encode(
            await self._access_claims(user, session_id, version),
            self._access_secret,
            self._access_ttl,
        )
        refresh = self._encode(
            self._refresh_claims(user.id, session_id, version),
            self._refresh_secret,
            self._refresh_ttl,
        )
        return access, refresh

    async def issue_pair(
        self,
        user: UserDoc,
        *,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        device_id: Optional[str] = None,
        location: Optional[Location] = None,
        login_method: LoginMethod = LoginMethod.PASSWORD,
        expires_at: Optional[datetime] = None,
    ) -> TokenPair:
        """Create a session and mint its first token pair (version 0)."""
        session = await self._sessions.create(
            user.id,
            user_agent=user_agent,
            ip_address=ip_address,
            device_id=device_id,
            location=location,
            login_method=login_method,
            expires_at=expires_at,
        )
        session_id = str(session.id)
        access, refresh = await self._mint_pair(user, session_id, session.access_token_version)

        issued = await self._sessions.mark_issued(session.id, refresh)
        if not issued.is_issued:
            raise InvalidSessionError("Session could not be issued")

        log.info("session_issued", user_id=str(user.id), session_id=session_id)
        return TokenPair(access, refresh, session_id, self._access_ttl)

    async def rotate(self, session: SessionDoc, user: UserDoc) -> TokenPair:
        """Bump the session version and mint a pair for the bumped version."""
        bumped = await self._sessions.bump_version(session.id)
        if bumped is None:
            raise InvalidSessionError("Invalid session")

        session_id = str(bumped.id)
        version = bumped.access_token_version
        access, refresh = await self._mint_pair(user, session_id, version)

        stored = await self._sessions.store_refresh_token(bumped.id, version, refresh)
        if not stored:
            # A later refresh bumped past us; our tokens are already stale.
            log.warning("refresh_race_lost", session_id=session_id, token_version=version)
        return TokenPair(access, refresh, session_id, self._access_ttl)

    async def refresh(self, refresh_token: str) -> TokenPair:
        claims = self.verify_refresh(refresh_token)

        session = await self._sessions.find_for_refresh(
            claims.get("sessionId"), refresh_token
        )
        if session is None or not session.is_valid:
            raise InvalidSessionError("Invalid or expired refresh token")

        user = await self._users.find_by_id(session.user_id)
        if user is None or not user.is_account_active:
            await self._sessions.revoke(session.id, RevokeReason.ACCOUNT_DEACTIVATED)
            raise AccountInactiveError("User account is not active")

        pair = await self.rotate(session, user)
        log.info("token_refreshed", user_id=str(user.id), session_id=pair.session_id)
        return pair

    # ── verification ────────────────────────────────────────────────────────

    def _decode(self, token: str, secret: str, expected_type: str) -> dict:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                audience=self._audience,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidTokenError("Token expired", code="TOKEN_EXPIRED") from exc
        except jwt.InvalidAudienceError as exc:
            raise InvalidTokenError("Token audience mismatch", code="WRONG_AUDIENCE") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError("Invalid token") from exc

        if claims.get("type") != expected_type:
            raise InvalidTokenError("Invalid token type")
        return claims

    def verify_access(self, token: str) -> dict:
        return self._decode(token, self._access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh(self, token: str) -> dict:
        return self._decode(token, self._refresh_secret, REFRESH_TOKEN_TYPE)

    async def validate_session(self, claims: dict) -> SessionValidation:
        """Check an access token's claims against the live session and user."""
        session_id = claims.get("sessionId")
        if not is_session_id(session_id):
            return SessionValidation(False, reason="Invalid session")

        session = await self._sessions.get(session_id)
        if session is None or not session.is_valid or not session.is_issued:
            return SessionValidation(False, reason="Invalid session")

        if claims.get("tokenVersion") != session.access_token_version:
            return SessionValidation(False, session=session, reason="Token version mismatch")

        user = await self._users.find_by_id(session.user_id)
        if user is None or not user.is_account_active:
            return SessionValidation(False, session=session, reason="User account inactive")

        changed_at = ensure_utc(user.password_changed_at)
        issued_at = claims.get("iat")
        if changed_at is not None and issued_at is not None:
            if issued_at < changed_at.timestamp():
                return SessionValidation(
                    False, session=session, user=user, reason="Password changed"
                )

        return SessionValidation(True, session=session, user=user)

    # ── session administration ──────────────────────────────────────────────

    async def revoke_session(
        self, session_id: Any, reason: RevokeReason = RevokeReason.USER_LOGOUT
    ) -> Optional[SessionDoc]:
        return await self._sessions.revoke(session_id, reason)

    async def revoke_all_user_sessions(
        self,
        user_id: Any,
        reason: RevokeReason = RevokeReason.USER_LOGOUT_ALL,
        *,
        except_session_id: Any = None,
    ) -> int:
        return await self._sessions.revoke_all_for_user(
            user_id, reason, except_session_id=except_session_id
        )

    async def list_sessions(self, user_id: Any) -> list[SessionDoc]:
        return await self._sessions.get_active_sessions(user_id)
