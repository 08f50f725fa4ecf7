"""
Session document model.

Maps to the `sessions` MongoDB collection.

A session binds one refresh token to a user and a device, and carries the
access-token version that every access token for the session must match.

state:
- Provisional — inserted with a placeholder refresh token; no token minted
  for it may be handed to a client yet.
- Issued — the real refresh token has been written; tokens can go out.

expires_at is backed by a TTL index; validity is still checked on read.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from schemas.models.base import MongoBaseModel, PyObjectId
from shared.datetime_utils import ensure_utc, utcnow


class SessionState(str, Enum):
    PROVISIONAL = "Provisional"
    ISSUED = "Issued"


class RevokeReason(str, Enum):
    USER_LOGOUT = "UserLogout"
    USER_LOGOUT_ALL = "UserLogoutAll"
    ADMIN_REVOKED = "AdminRevoked"
    SECURITY_BREACH = "SecurityBreach"
    TOKEN_REFRESH = "TokenRefresh"
    ACCOUNT_DEACTIVATED = "AccountDeactivated"
    PASSWORD_CHANGE = "PasswordChange"
    PASSWORD_RESET = "PasswordReset"


class LoginMethod(str, Enum):
    PASSWORD = "Password"
    TWO_FACTOR = "TwoFactor"
    SSO = "SSO"
    ADMIN_CREATED = "AdminCreated"


class DeviceInfo(BaseModel):
    user_agent: str = "Unknown"
    device_type: str = "Unknown"
    browser: str = "Unknown"
    os: str = "Unknown"
    device_id: Optional[str] = None


class Location(BaseModel):
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    timezone: Optional[str] = None


class SessionDoc(MongoBaseModel):
    """Document model for the `sessions` collection."""

    user_id: PyObjectId
    refresh_token: str
    access_token_version: int = Field(default=0, ge=0)
    state: SessionState = SessionState.PROVISIONAL

    device_info: DeviceInfo = DeviceInfo()
    ip_address: str = "unknown"
    location: Optional[Location] = None
    login_method: LoginMethod = LoginMethod.PASSWORD

    is_active: bool = True
    is_revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[RevokeReason] = None

    last_activity: Optional[datetime] = None
    expires_at: datetime
    created_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        return ensure_utc(self.expires_at) <= utcnow()

    @property
    def is_valid(self) -> bool:
        return self.is_active and not self.is_revoked and not self.is_expired

    @property
    def is_issued(self) -> bool:
        return self.state == SessionState.ISSUED

    def to_mongo(self) -> dict:
        data = super().to_mongo()
        data["state"] = self.state.value
        data["login_method"] = self.login_method.value
        if self.revoked_reason is not None:
            data["revoked_reason"] = self.revoked_reason.value
        return data

    def to_public(self, current_session_id: Any = None) -> dict[str, Any]:
        """Shape shown to the user on the "active devices" list."""
        return {
            "id": str(self.id),
            "device_info": self.device_info.model_dump(exclude={"device_id"}),
            "ip_address": self.ip_address,
            "location": self.location.model_dump() if self.location else None,
            "login_method": self.login_method.value,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
            "expires_at": self.expires_at.isoformat(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "is_current": current_session_id is not None
            and str(current_session_id) == str(self.id),
        }
