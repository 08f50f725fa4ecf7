"""
Credential store: registration, login, lockout, password lifecycle and the
account-status state machine.

The user document is the single source of truth for account gating. Every
check here re-reads it; nothing about lockout or status is cached.

Login order matters: the lock is checked before the password, so a locked
account stays locked even when the correct password is supplied.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError

from errors import (
    AccountInactiveError,
    AccountLockedError,
    AuthenticationError,
    DuplicateCredentialError,
    NotFoundError,
    ValidationError,
)
from repositories.user_repository import UserRepository
from schemas.models.session import RevokeReason
from schemas.models.user import AccountStatus, ProfileUpdate, UserDoc
from services.audit_service import AuditService, SecurityEventContext
from services.password_policy import PasswordPolicy
from services.session_service import SessionStore
from shared.crypto import hash_token
from shared.datetime_utils import utcnow
from shared.ip_utils import RequestMeta
from shared.logging import get_logger

log = get_logger(__name__)

# The only fields update_profile() writes. Tenancy and identity stay admin-managed.
EDITABLE_PROFILE_FIELDS = frozenset(ProfileUpdate.model_fields)

# action -> (allowed source statuses, target status)
STATUS_TRANSITIONS: dict[str, tuple[frozenset[AccountStatus], AccountStatus]] = {
    "approve": (frozenset({AccountStatus.PENDING}), AccountStatus.ACTIVE),
    "pause": (frozenset({AccountStatus.ACTIVE}), AccountStatus.PAUSED),
    "activate": (frozenset({AccountStatus.PAUSED}), AccountStatus.ACTIVE),
    "delete": (
        frozenset({AccountStatus.PENDING, AccountStatus.ACTIVE, AccountStatus.PAUSED}),
        AccountStatus.DELETED,
    ),
}

TRANSITION_EVENTS = {
    "approve": "USER_APPROVED",
    "pause": "USER_PAUSED",
    "activate": "USER_ACTIVATED",
    "delete": "USER_DELETED",
}

# Transitions that end every live session of the user.
DEACTIVATING_ACTIONS = frozenset({"pause", "delete"})


def _conflict_field(existing: dict, email: str, username: str, cnic: Optional[str]) -> str:
    if cnic and existing.get("cnic") == cnic:
        return "cnic"
    if existing.get("username") == username:
        return "username"
    return "email"


def _status_flags(status: AccountStatus) -> dict:
    return {
        "account_status": status.value,
        "is_active": status == AccountStatus.ACTIVE,
    }


class CredentialService:
    def __init__(
        self,
        users: UserRepository,
        *,
        policy: PasswordPolicy,
        sessions: SessionStore,
        audit: AuditService,
        max_login_attempts: int = 5,
        lockout_minutes: int = 30,
    ) -> None:
        self._users = users
        self._policy = policy
        self._sessions = sessions
        self._audit = audit
        self._max_attempts = max_login_attempts
        self._lockout = timedelta(minutes=lockout_minutes)

    async def _record(self, kind: str, meta: Optional[RequestMeta], **context: Any) -> None:
        fields = meta.audit_fields() if meta else {}
        fields.update(context)
        await self._audit.record_security_event(kind, SecurityEventContext(**fields))

    async def get_user(self, user_id: Any) -> UserDoc:
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")
        return user

    async def list_institute_members(self, institute_id: Any) -> list[UserDoc]:
        return await self._users.find_by_institute(institute_id)

    # ── registration ────────────────────────────────────────────────────────

    async def register(self, fields: dict, meta: Optional[RequestMeta] = None) -> UserDoc:
        email = fields["email"].strip().lower()
        username = fields["username"].strip().lower()
        cnic = fields.get("cnic") or None

        existing = await self._users.find_conflict(email, username, cnic)
        if existing is not None:
            field = _conflict_field(existing, email, username, cnic)
            raise DuplicateCredentialError(f"User with this {field} already exists", field=field)

        password_hash = await self._policy.hash(fields["password"])
        now = utcnow()
        profile = {
            k: v for k, v in fields.items() if k not in {"email", "username", "password", "cnic"}
        }
        user = UserDoc(
            **profile,
            email=email,
            username=username,
            cnic=cnic,
            password_hash=password_hash,
            account_status=AccountStatus.PENDING,
            is_active=False,
            is_approved=False,
            created_at=now,
            updated_at=now,
        )

        try:
            created = await self._users.insert(user)
        except DuplicateKeyError as exc:
            # Lost a race with a concurrent registration; the unique index caught it.
            key = next(iter((exc.details or {}).get("keyValue") or {"email": None}))
            raise DuplicateCredentialError(
                f"User with this {key} already exists", field=key
            ) from exc

        log.info("user_registered", user_id=str(created.id), role=created.role)
        await self._record(
            "USER_CREATED",
            meta,
            user_id=created.id,
            institute_id=created.institute_id,
            description="New user registered in the system",
            resource_type="User",
            resource_id=str(created.id),
            resource_name=created.display_name,
            status_code=201,
            metadata={"role": created.role, "registration_method": "Self-Registration"},
        )
        return await self.get_user(created.id)

    # ── login / lockout ─────────────────────────────────────────────────────

    async def authenticate(
        self, login: str, password: str, meta: Optional[RequestMeta] = None
    ) -> UserDoc:
        user = await self._users.find_by_login(login, with_secrets=True)
        if user is None:
            log.info("login_failed", reason="unknown_user")
            await self._record(
                "LOGIN_FAILED",
                meta,
                description="Failed login attempt with invalid credentials",
                status="FAILED",
                status_code=401,
                error_code="INVALID_CREDENTIALS",
                metadata={"login_attempt": login, "reason": "User not found"},
            )
            raise AuthenticationError("Invalid credentials", code="INVALID_CREDENTIALS")

        if user.is_locked:
            log.info("login_rejected_locked", user_id=str(user.id))
            await self._record(
                "LOGIN_FAILED",
                meta,
                user_id=user.id,
                institute_id=user.institute_id,
                description="Login attempt on locked account",
                status="FAILED",
                status_code=423,
                error_code="ACCOUNT_LOCKED",
            )
            raise AccountLockedError(
                "Account is temporarily locked due to too many failed login attempts",
                details={"lock_until": user.lock_until.isoformat()},
            )

        if not await self._policy.verify(password, user.password_hash):
            updated = await self.increment_login_attempts(user, meta)
            log.info(
                "login_failed",
                reason="bad_password",
                user_id=str(user.id),
                login_attempts=updated.login_attempts,
            )
            await self._record(
                "LOGIN_FAILED",
                meta,
                user_id=user.id,
                institute_id=user.institute_id,
                description="Failed login attempt with invalid credentials",
                status="FAILED",
                status_code=401,
                error_code="INVALID_CREDENTIALS",
                metadata={"reason": "Invalid password"},
            )
            raise AuthenticationError("Invalid credentials", code="INVALID_CREDENTIALS")

        if not user.is_account_active:
            await self._record(
                "LOGIN_FAILED",
                meta,
                user_id=user.id,
                institute_id=user.institute_id,
                description=f"Login attempt on {user.account_status.value} account",
                status="FAILED",
                status_code=403,
                error_code="ACCOUNT_INACTIVE",
            )
            raise AccountInactiveError(
                f"Account is {user.account_status.value.lower()}. Please contact administrator.",
                details={"account_status": user.account_status.value},
            )

        await self.reset_login_attempts(user.id)
        now = utcnow()
        logged_in = await self._users.set_fields(user.id, {"last_login_at": now})
        log.info("login_succeeded", user_id=str(user.id))
        await self._record(
            "LOGIN",
            meta,
            user_id=user.id,
            institute_id=user.institute_id,
            description="User logged in successfully",
            status_code=200,
        )
        return logged_in

    async def increment_login_attempts(
        self, user: UserDoc, meta: Optional[RequestMeta] = None
    ) -> UserDoc:
        """Count one failed attempt, locking the account at the threshold.

        A lock that has already run out starts a fresh count at 1.
        """
        now = utcnow()
        if user.lock_until is not None and not user.is_locked:
            return await self._users.update(
                user.id,
                {"$set": {"login_attempts": 1, "updated_at": now}, "$unset": {"lock_until": ""}},
            )

        updated = await self._users.update(
            user.id, {"$inc": {"login_attempts": 1}, "$set": {"updated_at": now}}
        )
        if updated.login_attempts >= self._max_attempts and not updated.is_locked:
            lock_until = now + self._lockout
            updated = await self._users.set_fields(user.id, {"lock_until": lock_until})
            log.warning(
                "account_locked",
                user_id=str(user.id),
                login_attempts=updated.login_attempts,
                lock_until=lock_until.isoformat(),
            )
            await self._record(
                "ACCOUNT_LOCKED",
                meta,
                user_id=user.id,
                institute_id=user.institute_id,
                description="Account locked after repeated failed login attempts",
                status="FAILED",
                status_code=423,
                error_code="ACCOUNT_LOCKED",
                metadata={"login_attempts": updated.login_attempts},
            )
        return updated

    async def reset_login_attempts(self, user_id: Any) -> Optional[UserDoc]:
        return await self._users.update(
            user_id, {"$set": {"login_attempts": 0}, "$unset": {"lock_until": ""}}
        )

    async def is_locked(self, user_id: Any) -> bool:
        user = await self.get_user(user_id)
        return user.is_locked

    # ── password lifecycle ──────────────────────────────────────────────────

    async def change_password(
        self,
        user_id: Any,
        current_password: str,
        new_password: str,
        *,
        current_session_id: Any = None,
        meta: Optional[RequestMeta] = None,
    ) -> UserDoc:
        user = await self._users.find_by_id(user_id, with_secrets=True)
        if user is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        if not await self._policy.verify(current_password, user.password_hash):
            raise ValidationError(
                "Current password is incorrect",
                code="INVALID_CURRENT_PASSWORD",
                field="current_password",
            )
        if current_password == new_password:
            raise ValidationError(
                "New password must be different from current password",
                code="SAME_PASSWORD",
                field="new_password",
            )

        password_hash = await self._policy.hash(new_password)
        now = utcnow()
        # One second back so tokens minted right after the change stay valid.
        updated = await self._users.set_fields(
            user.id,
            {
                "password_hash": password_hash,
                "password_changed_at": now - timedelta(seconds=1),
                "updated_at": now,
            },
        )
        revoked = await self._sessions.revoke_all_for_user(
            user.id, RevokeReason.PASSWORD_CHANGE, except_session_id=current_session_id
        )
        log.info("password_changed", user_id=str(user.id), sessions_revoked=revoked)
        await self._record(
            "PASSWORD_CHANGED",
            meta,
            user_id=user.id,
            institute_id=user.institute_id,
            session_id=str(current_session_id) if current_session_id else None,
            description="User changed password",
            metadata={"sessions_revoked": revoked},
        )
        return updated

    async def request_password_reset(
        self, email: str, meta: Optional[RequestMeta] = None
    ) -> Optional[str]:
        """Return a reset token for a known email, or None. Callers must not
        let the difference show in their response."""
        user = await self._users.find_by_email(email)
        if user is None:
            log.info("password_reset_requested", known=False)
            return None

        reset = self._policy.generate_reset_token()
        await self._users.set_fields(
            user.id,
            {
                "password_reset_token_hash": reset.token_hash,
                "password_reset_expires": reset.expires_at,
            },
        )
        log.info("password_reset_requested", known=True, user_id=str(user.id))
        await self._record(
            "PASSWORD_RESET_REQUESTED",
            meta,
            user_id=user.id,
            institute_id=user.institute_id,
            description="Password reset requested",
        )
        return reset.token

    async def reset_password(
        self, token: str, new_password: str, meta: Optional[RequestMeta] = None
    ) -> UserDoc:
        now = utcnow()
        user = await self._users.find_by_reset_token(hash_token(token), now)
        if user is None:
            raise ValidationError("Invalid or expired reset token", code="INVALID_TOKEN")

        password_hash = await self._policy.hash(new_password)
        updated = await self._users.update(
            user.id,
            {
                "$set": {
                    "password_hash": password_hash,
                    "password_changed_at": now - timedelta(seconds=1),
                    "login_attempts": 0,
                    "updated_at": now,
                },
                "$unset": {
                    "password_reset_token_hash": "",
                    "password_reset_expires": "",
                    "lock_until": "",
                },
            },
        )
        revoked = await self._sessions.revoke_all_for_user(user.id, RevokeReason.PASSWORD_RESET)
        log.info("password_reset", user_id=str(user.id), sessions_revoked=revoked)
        await self._record(
            "PASSWORD_RESET",
            meta,
            user_id=user.id,
            institute_id=user.institute_id,
            description="Password reset via token",
            metadata={"sessions_revoked": revoked},
        )
        return updated

    # ── profile / status ────────────────────────────────────────────────────

    async def update_profile(self, user_id: Any, fields: dict) -> UserDoc:
        editable = {k: v for k, v in fields.items() if k in EDITABLE_PROFILE_FIELDS}
        stripped = sorted(set(fields) - set(editable))
        if stripped:
            log.info("profile_fields_stripped", user_id=str(user_id), fields=stripped)
        if not editable:
            return await self.get_user(user_id)

        try:
            profile = ProfileUpdate.model_validate(editable)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid profile data",
                details=[
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in exc.errors()
                ],
            ) from exc

        allowed = profile.model_dump(exclude_unset=True)
        allowed["updated_at"] = utcnow()
        updated = await self._users.set_fields(user_id, allowed)
        if updated is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")
        return updated

    async def transition_status(
        self,
        user_id: Any,
        action: str,
        *,
        actor_id: Any = None,
        meta: Optional[RequestMeta] = None,
    ) -> UserDoc:
        sources, target = STATUS_TRANSITIONS[action]
        user = await self.get_user(user_id)
        if user.account_status not in sources:
            raise ValidationError(
                f"Cannot {action} a user whose status is {user.account_status.value}",
                code="INVALID_STATUS_TRANSITION",
                details={"from": user.account_status.value, "action": action},
            )

        update = _status_flags(target)
        update["updated_at"] = utcnow()
        if action == "approve":
            update["is_approved"] = True
        updated = await self._users.set_fields(user.id, update)

        revoked = 0
        if action in DEACTIVATING_ACTIONS:
            revoked = await self._sessions.revoke_all_for_user(
                user.id, RevokeReason.ACCOUNT_DEACTIVATED
            )

        log.info(
            "account_status_changed",
            user_id=str(user.id),
            action=action,
            from_status=user.account_status.value,
            to_status=target.value,
            sessions_revoked=revoked,
        )
        await self._record(
            TRANSITION_EVENTS[action],
            meta,
            user_id=actor_id,
            institute_id=user.institute_id,
            description=f"User account {action}d",
            resource_type="User",
            resource_id=str(user.id),
            resource_name=user.display_name,
            metadata={"from": user.account_status.value, "to": target.value},
        )
        return updated
