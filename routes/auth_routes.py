"""
Authentication routes, mounted under /api/auth.

POST   /register                 — create a Pending account
POST   /login                    — credentials → token pair + session
POST   /refresh                  — rotate tokens for a refresh token
POST   /logout                   — revoke the current session
POST   /logout-all               — revoke every session of the caller
GET    /sessions                 — caller's active devices
DELETE /sessions/{session_id}    — revoke one of the caller's sessions
POST   /forgot-password          — issue a reset token (always 200)
POST   /reset-password/{token}   — set a new password with a reset token
GET    /me                       — current user
PUT    /profile                  — update profile fields
POST   /change-password          — change password, keep this session
GET    /password-policy          — password requirements
POST   /password-strength        — score a candidate password
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from config import AppSettings
from dependencies import (
    get_audit_service,
    get_credential_service,
    get_password_policy,
    get_role_service,
    get_settings,
    get_token_service,
)
from errors import AppError, AuthenticationError, NotFoundError, ValidationError
from middleware.authentication import AuthContext, require_auth
from schemas.dto.requests.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    PasswordStrengthRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
)
from schemas.dto.responses.auth import (
    LoginResponse,
    SessionRef,
    StrengthResponse,
    TokensResponse,
)
from schemas.dto.responses.common import success
from schemas.models.session import RevokeReason
from services.audit_service import AuditService, SecurityEventContext
from services.credential_service import CredentialService
from services.password_policy import PasswordPolicy
from services.role_service import RoleService
from services.token_service import TokenPair, TokenService
from shared.ip_utils import RequestMeta
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _tokens(pair: TokenPair) -> TokensResponse:
    return TokensResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


@router.post("/register")
async def register(
    body: RegisterRequest,
    request: Request,
    credentials: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    user = await credentials.register(body.to_fields(), RequestMeta.from_request(request))
    return success(
        {"user": user.to_public(), "status": "pending approval"},
        message="Registration successful. Your account is pending approval.",
    )


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    credentials: CredentialService = Depends(get_credential_service),
    tokens: TokenService = Depends(get_token_service),
) -> JSONResponse:
    meta = RequestMeta.from_request(request)
    user = await credentials.authenticate(body.login, body.password, meta)
    pair = await tokens.issue_pair(
        user,
        user_agent=meta.user_agent,
        ip_address=meta.ip_address,
        device_id=meta.device_id,
    )
    data = LoginResponse(
        user=user.to_public(),
        tokens=_tokens(pair),
        session=SessionRef(id=pair.session_id),
    )
    return success(data.to_public(), message="Login successful")


@router.post("/refresh")
async def refresh(
    body: RefreshRequest,
    tokens: TokenService = Depends(get_token_service),
) -> JSONResponse:
    if not body.refresh_token:
        raise ValidationError(
            "Refresh token is required", code="REFRESH_TOKEN_REQUIRED", field="refresh_token"
        )
    try:
        pair = await tokens.refresh(body.refresh_token)
    except AppError as exc:
        if exc.status_code not in (401, 403):
            raise
        log.info("token_refresh_rejected", code=exc.error_code)
        raise AuthenticationError(
            "Invalid or expired refresh token", code="INVALID_REFRESH_TOKEN"
        ) from exc
    return success(_tokens(pair).to_public(), message="Token refreshed successfully")


@router.post("/logout")
async def logout(
    request: Request,
    auth: AuthContext = Depends(require_auth),
    tokens: TokenService = Depends(get_token_service),
    audit: AuditService = Depends(get_audit_service),
) -> JSONResponse:
    await tokens.revoke_session(auth.session.id, RevokeReason.USER_LOGOUT)
    await audit.record_security_event(
        "LOGOUT",
        SecurityEventContext(
            user_id=auth.user.id,
            institute_id=auth.user.institute_id,
            session_id=auth.session_id,
            description="User logged out",
            **RequestMeta.from_request(request).audit_fields(),
        ),
    )
    return success(message="Logout successful")


@router.post("/logout-all")
async def logout_all(
    request: Request,
    auth: AuthContext = Depends(require_auth),
    tokens: TokenService = Depends(get_token_service),
    audit: AuditService = Depends(get_audit_service),
) -> JSONResponse:
    count = await tokens.revoke_all_user_sessions(auth.user.id, RevokeReason.USER_LOGOUT_ALL)
    await audit.record_security_event(
        "SESSIONS_REVOKED",
        SecurityEventContext(
            user_id=auth.user.id,
            institute_id=auth.user.institute_id,
            session_id=auth.session_id,
            description="User logged out from all devices",
            metadata={"sessions_revoked": count},
            **RequestMeta.from_request(request).audit_fields(),
        ),
    )
    return success({"sessions_revoked": count}, message="Logged out from all devices")


@router.get("/sessions")
async def list_sessions(
    auth: AuthContext = Depends(require_auth),
    tokens: TokenService = Depends(get_token_service),
) -> JSONResponse:
    sessions = await tokens.list_sessions(auth.user.id)
    return success(
        {"sessions": [s.to_public(auth.session.id) for s in sessions]},
        message="Active sessions retrieved",
    )


@router.delete("/sessions/{session_id}")
async def revoke_session(
    session_id: str,
    auth: AuthContext = Depends(require_auth),
    tokens: TokenService = Depends(get_token_service),
) -> JSONResponse:
    owned = {str(s.id) for s in await tokens.list_sessions(auth.user.id)}
    if session_id not in owned:
        raise NotFoundError("Session not found", code="SESSION_NOT_FOUND")
    await tokens.revoke_session(session_id, RevokeReason.USER_LOGOUT)
    return success(message="Session revoked")


@router.post("/forgot-password")
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    credentials: CredentialService = Depends(get_credential_service),
    settings: AppSettings = Depends(get_settings),
) -> JSONResponse:
    token = await credentials.request_password_reset(
        body.email, RequestMeta.from_request(request)
    )
    data = None
    # TODO: send the token through an email provider instead of returning it.
    if token is not None and not settings.is_production:
        data = {"reset_token": token}
    return success(
        data,
        message="If an account with that email exists, a password reset link has been sent.",
    )


@router.post("/reset-password/{token}")
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    request: Request,
    credentials: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    await credentials.reset_password(token, body.new_password, RequestMeta.from_request(request))
    return success(message="Password reset successful. Please log in with your new password.")


@router.get("/me")
async def me(
    auth: AuthContext = Depends(require_auth),
    roles: RoleService = Depends(get_role_service),
) -> JSONResponse:
    user = auth.user.to_public()
    user["permissions"] = sorted(await roles.effective_permissions(auth.user))
    return success({"user": user}, message="User retrieved")


@router.put("/profile")
async def update_profile(
    body: UpdateProfileRequest,
    auth: AuthContext = Depends(require_auth),
    credentials: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    user = await credentials.update_profile(auth.user.id, body.to_fields())
    return success({"user": user.to_public()}, message="Profile updated successfully")


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    credentials: CredentialService = Depends(get_credential_service),
    tokens: TokenService = Depends(get_token_service),
) -> JSONResponse:
    user = await credentials.change_password(
        auth.user.id,
        body.current_password,
        body.new_password,
        current_session_id=auth.session.id,
        meta=RequestMeta.from_request(request),
    )
    # Tokens minted before the change no longer validate; re-issue for this session.
    pair = await tokens.rotate(auth.session, user)
    return success(
        {"tokens": _tokens(pair).to_public()}, message="Password changed successfully"
    )


@router.get("/password-policy")
async def password_policy(policy: PasswordPolicy = Depends(get_password_policy)) -> JSONResponse:
    return success(policy.describe(), message="Password policy retrieved")


@router.post("/password-strength")
async def password_strength(
    body: PasswordStrengthRequest,
    policy: PasswordPolicy = Depends(get_password_policy),
) -> JSONResponse:
    result = policy.score(body.password)
    data = StrengthResponse(
        score=result.score,
        max_score=result.max_score,
        strength=result.strength,
        feedback=result.feedback,
    ).to_public()
    data["violations"] = [v.value for v in policy.validate(body.password).violations]
    return success(data, message="Password strength calculated")
