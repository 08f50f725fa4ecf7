"""
User administration routes, mounted under /api/users.

GET    /security-events                  — audit entries awaiting review (SystemAdmin)
GET    /institutes/{institute_id}/members — users of one institute (tenant guarded)
GET    /{user_id}                        — one user (owner or admin)
PATCH  /{user_id}/approve|pause|activate — account status transitions (admin)
DELETE /{user_id}                        — soft delete (admin)
POST   /{user_id}/revoke-sessions        — end every session of a user (admin)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from dependencies import get_audit_service, get_credential_service, get_token_service
from middleware.authentication import AuthContext
from middleware.authorization import (
    require_institute_access,
    require_resource_ownership,
    require_role,
)
from schemas.dto.responses.common import success
from schemas.models.session import RevokeReason
from schemas.models.user import Role
from services.audit_service import AuditService, SecurityEventContext
from services.credential_service import CredentialService
from services.token_service import TokenService
from shared.ip_utils import RequestMeta

router = APIRouter(prefix="/api/users", tags=["users"])

require_admin = require_role(Role.SYSTEM_ADMIN.value, Role.INSTITUTE_ADMIN.value)
require_system_admin = require_role(Role.SYSTEM_ADMIN.value)


@router.get("/security-events")
async def security_events(
    limit: int = Query(50, ge=1, le=200),
    auth: AuthContext = Depends(require_system_admin),
    audit: AuditService = Depends(get_audit_service),
) -> JSONResponse:
    entries = await audit.pending_review(limit)
    return success(
        {"events": [e.model_dump(mode="json") for e in entries]},
        message="Security events retrieved",
    )


@router.get("/institutes/{institute_id}/members")
async def institute_members(
    institute_id: str,
    auth: AuthContext = Depends(require_institute_access("institute_id")),
    credentials: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    users = await credentials.list_institute_members(institute_id)
    return success({"users": [u.to_public() for u in users]}, message="Members retrieved")


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    auth: AuthContext = Depends(require_resource_ownership("user_id")),
    credentials: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    user = await credentials.get_user(user_id)
    return success({"user": user.to_public()}, message="User retrieved")


async def _transition(
    request: Request,
    credentials: CredentialService,
    auth: AuthContext,
    user_id: str,
    action: str,
) -> JSONResponse:
    user = await credentials.transition_status(
        user_id, action, actor_id=auth.user.id, meta=RequestMeta.from_request(request)
    )
    return success({"user": user.to_public()}, message=f"User {action}d successfully")


@router.patch("/{user_id}/approve")
async def approve_user(
    user_id: str,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    credentials: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    return await _transition(request, credentials, auth, user_id, "approve")


@router.patch("/{user_id}/pause")
async def pause_user(
    user_id: str,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    credentials: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    return await _transition(request, credentials, auth, user_id, "pause")


@router.patch("/{user_id}/activate")
async def activate_user(
    user_id: str,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    credentials: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    return await _transition(request, credentials, auth, user_id, "activate")


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    credentials: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    return await _transition(request, credentials, auth, user_id, "delete")


@router.post("/{user_id}/revoke-sessions")
async def revoke_user_sessions(
    user_id: str,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    credentials: CredentialService = Depends(get_credential_service),
    tokens: TokenService = Depends(get_token_service),
    audit: AuditService = Depends(get_audit_service),
) -> JSONResponse:
    target = await credentials.get_user(user_id)
    count = await tokens.revoke_all_user_sessions(target.id, RevokeReason.ADMIN_REVOKED)
    await audit.record_security_event(
        "SESSIONS_REVOKED",
        SecurityEventContext(
            user_id=auth.user.id,
            institute_id=target.institute_id,
            session_id=auth.session_id,
            description="Administrator revoked all sessions of a user",
            resource_type="User",
            resource_id=str(target.id),
            resource_name=target.display_name,
            metadata={"sessions_revoked": count},
            **RequestMeta.from_request(request).audit_fields(),
        ),
    )
    return success({"sessions_revoked": count}, message="User sessions revoked")
