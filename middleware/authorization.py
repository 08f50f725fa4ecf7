"""
Authorization guards as FastAPI dependency factories.

Each factory returns a dependency that runs require_auth first, so routes
only list the guard:

    @router.get("/{user_id}", dependencies=[Depends(require_resource_ownership("user_id"))])

Every denial is recorded through AuditService.record_security_event() and
raised as a ForbiddenError with a specific code. Cross-institute and
resource-ownership denials are HIGH risk and flagged for review.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from fastapi import Depends, Request

from dependencies import get_audit_service, get_role_service
from errors import ForbiddenError, ValidationError
from middleware.authentication import AuthContext, require_auth
from schemas.models.audit import RiskLevel
from schemas.models.user import OWNERSHIP_BYPASS_ROLES, TENANT_BYPASS_ROLES
from services.audit_service import AuditService, SecurityEventContext
from services.role_service import RoleService
from shared.ip_utils import RequestMeta
from shared.logging import get_logger

log = get_logger(__name__)


async def _request_value(request: Request, name: str) -> Optional[str]:
    """Look *name* up in path params, then query string, then a JSON body."""
    value = request.path_params.get(name) or request.query_params.get(name)
    if value:
        return str(value)
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return None
        if isinstance(body, dict) and body.get(name):
            return str(body[name])
    return None


async def _deny(
    request: Request,
    audit: AuditService,
    auth: AuthContext,
    *,
    kind: str,
    code: str,
    message: str,
    risk: RiskLevel = RiskLevel.MEDIUM,
    metadata: Optional[dict[str, Any]] = None,
) -> ForbiddenError:
    meta = RequestMeta.from_request(request)
    log.warning(
        "access_denied",
        code=code,
        user_id=auth.user_id,
        role=auth.user.role,
        path=meta.endpoint,
    )
    await audit.record_security_event(
        kind,
        SecurityEventContext(
            user_id=auth.user.id,
            institute_id=auth.user.institute_id,
            session_id=auth.session_id,
            description=message,
            status="DENIED",
            status_code=403,
            error_code=code,
            risk_level=risk,
            metadata=metadata or {},
            **meta.audit_fields(),
        ),
    )
    return ForbiddenError(message, code=code)


def require_role(*allowed_roles: str) -> Callable:
    allowed = frozenset(allowed_roles)

    async def dependency(
        request: Request,
        auth: AuthContext = Depends(require_auth),
        audit: AuditService = Depends(get_audit_service),
    ) -> AuthContext:
        if auth.user.role not in allowed:
            raise await _deny(
                request,
                audit,
                auth,
                kind="ACCESS_DENIED",
                code="INSUFFICIENT_ROLE",
                message="Insufficient role privileges",
                metadata={"required_roles": sorted(allowed), "user_role": auth.user.role},
            )
        return auth

    return dependency


def require_permission(permission: str, scope: Optional[str] = None) -> Callable:
    async def dependency(
        request: Request,
        auth: AuthContext = Depends(require_auth),
        roles: RoleService = Depends(get_role_service),
        audit: AuditService = Depends(get_audit_service),
    ) -> AuthContext:
        granted = await roles.effective_permissions(auth.user)
        if permission not in granted:
            raise await _deny(
                request,
                audit,
                auth,
                kind="ACCESS_DENIED",
                code="INSUFFICIENT_PERMISSION",
                message=f"Permission '{permission}' is required",
                metadata={"required_permission": permission, "required_scope": scope},
            )
        return auth

    return dependency


def require_any_permission(permissions: Iterable[str]) -> Callable:
    wanted = frozenset(permissions)

    async def dependency(
        request: Request,
        auth: AuthContext = Depends(require_auth),
        roles: RoleService = Depends(get_role_service),
        audit: AuditService = Depends(get_audit_service),
    ) -> AuthContext:
        granted = await roles.effective_permissions(auth.user)
        if not wanted & granted:
            raise await _deny(
                request,
                audit,
                auth,
                kind="ACCESS_DENIED",
                code="INSUFFICIENT_PERMISSION",
                message="One of the required permissions is missing",
                metadata={"required_permissions": sorted(wanted)},
            )
        return auth

    return dependency


def require_institute_access(param: str = "institute_id") -> Callable:
    async def dependency(
        request: Request,
        auth: AuthContext = Depends(require_auth),
        audit: AuditService = Depends(get_audit_service),
    ) -> AuthContext:
        if auth.user.role in TENANT_BYPASS_ROLES:
            return auth

        requested = await _request_value(request, param)
        if not requested:
            raise ValidationError("Institute ID is required", code="INSTITUTE_ID_REQUIRED")

        own = str(auth.user.institute_id) if auth.user.institute_id else None
        if own != requested:
            raise await _deny(
                request,
                audit,
                auth,
                kind="CROSS_INSTITUTE_ACCESS_DENIED",
                code="CROSS_INSTITUTE_ACCESS_DENIED",
                message="Access denied to resources of another institute",
                risk=RiskLevel.HIGH,
                metadata={"requested_institute": requested, "user_institute": own},
            )
        return auth

    return dependency


def require_resource_ownership(param: str = "user_id") -> Callable:
    async def dependency(
        request: Request,
        auth: AuthContext = Depends(require_auth),
        audit: AuditService = Depends(get_audit_service),
    ) -> AuthContext:
        if auth.user.role in OWNERSHIP_BYPASS_ROLES:
            return auth

        owner_id = await _request_value(request, param)
        if not owner_id:
            raise ValidationError("User ID is required", code="USER_ID_REQUIRED")

        if owner_id != auth.user_id:
            raise await _deny(
                request,
                audit,
                auth,
                kind="RESOURCE_ACCESS_DENIED",
                code="RESOURCE_ACCESS_DENIED",
                message="You can only access your own resources",
                risk=RiskLevel.HIGH,
                metadata={"resource_owner": owner_id},
            )
        return auth

    return dependency
