"""
Security-event recorder.

Every audit entry in the system is built by AuditService.record_security_event(),
so entry shape and risk assignment live in one place. Writing an audit entry
is best-effort: a failed insert is logged and swallowed, never raised into the
request that produced the event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from repositories.audit_repository import AuditRepository
from schemas.models.audit import (
    AuditDetails,
    AuditLogDoc,
    AuditRequestInfo,
    AuditResource,
    AuditResult,
    AuditSecurity,
    RiskLevel,
)
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)


# Default risk by event kind. Kinds not listed are LOW.
EVENT_RISK: dict[str, RiskLevel] = {
    "LOGIN_FAILED": RiskLevel.MEDIUM,
    "ACCOUNT_LOCKED": RiskLevel.HIGH,
    "PASSWORD_CHANGED": RiskLevel.MEDIUM,
    "PASSWORD_RESET_REQUESTED": RiskLevel.MEDIUM,
    "PASSWORD_RESET": RiskLevel.MEDIUM,
    "AUTHENTICATION_FAILED": RiskLevel.MEDIUM,
    "ACCESS_DENIED": RiskLevel.MEDIUM,
    "CROSS_INSTITUTE_ACCESS_DENIED": RiskLevel.HIGH,
    "RESOURCE_ACCESS_DENIED": RiskLevel.HIGH,
    "SESSIONS_REVOKED": RiskLevel.MEDIUM,
    "USER_DELETED": RiskLevel.HIGH,
    "USER_PAUSED": RiskLevel.MEDIUM,
    "SECURITY_BREACH": RiskLevel.CRITICAL,
}

REVIEW_LEVELS = frozenset({RiskLevel.HIGH, RiskLevel.CRITICAL})


def risk_for(kind: str, override: Optional[RiskLevel] = None) -> RiskLevel:
    if override is not None:
        return override
    return EVENT_RISK.get(kind, RiskLevel.LOW)


@dataclass
class SecurityEventContext:
    """Everything a caller knows about an event; all fields optional."""

    description: str = ""
    user_id: Any = None
    institute_id: Any = None
    status: str = "SUCCESS"  # SUCCESS | FAILED | DENIED
    status_code: Optional[int] = None
    error_code: Optional[str] = None
    resource_type: str = "System"
    resource_id: Optional[str] = None
    resource_name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    metadata: dict[str, Any] = field(default_factory=dict)


def build_audit_entry(kind: str, context: SecurityEventContext) -> AuditLogDoc:
    risk = risk_for(kind, context.risk_level)
    return AuditLogDoc(
        user_id=context.user_id,
        institute_id=context.institute_id,
        action=kind,
        resource=AuditResource(
            type=context.resource_type,
            id=context.resource_id,
            name=context.resource_name,
        ),
        details=AuditDetails(
            description=context.description or kind, metadata=context.metadata
        ),
        request_info=AuditRequestInfo(
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            session_id=context.session_id,
            endpoint=context.endpoint,
            method=context.method,
        ),
        result=AuditResult(
            status=context.status,
            status_code=context.status_code,
            error_code=context.error_code,
        ),
        security=AuditSecurity(risk_level=risk, requires_review=risk in REVIEW_LEVELS),
        timestamp=utcnow(),
    )


class AuditService:
    def __init__(self, audit_repo: AuditRepository) -> None:
        self._repo = audit_repo

    async def record_security_event(
        self, kind: str, context: SecurityEventContext
    ) -> Optional[AuditLogDoc]:
        """Persist one audit entry. Returns None if the write failed."""
        try:
            entry = build_audit_entry(kind, context)
            saved = await self._repo.insert(entry)
        except Exception as exc:
            log.error(
                "audit_write_failed",
                action=kind,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        log.info(
            "security_event_recorded",
            action=kind,
            risk_level=saved.security.risk_level.value,
            requires_review=saved.security.requires_review,
            user_id=str(context.user_id) if context.user_id else None,
        )
        return saved

    async def pending_review(self, limit: int = 50) -> list[AuditLogDoc]:
        return await self._repo.find_requiring_review(limit)
