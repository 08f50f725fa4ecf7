"""
Audit log document model.

Maps to the `audit-logs` MongoDB collection. Written only through
services.audit_service.AuditService; the auth core treats it as a sink.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from schemas.models.base import MongoBaseModel, PyObjectId


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AuditResource(BaseModel):
    type: str = "System"
    id: Optional[str] = None
    name: Optional[str] = None


class AuditDetails(BaseModel):
    description: str
    metadata: dict[str, Any] = {}


class AuditRequestInfo(BaseModel):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None


class AuditResult(BaseModel):
    status: str  # SUCCESS | FAILED | DENIED
    status_code: Optional[int] = None
    error_code: Optional[str] = None


class AuditSecurity(BaseModel):
    risk_level: RiskLevel = RiskLevel.LOW
    requires_review: bool = False


class AuditLogDoc(MongoBaseModel):
    """Document model for the `audit-logs` collection."""

    user_id: Optional[PyObjectId] = None
    institute_id: Optional[PyObjectId] = None
    action: str
    resource: AuditResource = AuditResource()
    details: AuditDetails
    request_info: AuditRequestInfo = AuditRequestInfo()
    result: AuditResult
    security: AuditSecurity = AuditSecurity()
    timestamp: datetime

    def to_mongo(self) -> dict:
        data = super().to_mongo()
        data["security"]["risk_level"] = self.security.risk_level.value
        return data
