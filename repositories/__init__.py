"""
MongoDB repository layer.

Each repository wraps one async collection and speaks document models.
Collections are injected so tests can hand in a double.
"""

from repositories.audit_repository import AuditRepository
from repositories.indexes import (
    AUDIT_LOGS_COLLECTION,
    ROLE_PERMISSIONS_COLLECTION,
    SESSIONS_COLLECTION,
    USERS_COLLECTION,
    ensure_indexes,
)
from repositories.role_repository import RoleRepository
from repositories.session_repository import SessionRepository
from repositories.user_repository import UserRepository

__all__ = [
    "AuditRepository",
    "RoleRepository",
    "SessionRepository",
    "UserRepository",
    "ensure_indexes",
    "USERS_COLLECTION",
    "SESSIONS_COLLECTION",
    "ROLE_PERMISSIONS_COLLECTION",
    "AUDIT_LOGS_COLLECTION",
]
