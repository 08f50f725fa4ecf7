"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Services are built once in the app lifespan
(see app.install_services) and stored on app.state.
"""

from __future__ import annotations

from fastapi import Request

from config import AppSettings
from services.audit_service import AuditService
from services.credential_service import CredentialService
from services.password_policy import PasswordPolicy
from services.role_service import RoleService
from services.session_service import SessionStore
from services.token_service import TokenService


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


async def get_db(request: Request):
    """Return the async MongoDB database from app.state."""
    return request.app.state.db


def get_password_policy(request: Request) -> PasswordPolicy:
    return request.app.state.password_policy


def get_audit_service(request: Request) -> AuditService:
    return request.app.state.audit_service


def get_role_service(request: Request) -> RoleService:
    return request.app.state.role_service


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_credential_service(request: Request) -> CredentialService:
    return request.app.state.credential_service
