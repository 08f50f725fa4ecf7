"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from repositories import (
    AUDIT_LOGS_COLLECTION,
    ROLE_PERMISSIONS_COLLECTION,
    SESSIONS_COLLECTION,
    USERS_COLLECTION,
    AuditRepository,
    RoleRepository,
    SessionRepository,
    UserRepository,
    ensure_indexes,
)
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from routes.user_routes import router as user_router
from services.audit_service import AuditService
from services.credential_service import CredentialService
from services.password_policy import PasswordPolicy
from services.role_service import RoleService
from services.session_service import SessionStore
from services.token_service import TokenService
from shared.logging import get_logger, setup_logging
from workers.session_cleanup import start_cleanup_task, stop_cleanup_task

log = get_logger(__name__)


def install_services(app: FastAPI, db, settings: AppSettings) -> None:
    """Build repositories and services over *db* and store them on app.state."""
    security = settings.security

    users = UserRepository(db[USERS_COLLECTION])
    sessions = SessionStore(
        SessionRepository(db[SESSIONS_COLLECTION]),
        session_ttl_days=security.session_ttl_days,
    )
    roles = RoleService(RoleRepository(db[ROLE_PERMISSIONS_COLLECTION]))
    audit = AuditService(AuditRepository(db[AUDIT_LOGS_COLLECTION]))
    policy = PasswordPolicy(
        time_cost=security.password_hash_time_cost,
        memory_cost=security.password_hash_memory_cost,
        reset_token_ttl_minutes=security.password_reset_ttl_minutes,
    )

    app.state.settings = settings
    app.state.db = db
    app.state.password_policy = policy
    app.state.audit_service = audit
    app.state.role_service = roles
    app.state.session_store = sessions
    app.state.token_service = TokenService(
        settings.jwt, sessions=sessions, users=users, roles=roles
    )
    app.state.credential_service = CredentialService(
        users,
        policy=policy,
        sessions=sessions,
        audit=audit,
        max_login_attempts=security.max_login_attempts,
        lockout_minutes=security.lockout_time,
    )


def include_routers(app: FastAPI, settings: AppSettings) -> None:
    register_error_handlers(app, debug=settings.is_development)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(user_router)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging.log_level, settings.logging.log_format)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            environment=settings.env,
        )

    if settings.jwt.uses_fallback_secrets:
        log.warning("jwt_fallback_secrets_in_use", env=settings.env)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, tz_aware=True
        )
        app.state.mongo_client = mongo_client
        db = mongo_client[settings.db.db_name]
        install_services(app, db, settings)
        await ensure_indexes(db)

        cleanup_task = start_cleanup_task(
            app.state.session_store, settings.security.session_cleanup_interval_seconds
        )
        log.info("app_started", env=settings.env, db_name=settings.db.db_name)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await stop_cleanup_task(cleanup_task)
        await mongo_client.close()
        log.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    include_routers(app, settings)

    return app
