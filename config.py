"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

The refresh-token secret falls back to a value derived from JWT_SECRET when
JWT_REFRESH_SECRET is unset. That fallback, and a missing JWT_SECRET, are
rejected at start-up when ENV=production (see AppSettings validator).
"""

from __future__ import annotations

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Development-only signing secret used when JWT_SECRET is unset.
DEVELOPMENT_JWT_SECRET = "development-secret-change-in-production"
REFRESH_SECRET_SUFFIX = "-refresh"


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "college-portal"


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "pgc-system"
    jwt_audience: str = "pgc-client"
    jwt_access_expire: str = "15m"
    jwt_refresh_expire: str = "7d"

    jwt_secret: str = ""
    jwt_refresh_secret: str = ""

    @property
    def access_secret(self) -> str:
        return self.jwt_secret or DEVELOPMENT_JWT_SECRET

    @property
    def refresh_secret(self) -> str:
        return self.jwt_refresh_secret or self.access_secret + REFRESH_SECRET_SUFFIX

    @property
    def uses_fallback_secrets(self) -> bool:
        return not self.jwt_secret or not self.jwt_refresh_secret


class SecuritySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # argon2id cost parameters (argon2-cffi defaults)
    password_hash_time_cost: int = 3
    password_hash_memory_cost: int = 65536

    max_login_attempts: int = 5
    lockout_time: int = 30  # minutes
    password_reset_ttl_minutes: int = 10
    session_ttl_days: int = 7
    session_cleanup_interval_seconds: int = 3600


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: str = "development"
    app_name: str = "college-portal"

    cors_origins: list[str] = ["*"]

    docs_url: Optional[str] = "/docs"

    db: Optional[DatabaseSettings] = None
    jwt: Optional[JWTSettings] = None
    security: Optional[SecuritySettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        if self.db is None:
            self.db = DatabaseSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.security is None:
            self.security = SecuritySettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        if self.is_production and self.jwt.uses_fallback_secrets:
            raise ValueError(
                "JWT_SECRET and JWT_REFRESH_SECRET must both be set in production"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def is_development(self) -> bool:
        return self.env == "development"
