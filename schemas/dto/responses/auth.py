"""
Response DTOs for authentication endpoints.

TokensResponse  — tokens block returned by login / refresh / change-password
LoginResponse   — POST /api/auth/login data
StrengthResponse — POST /api/auth/password-strength data
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasGenerator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelResponse(BaseModel):
    """Dumped with camelCase keys (``accessToken``) for API clients."""

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )

    def to_public(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TokensResponse(CamelResponse):
    access_token: str
    refresh_token: str
    expires_in: int


class SessionRef(CamelResponse):
    id: str


class LoginResponse(CamelResponse):
    user: dict[str, Any]
    tokens: TokensResponse
    session: SessionRef


class StrengthResponse(CamelResponse):
    score: int
    max_score: int
    strength: str
    feedback: list[str]
