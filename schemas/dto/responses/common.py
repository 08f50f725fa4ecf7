"""
Common response DTOs shared across multiple endpoints.

SuccessResponse  — {success, message, data} envelope for every 2xx body
HealthResponse   — GET /health

Every JSON body leaves the service with camelCase keys. Documents and
services work in snake_case; camelize() converts at the edge.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def _camel_key(key: Any) -> Any:
    # "_id" and already-camelCase keys pass through unchanged
    if isinstance(key, str) and "_" in key.strip("_"):
        return to_camel(key)
    return key


def camelize(value: Any) -> Any:
    """Recursively rewrite snake_case dict keys as camelCase."""
    if isinstance(value, dict):
        return {_camel_key(k): camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize(v) for v in value]
    return value


class SuccessResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    data: Optional[Any] = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    checks: dict[str, str]


def success(data: Any = None, message: str = "OK", status_code: int = 200) -> JSONResponse:
    body = SuccessResponse(message=message, data=data)
    return JSONResponse(
        status_code=status_code, content=camelize(jsonable_encoder(body.model_dump()))
    )
