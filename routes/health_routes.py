"""
Health check endpoint.

GET /health — checks MongoDB connectivity.
MongoDB failure → "unhealthy" (503); the service cannot authenticate anyone
without it.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dependencies import get_db
from schemas.dto.responses.common import HealthResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(db=Depends(get_db)) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        await db.client.admin.command("ping")
        checks["mongodb"] = "ok"
    except Exception as exc:
        log.warning("health_check_failed", dependency="mongodb", error=str(exc))
        checks["mongodb"] = "error"
        overall = "unhealthy"

    body = HealthResponse(status=overall, checks=checks)
    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=body.model_dump())
