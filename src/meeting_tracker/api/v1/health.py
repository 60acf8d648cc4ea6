"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks for the
container orchestrator.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.meeting_tracker.config import get_settings
from src.meeting_tracker.core.database import get_engine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check.

    No external dependencies are checked -- just that the server is running.
    """
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check database connectivity and report optional integrations."""
    checks: dict = {"database": "ok"}

    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    # Optional collaborators degrade features, not readiness
    settings = get_settings()
    checks["llm"] = "ok" if (settings.ANTHROPIC_API_KEY or settings.OPENAI_API_KEY) else "no_keys"
    checks["transcription"] = "ok" if settings.VEXA_API_KEY else "not_configured"
    checks["email"] = (
        "ok" if getattr(request.app.state, "email_configured", False) else "not_configured"
    )
    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: verifies DB connectivity.

    Returns 200 if the database answers, 503 otherwise.
    """
    checks = await _check_dependencies(request)
    healthy = checks.get("database") == "ok"

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if healthy else "degraded",
            "checks": checks,
        },
    )
