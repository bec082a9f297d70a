"""
Status API routes - Health check for the generation API.

Public endpoint (no auth). Reports database connectivity and which external
credentials are configured, never their values.
"""

import asyncio
from datetime import UTC, datetime

from fastapi import APIRouter
from sqlalchemy import text

from app.config import settings
from app.db.session import get_session
from app.models.api import EnvironmentCheck, HealthResponse
from app.observability.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["status"])

# Timeout for the database check
CHECK_TIMEOUT = 5.0  # seconds


async def check_database() -> bool:
    """Run SELECT 1 against the database."""
    try:
        async with get_session() as session:
            await asyncio.wait_for(session.execute(text("SELECT 1")), timeout=CHECK_TIMEOUT)
        return True
    except Exception as e:
        logger.warning("health_check_database_failed", error=str(e))
        return False


def environment_check() -> EnvironmentCheck:
    """Presence flags for the credentials the pipeline depends on."""
    return EnvironmentCheck(
        gemini_api_key=bool(settings.gemini_api_key),
        auth_jwt_secret=bool(settings.auth_jwt_secret),
        storage_credentials=bool(
            settings.storage_access_key_id and settings.storage_secret_access_key
        ),
        redis_url=bool(settings.redis_url),
    )


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    database_ok = await check_database()
    env = environment_check()
    healthy = database_ok and env.gemini_api_key and env.auth_jwt_secret

    return HealthResponse(
        status="ok" if healthy else "degraded",
        message="Health check passed" if healthy else "Health check found problems",
        database="connected" if database_ok else "disconnected",
        env=env,
        timestamp=datetime.now(UTC).isoformat(),
    )
