"""Health check endpoints for the DailyDrop API.

- /health - liveness with LLM credential presence (no API call)
- /health/db - database connection pool metrics
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from dailydrop.config import APP_VERSION
from dailydrop.infrastructure.database import get_pool_stats

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Service status, version, and credential readiness for Gemini."""
    has_api_key = bool(os.getenv("GOOGLE_API_KEY"))
    has_project = bool(os.getenv("GOOGLE_CLOUD_PROJECT"))

    return {
        "status": "healthy",
        "service": "DailyDrop API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "llm": {
            "ready": has_api_key or has_project,
            "google_api_key": has_api_key,
            "google_cloud_project": has_project,
        },
    }


@router.get("/health/db")
async def database_health() -> dict[str, Any]:
    """Connection pool health. Degraded above 80% usage."""
    stats = get_pool_stats()
    usage_percent = stats["usage_percent"]

    return {
        "status": "degraded" if usage_percent > 80 else "healthy",
        "pool": stats,
        "warning": "Pool usage high" if usage_percent > 80 else None,
    }
