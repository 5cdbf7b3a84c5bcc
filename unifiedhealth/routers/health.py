"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from unifiedhealth.dependencies import AppSettings, Store

router = APIRouter(tags=["system"])
logger = logging.getLogger("unifiedhealth.health")


@router.get("/health")
async def health_check(settings: AppSettings, store: Store) -> dict:
    """Liveness check. Returns 200 if the API process is up.

    Also reports whether the unified artifact has been built yet.
    """
    artifact_ok = store.exists()
    if not artifact_ok:
        logger.warning("Health check: unified artifact missing at %s", store.path)

    return {
        "status": "healthy" if artifact_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "artifact": "present" if artifact_ok else "missing",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
