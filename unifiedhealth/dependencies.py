"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException

from unifiedhealth.config import Settings, get_settings
from unifiedhealth.wearables.base import UnifiedDailyRecord
from unifiedhealth.wearables.store import UnifiedStore, UnifiedStoreError

logger = logging.getLogger("unifiedhealth.dependencies")


def get_store(settings: Annotated[Settings, Depends(get_settings)]) -> UnifiedStore:
    return UnifiedStore(settings.unified_path)


def get_unified_records(
    store: Annotated[UnifiedStore, Depends(get_store)],
) -> list[UnifiedDailyRecord]:
    """Load the artifact for one request.

    A missing artifact reads as an empty dataset; a corrupt one is a server error.
    """
    try:
        return store.read()
    except UnifiedStoreError as exc:
        logger.error("Unified artifact unreadable: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


# Annotated shortcuts for route signatures
AppSettings = Annotated[Settings, Depends(get_settings)]
Store = Annotated[UnifiedStore, Depends(get_store)]
UnifiedRecords = Annotated[list[UnifiedDailyRecord], Depends(get_unified_records)]
