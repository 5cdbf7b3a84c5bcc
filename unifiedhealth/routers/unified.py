"""Read-only endpoints over the unified daily artifact."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from unifiedhealth.dependencies import AppSettings, UnifiedRecords
from unifiedhealth.models.base import ErrorDetail
from unifiedhealth.models.unified import (
    MetricSummaryRead,
    MovingAverageRead,
    PriorityTableRead,
    UnifiedDailyEnvelope,
    UnifiedDailyRead,
)
from unifiedhealth.wearables.aggregation import metric_points, moving_average, summarize_metric
from unifiedhealth.wearables.base import MetricSpec, get_metric
from unifiedhealth.wearables.pipeline import resolve_priority_table
from unifiedhealth.wearables.priority import PriorityConfigError

router = APIRouter(prefix="/unified", tags=["unified"])
_NOT_FOUND = {404: {"model": ErrorDetail}}
logger = logging.getLogger("unifiedhealth.routers.unified")


def _metric_or_404(metric: str) -> MetricSpec:
    try:
        return get_metric(metric)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown metric '{metric}'") from None


# ---------- Daily records ----------

@router.get("/daily", response_model=UnifiedDailyEnvelope)
async def list_daily(
    records: UnifiedRecords,
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
) -> Any:
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="start must be on or before end")
    selected = [
        r for r in records
        if (start is None or r.day >= start) and (end is None or r.day <= end)
    ]
    return {"data": [r.to_dict() for r in selected]}


@router.get("/daily/{day}", response_model=UnifiedDailyRead, responses=_NOT_FOUND)
async def get_daily(day: date, records: UnifiedRecords) -> Any:
    for record in records:
        if record.day == day:
            return record.to_dict()
    raise HTTPException(status_code=404, detail=f"No unified record for {day.isoformat()}")


# ---------- Metric aggregates ----------

@router.get("/metrics/{metric}/summary", response_model=MetricSummaryRead, responses=_NOT_FOUND)
async def metric_summary(
    metric: str,
    records: UnifiedRecords,
    days: int = Query(default=90, ge=1, le=3650),
    as_of: date | None = Query(default=None),
) -> Any:
    spec = _metric_or_404(metric)
    return summarize_metric(records, spec.name, days=days, as_of=as_of).to_dict()


@router.get("/metrics/{metric}/moving-average", response_model=MovingAverageRead, responses=_NOT_FOUND)
async def metric_moving_average(
    metric: str,
    records: UnifiedRecords,
    window_days: int = Query(default=30, ge=1, le=365),
) -> Any:
    spec = _metric_or_404(metric)
    points = moving_average(
        metric_points(records, spec.name),
        window_days=window_days,
        decimals=max(spec.decimals, 1),
    )
    return {
        "metric": spec.name,
        "windowDays": window_days,
        "points": [{"date": d, "value": v} for d, v in points],
    }


# ---------- Priority table ----------

@router.get("/priorities", response_model=PriorityTableRead)
async def get_priorities(settings: AppSettings) -> Any:
    try:
        table = resolve_priority_table(settings)
    except PriorityConfigError as exc:
        logger.error("Priority table invalid: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"version": table.version, "priorities": table.to_list()}
