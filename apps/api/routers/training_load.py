"""
Training Load Router

Exposes training load metrics:
- CTL/ATL/TSB for a day
- Load history for charting
- Training phase and form zone
"""

from fastapi import APIRouter, Depends, Query
from datetime import date
from typing import Optional

from core.exceptions import ValidationError
from routers.scores import get_scoring_service
from schemas import LoadSummaryResponse, TrainingLoadPointResponse, TrainingLoadRangeResponse
from services.scoring_service import ScoringService

router = APIRouter(prefix="/v1/training-load", tags=["Training Load"])


@router.get("/summary", response_model=LoadSummaryResponse)
async def get_load_summary(
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    service: ScoringService = Depends(get_scoring_service),
):
    """Current load, trends, training phase and TSB zone."""
    summary = await service.load_summary(as_of or date.today())
    return LoadSummaryResponse.from_summary(summary)


@router.get("", response_model=TrainingLoadRangeResponse)
async def get_load_history(
    start: date = Query(...),
    end: date = Query(...),
    service: ScoringService = Depends(get_scoring_service),
):
    """One point per day in [start, end], rest days included."""
    if end < start:
        raise ValidationError(f"end {end} is before start {start}", field="end")
    points = await service.training_load_range(start, end)
    return TrainingLoadRangeResponse(
        start=start,
        end=end,
        points=[TrainingLoadPointResponse.from_point(p) for p in points],
    )


@router.get("/{day}", response_model=TrainingLoadPointResponse)
async def get_load_point(
    day: date,
    service: ScoringService = Depends(get_scoring_service),
):
    point = await service.training_load(day)
    return TrainingLoadPointResponse.from_point(point)
