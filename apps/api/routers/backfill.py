"""
Backfill Router

Manual trigger for a backfill pass over the trailing window. Scheduled
passes run through Celery Beat (tasks.run_score_backfill).
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from core.database import get_db
from core.exceptions import ValidationError
from schemas import BackfillReportResponse
from services.backfill import BackfillScheduler
from services.day_record_store import DayRecordStore
from services.score_inputs import ScoreFamily
from services.scoring_service import scoring_service_for

router = APIRouter(prefix="/v1/backfill", tags=["Backfill"])


@router.post("", response_model=BackfillReportResponse)
async def run_backfill(
    window: Optional[int] = Query(None, ge=1, le=365, description="Days, defaults to BACKFILL_WINDOW_DAYS"),
    force: bool = Query(False),
    family: Optional[List[str]] = Query(None),
    db: Session = Depends(get_db),
):
    """
    Run one pass and return what it did.

    Unforced passes respect the per-family throttle; today is always refreshed.
    """
    families = None
    if family:
        try:
            families = [ScoreFamily(f) for f in family]
        except ValueError:
            raise ValidationError(f"Unknown score family in {family}", field="family")

    scheduler = BackfillScheduler(scoring_service_for(db), DayRecordStore(db))
    report = await scheduler.run_backfill(window=window, force=force, families=families)
    return BackfillReportResponse.from_report(report)
