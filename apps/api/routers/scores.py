"""
Scores Router

Per-day recovery, sleep and strain scores. A day that has not been scored
yet is computed on first read and stored.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import date

from core.database import get_db
from core.exceptions import NotFoundError
from schemas import FamilyScoreResponse, ScoreRecordResponse
from services.score_inputs import ScoreFamily
from services.scoring_service import ScoringService, scoring_service_for

router = APIRouter(prefix="/v1/scores", tags=["Scores"])


def get_scoring_service(db: Session = Depends(get_db)) -> ScoringService:
    return scoring_service_for(db)


@router.get("/{day}", response_model=ScoreRecordResponse)
async def get_score_record(
    day: date,
    service: ScoringService = Depends(get_scoring_service),
):
    """All three families for one day."""
    record = await service.score_record(day)
    return ScoreRecordResponse.from_record(record)


@router.get("/{day}/{family}", response_model=FamilyScoreResponse)
async def get_family_score(
    day: date,
    family: str,
    service: ScoringService = Depends(get_scoring_service),
):
    """
    One family for one day.

    A family without enough inputs still returns 200 with an
    `insufficient_data` or `no_data` status and no score.
    """
    try:
        score_family = ScoreFamily(family)
    except ValueError:
        raise NotFoundError("Score family", family)
    result = await service.family_score(day, score_family)
    return FamilyScoreResponse.from_result(result)
