"""
Day Record Store

Persistence for derived per-day outputs (score families, training-load
points) and per-family backfill run state.

Write rules:
- Score families are written independently; an upsert touches only the
  columns of its own family.
- Writes are monotonic in completeness: replacing a score with one computed
  from fewer inputs raises CompletenessRegressionError and leaves the row
  untouched.
- Each upsert is its own transaction (atomic per day).

The interface is async so the scheduler can treat the store as an opaque
suspension point; the implementation runs on a SQLAlchemy session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Dict, Any, List

import logging

from sqlalchemy.orm import Session

from core.exceptions import CompletenessRegressionError
from models import BackfillState, DailyLoad, DailyScore
from services.score_inputs import FamilyScore, ScoreFamily, ScoreStatus
from services.training_load import TrainingLoadPoint

logger = logging.getLogger(__name__)

# Load points closer than this are treated as unchanged
LOAD_TOLERANCE = 1e-6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back out
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class ScoreRecord:
    """All stored families for one day. A family is None until first written."""
    day: date
    recovery: Optional[FamilyScore] = None
    sleep: Optional[FamilyScore] = None
    strain: Optional[FamilyScore] = None

    def family(self, family: ScoreFamily) -> Optional[FamilyScore]:
        return getattr(self, family.value)


@dataclass
class RunState:
    family: ScoreFamily
    last_started_at: Optional[datetime]
    last_finished_at: Optional[datetime]
    last_status: Optional[str]
    last_error: Optional[str]


class DayRecordStore:
    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # SCORES
    # =========================================================================

    async def get_score_record(self, day: date) -> Optional[ScoreRecord]:
        row = self._score_row(day)
        if row is None:
            return None
        return ScoreRecord(
            day=day,
            recovery=self._family_from_row(row, ScoreFamily.RECOVERY),
            sleep=self._family_from_row(row, ScoreFamily.SLEEP),
            strain=self._family_from_row(row, ScoreFamily.STRAIN),
        )

    async def get_family(self, day: date, family: ScoreFamily) -> Optional[FamilyScore]:
        row = self._score_row(day)
        if row is None:
            return None
        return self._family_from_row(row, family)

    async def upsert_score_family(self, day: date, family: ScoreFamily, result: FamilyScore) -> None:
        """
        Write one family's result for `day`.

        Raises:
            CompletenessRegressionError: the stored result has higher completeness.
        """
        prefix = family.value
        try:
            row = self._score_row(day, for_update=True)
            if row is None:
                row = DailyScore(date=day)
                self.db.add(row)
            stored = getattr(row, f"{prefix}_completeness")
            if stored is not None and result.completeness < stored:
                logger.warning(
                    f"Rejected {prefix} write for {day}: completeness {result.completeness} < stored {stored}"
                )
                raise CompletenessRegressionError(day, prefix, stored, result.completeness)

            setattr(row, f"{prefix}_status", result.status.value)
            setattr(row, f"{prefix}_score", result.score)
            setattr(row, f"{prefix}_band", result.band)
            setattr(row, f"{prefix}_completeness", result.completeness)
            setattr(row, f"{prefix}_inputs_total", result.inputs_total)
            setattr(row, f"{prefix}_components", result.components or None)
            setattr(row, f"{prefix}_computed_at", _utcnow())
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _score_row(self, day: date, for_update: bool = False) -> Optional[DailyScore]:
        query = self.db.query(DailyScore).filter(DailyScore.date == day)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def _family_from_row(row: DailyScore, family: ScoreFamily) -> Optional[FamilyScore]:
        prefix = family.value
        status = getattr(row, f"{prefix}_status")
        if status is None:
            return None
        return FamilyScore(
            family=family,
            day=row.date,
            status=ScoreStatus(status),
            score=getattr(row, f"{prefix}_score"),
            band=getattr(row, f"{prefix}_band"),
            completeness=getattr(row, f"{prefix}_completeness") or 0,
            inputs_total=getattr(row, f"{prefix}_inputs_total") or 0,
            components=getattr(row, f"{prefix}_components") or {},
        )

    # =========================================================================
    # TRAINING LOAD
    # =========================================================================

    async def get_load_point(self, day: date) -> Optional[TrainingLoadPoint]:
        row = self.db.query(DailyLoad).filter(DailyLoad.date == day).first()
        return self._point_from_row(row) if row else None

    async def get_load_points(self, start: date, end: date) -> List[TrainingLoadPoint]:
        rows = (
            self.db.query(DailyLoad)
            .filter(DailyLoad.date >= start, DailyLoad.date <= end)
            .order_by(DailyLoad.date)
            .all()
        )
        return [self._point_from_row(r) for r in rows]

    async def upsert_load_point(self, point: TrainingLoadPoint) -> bool:
        """Write a load point. Returns False (no write) when the stored point is unchanged."""
        try:
            row = self.db.query(DailyLoad).filter(DailyLoad.date == point.day).first()
            if row is not None and self._same_point(row, point):
                return False
            if row is None:
                row = DailyLoad(date=point.day)
                self.db.add(row)
            row.tss = point.tss
            row.ctl = point.ctl
            row.atl = point.atl
            row.activity_count = point.activity_count
            row.computed_at = _utcnow()
            self.db.commit()
            return True
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def _same_point(row: DailyLoad, point: TrainingLoadPoint) -> bool:
        return (
            abs((row.tss or 0.0) - point.tss) < LOAD_TOLERANCE
            and abs(row.ctl - point.ctl) < LOAD_TOLERANCE
            and abs(row.atl - point.atl) < LOAD_TOLERANCE
            and (row.activity_count or 0) == point.activity_count
        )

    @staticmethod
    def _point_from_row(row: DailyLoad) -> TrainingLoadPoint:
        return TrainingLoadPoint(
            day=row.date,
            ctl=row.ctl,
            atl=row.atl,
            tss=row.tss or 0.0,
            activity_count=row.activity_count or 0,
        )

    # =========================================================================
    # BACKFILL RUN STATE
    # =========================================================================

    def _get_or_create_state(self, family: ScoreFamily) -> BackfillState:
        state = self.db.query(BackfillState).filter(BackfillState.family == family.value).first()
        if state:
            return state
        state = BackfillState(family=family.value)
        self.db.add(state)
        self.db.flush()
        return state

    async def get_run_state(self, family: ScoreFamily) -> Optional[RunState]:
        state = self.db.query(BackfillState).filter(BackfillState.family == family.value).first()
        if state is None:
            return None
        return RunState(
            family=family,
            last_started_at=_aware(state.last_started_at),
            last_finished_at=_aware(state.last_finished_at),
            last_status=state.last_status,
            last_error=state.last_error,
        )

    async def get_last_run(self, family: ScoreFamily) -> Optional[datetime]:
        """Finish time of the last successful pass, if any."""
        state = await self.get_run_state(family)
        if state is None or state.last_status != "success":
            return None
        return state.last_finished_at

    async def mark_run_started(self, family: ScoreFamily) -> None:
        state = self._get_or_create_state(family)
        state.last_started_at = _utcnow()
        state.last_finished_at = None
        state.last_status = "running"
        state.last_error = None
        self.db.commit()

    async def mark_run_finished(
        self,
        family: ScoreFamily,
        counts: Dict[str, Any],
        error: Optional[str] = None,
    ) -> None:
        state = self._get_or_create_state(family)
        state.last_finished_at = _utcnow()
        state.last_status = "error" if error else "success"
        state.last_error = error
        state.last_updated_days = counts.get("updated")
        state.last_skipped_days = counts.get("skipped")
        state.last_errored_days = counts.get("errored")
        self.db.commit()
