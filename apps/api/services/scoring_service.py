"""
Scoring Service

Per-day entry points over the calculators:

    recovery_score / sleep_score / strain_score(day) -> FamilyScore
    score_record(day)                                -> ScoreRecord
    training_load(day)                               -> TrainingLoadPoint
    training_load_range(start, end)                  -> [TrainingLoadPoint]

Reads return the stored result when one exists and otherwise compute it,
store it (monotonic write) and return it. `compute_family` and
`compute_load_range` are the pure recompute paths used by the backfill
scheduler; they never write.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, List

import logging

from sqlalchemy.orm import Session

from core.exceptions import CompletenessRegressionError, OutOfOrderRangeError
from services.cardio_load import CardioLoadEstimator
from services.data_providers import StoredDataProvider
from services.day_record_store import DayRecordStore, ScoreRecord
from services.recovery_score import RecoveryScoreCalculator
from services.score_inputs import AthleteProfile, FamilyScore, ScoreFamily
from services.sleep_score import SleepScoreCalculator
from services.strain_score import StrainScoreCalculator
from services.training_load import LoadSummary, TrainingLoadEngine, TrainingLoadPoint

logger = logging.getLogger(__name__)

SUMMARY_LOOKBACK_DAYS = 28


@dataclass(frozen=True)
class Calculators:
    """Immutable calculator set for one athlete profile."""
    profile: AthleteProfile
    cardio: CardioLoadEstimator
    load: TrainingLoadEngine
    recovery: RecoveryScoreCalculator
    sleep: SleepScoreCalculator
    strain: StrainScoreCalculator

    @classmethod
    def for_profile(cls, profile: AthleteProfile) -> "Calculators":
        return cls(
            profile=profile,
            cardio=CardioLoadEstimator(profile),
            load=TrainingLoadEngine(),
            recovery=RecoveryScoreCalculator(),
            sleep=SleepScoreCalculator(sleep_need_h=profile.sleep_need_h),
            strain=StrainScoreCalculator(profile),
        )


class ScoringService:
    def __init__(self, provider: StoredDataProvider, store: DayRecordStore):
        self.provider = provider
        self.store = store

    async def calculators(self) -> Calculators:
        return Calculators.for_profile(await self.provider.profile())

    # =========================================================================
    # SCORE FAMILIES
    # =========================================================================

    async def compute_family(
        self,
        day: date,
        family: ScoreFamily,
        calculators: Optional[Calculators] = None,
    ) -> FamilyScore:
        """Recompute one family for `day` from raw inputs. Never writes."""
        calc = calculators or await self.calculators()
        sample = await self.provider.samples(day)
        baselines = await self.provider.baselines(day)

        sleep = calc.sleep.compute(day, sample, baselines)
        if family == ScoreFamily.SLEEP:
            return sleep
        sleep_score = sleep.score if sleep.has_score else None

        if family == ScoreFamily.STRAIN:
            activities = await self.provider.activities(day)
            return calc.strain.compute(day, sample, activities, baselines, sleep_score)

        # Recovery: form reflects load at the end of the previous day
        yesterday = day - timedelta(days=1)
        ctl = atl = yesterday_tss = None
        earliest = await self.provider.earliest_activity_day()
        if earliest is not None and earliest <= yesterday:
            point = await self._load_point(yesterday, calc)
            ctl, atl = point.ctl, point.atl
            yesterday_tss = point.tss
        return calc.recovery.compute(
            day,
            sample,
            baselines,
            sleep_score=sleep_score,
            ctl=ctl,
            atl=atl,
            yesterday_tss=yesterday_tss,
        )

    async def family_score(self, day: date, family: ScoreFamily) -> FamilyScore:
        """Stored result if present, else compute and store."""
        stored = await self.store.get_family(day, family)
        if stored is not None:
            return stored
        result = await self.compute_family(day, family)
        try:
            await self.store.upsert_score_family(day, family, result)
        except CompletenessRegressionError:
            # A concurrent writer stored a more complete result first
            return await self.store.get_family(day, family)
        return result

    async def recovery_score(self, day: date) -> FamilyScore:
        return await self.family_score(day, ScoreFamily.RECOVERY)

    async def sleep_score(self, day: date) -> FamilyScore:
        return await self.family_score(day, ScoreFamily.SLEEP)

    async def strain_score(self, day: date) -> FamilyScore:
        return await self.family_score(day, ScoreFamily.STRAIN)

    async def score_record(self, day: date) -> ScoreRecord:
        return ScoreRecord(
            day=day,
            sleep=await self.sleep_score(day),
            recovery=await self.recovery_score(day),
            strain=await self.strain_score(day),
        )

    # =========================================================================
    # TRAINING LOAD
    # =========================================================================

    async def compute_load_range(
        self,
        start: date,
        end: date,
        calculators: Optional[Calculators] = None,
    ) -> List[TrainingLoadPoint]:
        """
        Recompute [start, end]. Seeds from the stored point for start - 1 when
        there is one, otherwise warms up over the full activity history from
        its first day. The cold-start window is always read in full so a day's
        point never depends on how far the requested range reaches.
        """
        calc = calculators or await self.calculators()
        seed = await self.store.get_load_point(start - timedelta(days=1))
        history_start, history_end = start, end
        if seed is None:
            earliest = await self.provider.earliest_activity_day()
            if earliest is not None:
                history_start = min(start, earliest)
                seed_end = earliest + timedelta(days=calc.load.cold_start_seed_days - 1)
                history_end = max(end, seed_end)

        grouped = await self.provider.activities_between(history_start, history_end)
        tss_by_day = {day: calc.cardio.daily_tss(acts) for day, acts in grouped.items()}
        counts = {day: len(acts) for day, acts in grouped.items()}
        return calc.load.progressive(start, end, tss_by_day, seed=seed, activity_counts=counts)

    async def _load_point(self, day: date, calc: Calculators) -> TrainingLoadPoint:
        stored = await self.store.get_load_point(day)
        if stored is not None:
            return stored
        return (await self.compute_load_range(day, day, calc))[0]

    async def training_load(self, day: date) -> TrainingLoadPoint:
        stored = await self.store.get_load_point(day)
        if stored is not None:
            return stored
        point = (await self.compute_load_range(day, day))[0]
        await self.store.upsert_load_point(point)
        return point

    async def training_load_range(self, start: date, end: date) -> List[TrainingLoadPoint]:
        """Stored points where the whole range is stored, else a fresh computation."""
        if end < start:
            raise OutOfOrderRangeError(f"Range end {end} is before start {start}")
        stored = await self.store.get_load_points(start, end)
        if len(stored) == (end - start).days + 1:
            return stored
        return await self.compute_load_range(start, end)

    async def load_summary(self, as_of: date) -> Optional[LoadSummary]:
        start = as_of - timedelta(days=SUMMARY_LOOKBACK_DAYS - 1)
        points = await self.training_load_range(start, as_of)
        return TrainingLoadEngine().summarize(points)


def scoring_service_for(db: Session) -> ScoringService:
    """Service wired to the stored-data provider and store on one session."""
    return ScoringService(StoredDataProvider(db), DayRecordStore(db))
