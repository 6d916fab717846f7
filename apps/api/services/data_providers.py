"""
Data Providers

Raw-input collaborators consumed by the scoring service and the backfill
scheduler, backed by the stored daily_sample / activity / athlete tables:

    samples(day)             -> DaySample (absent fields stay None)
    activities(day)          -> [ActivityInput]
    baseline(metric, as_of)  -> rolling mean or None
    profile()                -> AthleteProfile

Baselines are the mean of the BASELINE_WINDOW_DAYS days strictly before
`as_of`; fewer than BASELINE_MIN_SAMPLES measured values gives None.
Unmeasured days are skipped, never read as zero.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, List, Dict, Tuple, Iterable

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import settings
from models import Activity, Athlete, DailySample
from services.score_inputs import (
    ActivityInput,
    AthleteProfile,
    BaselineMetric,
    Baselines,
    DaySample,
    Sex,
    clock_minutes,
    validated_sleep_need,
)

logger = logging.getLogger(__name__)


def _day_bounds(start: date, end: date) -> Tuple[datetime, datetime]:
    return (
        datetime.combine(start, time.min),
        datetime.combine(end + timedelta(days=1), time.min),
    )


class BaselineCalculator:
    """Rolling mean over the days strictly before `as_of`."""

    def __init__(self, window_days: Optional[int] = None, min_samples: Optional[int] = None):
        self.window_days = window_days or settings.BASELINE_WINDOW_DAYS
        self.min_samples = min_samples or settings.BASELINE_MIN_SAMPLES

    def window(self, as_of: date) -> Tuple[date, date]:
        """Inclusive [first, last] days feeding the baseline for `as_of`."""
        return as_of - timedelta(days=self.window_days), as_of - timedelta(days=1)

    def mean(self, as_of: date, values: Iterable[Tuple[date, Optional[float]]]) -> Optional[float]:
        first, last = self.window(as_of)
        present = [v for d, v in values if v is not None and first <= d <= last]
        if len(present) < self.min_samples:
            return None
        return sum(present) / len(present)


def metric_value(sample: DailySample, metric: BaselineMetric) -> Optional[float]:
    if metric == BaselineMetric.HRV:
        return sample.hrv_ms
    if metric == BaselineMetric.RESTING_HR:
        return sample.resting_hr
    if metric == BaselineMetric.SLEEP_DURATION:
        return sample.sleep_duration_s
    if metric == BaselineMetric.RESPIRATORY_RATE:
        return sample.respiratory_rate
    if metric == BaselineMetric.BEDTIME:
        return clock_minutes(sample.bedtime, fold_evening=True) if sample.bedtime else None
    if metric == BaselineMetric.WAKE_TIME:
        return clock_minutes(sample.wake_time) if sample.wake_time else None
    raise ValueError(f"Unknown baseline metric: {metric}")


def to_day_sample(row: Optional[DailySample], day: date) -> DaySample:
    if row is None:
        return DaySample(day=day)
    return DaySample(
        day=day,
        hrv=row.hrv_ms,
        resting_hr=row.resting_hr,
        sleep_duration=row.sleep_duration_s,
        time_in_bed=row.time_in_bed_s,
        deep_sleep=row.deep_sleep_s,
        rem_sleep=row.rem_sleep_s,
        wake_events=row.wake_events,
        bedtime=row.bedtime,
        wake_time=row.wake_time,
        respiratory_rate=row.respiratory_rate,
        steps=row.steps,
        active_calories=row.active_calories,
    )


def to_activity_input(row: Activity) -> ActivityInput:
    return ActivityInput(
        start_time=row.start_time,
        duration_s=row.duration_s,
        avg_power=row.avg_power_w,
        normalized_power=row.normalized_power_w,
        avg_hr=row.avg_hr,
        max_hr=row.max_hr,
        source_tss=row.source_tss,
        source_intensity_factor=row.source_intensity_factor,
        rpe=row.rpe,
        volume_kg=row.volume_kg,
        sets=row.sets,
        name=row.name,
        sport=row.sport,
    )


class StoredDataProvider:
    """Provider over the stored raw tables."""

    def __init__(self, db: Session, baseline_calculator: Optional[BaselineCalculator] = None):
        self.db = db
        self.baseline_calculator = baseline_calculator or BaselineCalculator()

    async def samples(self, day: date) -> DaySample:
        row = self.db.query(DailySample).filter(DailySample.date == day).first()
        return to_day_sample(row, day)

    async def activities(self, day: date) -> List[ActivityInput]:
        start, end = _day_bounds(day, day)
        rows = (
            self.db.query(Activity)
            .filter(Activity.start_time >= start, Activity.start_time < end)
            .order_by(Activity.start_time)
            .all()
        )
        return [to_activity_input(r) for r in rows]

    async def activities_between(self, start: date, end: date) -> Dict[date, List[ActivityInput]]:
        """Activities grouped by local start day, for [start, end] inclusive."""
        lower, upper = _day_bounds(start, end)
        rows = (
            self.db.query(Activity)
            .filter(Activity.start_time >= lower, Activity.start_time < upper)
            .order_by(Activity.start_time)
            .all()
        )
        grouped: Dict[date, List[ActivityInput]] = {}
        for row in rows:
            grouped.setdefault(row.start_time.date(), []).append(to_activity_input(row))
        return grouped

    async def earliest_activity_day(self) -> Optional[date]:
        earliest = self.db.query(func.min(Activity.start_time)).scalar()
        return earliest.date() if earliest else None

    async def baseline(self, metric: BaselineMetric, as_of: date) -> Optional[float]:
        first, last = self.baseline_calculator.window(as_of)
        rows = (
            self.db.query(DailySample)
            .filter(DailySample.date >= first, DailySample.date <= last)
            .all()
        )
        return self.baseline_calculator.mean(as_of, ((r.date, metric_value(r, metric)) for r in rows))

    async def baselines(self, as_of: date) -> Baselines:
        return Baselines(
            hrv=await self.baseline(BaselineMetric.HRV, as_of),
            resting_hr=await self.baseline(BaselineMetric.RESTING_HR, as_of),
            sleep_duration=await self.baseline(BaselineMetric.SLEEP_DURATION, as_of),
            respiratory_rate=await self.baseline(BaselineMetric.RESPIRATORY_RATE, as_of),
            bedtime_minutes=await self.baseline(BaselineMetric.BEDTIME, as_of),
            wake_time_minutes=await self.baseline(BaselineMetric.WAKE_TIME, as_of),
        )

    async def profile(self) -> AthleteProfile:
        athlete = self.db.query(Athlete).order_by(Athlete.created_at).first()
        if athlete is None:
            logger.info("No athlete profile stored, using defaults")
            return AthleteProfile(
                max_hr=settings.DEFAULT_MAX_HR,
                sleep_need_h=validated_sleep_need(settings.DEFAULT_SLEEP_NEED_HOURS),
            )
        return AthleteProfile(
            ftp=athlete.ftp_w,
            max_hr=athlete.max_hr or settings.DEFAULT_MAX_HR,
            resting_hr=athlete.resting_hr,
            sex=Sex.parse(athlete.sex),
            body_mass_kg=athlete.body_mass_kg,
            sleep_need_h=validated_sleep_need(
                athlete.sleep_need_h if athlete.sleep_need_h is not None else settings.DEFAULT_SLEEP_NEED_HOURS
            ),
        )
