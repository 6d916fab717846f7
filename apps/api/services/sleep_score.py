"""
Sleep Score Calculator

One 0-100 score per night from five weighted sub-scores:

    Performance    0.30   duration vs personal sleep need (peaks at need)
    Efficiency     0.22   time asleep / time in bed
    Stage quality  0.32   (deep + REM) share of total sleep
    Disturbances   0.14   wake-event count, fewer is better
    Timing         0.02   bedtime / wake-time deviation from baseline

Missing sub-score inputs are excluded and the remaining weights
renormalized. A recorded 0 wake events is a real (excellent) measurement;
a missing count is excluded. A night without any sleep session yields the
NO_DATA sentinel so downstream consumers suppress their own logic.
"""

from datetime import date
from typing import Optional, Dict, List

import logging

from core.config import settings
from services.score_inputs import (
    Baselines,
    DaySample,
    FamilyScore,
    ScoreFamily,
    ScoreStatus,
    band_for,
    clamp,
    clock_minutes,
    validated_sleep_need,
)

logger = logging.getLogger(__name__)


SLEEP_WEIGHTS = {
    "performance": 0.30,
    "efficiency": 0.22,
    "stage_quality": 0.32,
    "disturbances": 0.14,
    "timing": 0.02,
}

SLEEP_BANDS = ["pay_attention", "fair", "good", "optimal"]

# Sleeping past need costs half as much per unit as falling short of it
OVERSLEEP_PENALTY_PER_RATIO = 50.0


def performance_score(duration_s: Optional[float], need_s: Optional[float]) -> Optional[float]:
    """Unimodal: 100 at need, proportional below, gentle decline above."""
    if duration_s is None or need_s is None or need_s <= 0:
        return None
    ratio = duration_s / need_s
    if ratio <= 1.0:
        return clamp(ratio * 100, 0.0, 100.0)
    return clamp(100 - (ratio - 1.0) * OVERSLEEP_PENALTY_PER_RATIO, 0.0, 100.0)


def efficiency_score(duration_s: Optional[float], time_in_bed_s: Optional[float]) -> Optional[float]:
    if duration_s is None or time_in_bed_s is None or time_in_bed_s <= 0:
        return None
    return clamp(duration_s / time_in_bed_s * 100, 0.0, 100.0)


def stage_quality_score(
    duration_s: Optional[float],
    deep_s: Optional[float],
    rem_s: Optional[float],
) -> Optional[float]:
    """Target deep + REM >= 40% of sleep; 50 at 30%, linear to 0 below."""
    if duration_s is None or duration_s <= 0 or deep_s is None or rem_s is None:
        return None
    share = (deep_s + rem_s) / duration_s
    if share >= 0.40:
        return 100.0
    if share >= 0.30:
        return max(50.0, 50 + (share - 0.30) * 500)
    return max(0.0, share * 166.67)


def disturbances_score(wake_events: Optional[int]) -> Optional[float]:
    """0-2 wake events = 100, 3-5 = 75, 6-8 = 50, 9+ = 25."""
    if wake_events is None:
        return None
    if wake_events <= 2:
        return 100.0
    if wake_events <= 5:
        return 75.0
    if wake_events <= 8:
        return 50.0
    return 25.0


def timing_score(sample: DaySample, baselines: Baselines) -> Optional[float]:
    """Average deviation in minutes: <=30 = 100, <=60 = 75, <=90 = 50, else 25."""
    deviations: List[float] = []
    if sample.bedtime is not None and baselines.bedtime_minutes is not None:
        bed = clock_minutes(sample.bedtime, fold_evening=True)
        deviations.append(abs(bed - baselines.bedtime_minutes))
    if sample.wake_time is not None and baselines.wake_time_minutes is not None:
        wake = clock_minutes(sample.wake_time)
        deviations.append(abs(wake - baselines.wake_time_minutes))
    if not deviations:
        return None
    average = sum(deviations) / len(deviations)
    if average <= 30:
        return 100.0
    if average <= 60:
        return 75.0
    if average <= 90:
        return 50.0
    return 25.0


class SleepScoreCalculator:
    """Stateless sleep calculator."""

    def __init__(
        self,
        sleep_need_h: Optional[float] = None,
        weights: Optional[Dict[str, float]] = None,
        band_cuts: Optional[List[float]] = None,
    ):
        self.sleep_need_h = validated_sleep_need(
            settings.DEFAULT_SLEEP_NEED_HOURS if sleep_need_h is None else sleep_need_h
        )
        self.weights = weights or SLEEP_WEIGHTS.copy()
        self.band_cuts = band_cuts or list(settings.SLEEP_BAND_CUTS)

    def compute(self, day: date, sample: DaySample, baselines: Baselines) -> FamilyScore:
        inputs_total = len(self.weights)

        if not sample.has_sleep_session:
            logger.debug(f"Sleep {day}: no sleep session")
            return FamilyScore(
                family=ScoreFamily.SLEEP,
                day=day,
                status=ScoreStatus.NO_DATA,
                score=None,
                band=None,
                completeness=0,
                inputs_total=inputs_total,
            )

        need_s = self.sleep_need_h * 3600
        candidates = {
            "performance": performance_score(sample.sleep_duration, need_s),
            "efficiency": efficiency_score(sample.sleep_duration, sample.time_in_bed),
            "stage_quality": stage_quality_score(sample.sleep_duration, sample.deep_sleep, sample.rem_sleep),
            "disturbances": disturbances_score(sample.wake_events),
            "timing": timing_score(sample, baselines),
        }
        signals = {k: v for k, v in candidates.items() if v is not None}

        active_weights = {k: self.weights[k] for k in signals}
        total_weight = sum(active_weights.values())
        score = clamp(sum(signals[k] * active_weights[k] for k in signals) / total_weight, 0.0, 100.0)

        logger.debug(f"Sleep {day}: score={score:.1f}, signals={len(signals)}/{inputs_total}")

        return FamilyScore(
            family=ScoreFamily.SLEEP,
            day=day,
            status=ScoreStatus.OK,
            score=score,
            band=band_for(score, self.band_cuts, SLEEP_BANDS),
            completeness=len(signals),
            inputs_total=inputs_total,
            components={
                "sub_scores": signals,
                "weights_used": active_weights,
                "sleep_need_h": self.sleep_need_h,
            },
        )
