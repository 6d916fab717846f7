"""
Strain Score Calculator

One bounded score per day (0.5 - 18.0 by default):

    cardio       = f(cardio TRIMP, duration, intensity factor) x 35.0
    strength     = f(RPE, duration, volume, sets, body mass) x 1.2
    non-exercise = f(steps, active calories) x 25.0
    total        = min(cap, (cardio + strength + non-exercise) x recovery factor)

The recovery factor sits within +/-15% of 1.0: under-recovery (HRV down,
RHR up, poor sleep) amplifies the perceived cost of the same work and good
recovery dampens it. A zero-exercise day floors at a small non-zero value.
"""

import math
from datetime import date
from typing import Optional, List, Dict, Any

import logging

from core.config import settings
from services.cardio_load import CardioLoadEstimator, LoadMethod
from services.score_inputs import (
    ActivityInput,
    AthleteProfile,
    Baselines,
    DaySample,
    FamilyScore,
    ScoreFamily,
    ScoreStatus,
    band_for,
    clamp,
)

logger = logging.getLogger(__name__)


CARDIO_WEIGHT = 35.0
STRENGTH_WEIGHT = 1.2
NON_EXERCISE_WEIGHT = 25.0

# Cardio fraction (0-1): log-compressed TRIMP plus duration and intensity bonuses
CARDIO_LOG_SCALE = 0.18
CARDIO_DURATION_BONUS_MAX = 0.10
CARDIO_INTENSITY_BONUS_MAX = 0.15

# Strength: log-compressed session RPE x minutes
STRENGTH_LOG_SCALE = 4.0

# Incidental movement, in MET-minutes
STEPS_PER_BLOCK = 2000.0
MET_MINUTES_PER_STEP_BLOCK = 20.0
MET_MINUTES_PER_CALORIE = 0.003
NON_EXERCISE_MET_CAP = 240.0
NON_EXERCISE_MET_SCALE = 1000.0

RECOVERY_MODULATION_RANGE = 0.15

STRAIN_BANDS = ["light", "moderate", "hard", "very_hard"]

STRAIN_INPUT_GROUPS = ("cardio", "strength", "non_exercise", "recovery")


def cardio_fraction(
    trimp: float,
    duration_min: Optional[float] = None,
    intensity_factor: Optional[float] = None,
) -> float:
    if trimp <= 0:
        return 0.0
    fraction = CARDIO_LOG_SCALE * math.log10(trimp + 1.0)
    if duration_min is not None and duration_min > 60:
        fraction += min(CARDIO_DURATION_BONUS_MAX, (duration_min - 60) * 0.001)
    if intensity_factor is not None and intensity_factor > 0.8:
        fraction += min(CARDIO_INTENSITY_BONUS_MAX, (intensity_factor - 0.8) * 0.75)
    return clamp(fraction, 0.0, 1.0)


def strength_load_units(
    rpe: float,
    duration_min: float,
    volume_kg: Optional[float] = None,
    body_mass_kg: Optional[float] = None,
    sets: Optional[int] = None,
) -> float:
    """Session-RPE load, enhanced by relative volume and set count, log-compressed."""
    if duration_min <= 0 or not 1.0 <= rpe <= 10.0:
        return 0.0
    base = rpe * duration_min
    if volume_kg is not None and body_mass_kg is not None and body_mass_kg > 0:
        volume_term = min(2.0, (volume_kg / body_mass_kg) ** 0.25)
        base *= 1.0 + 0.15 * volume_term
    if sets is not None and sets > 0:
        base *= min(1.3, 1.0 + (sets - 1) * 0.05)
    return STRENGTH_LOG_SCALE * math.log10(base + 1.0)


def non_exercise_fraction(steps: Optional[int], active_calories: Optional[float]) -> Optional[float]:
    """None when neither steps nor calories were measured."""
    if steps is None and active_calories is None:
        return None
    met_minutes = 0.0
    if steps is not None and steps > 0:
        met_minutes += MET_MINUTES_PER_STEP_BLOCK * (steps / STEPS_PER_BLOCK)
    if active_calories is not None and active_calories > 0:
        met_minutes += active_calories * MET_MINUTES_PER_CALORIE
    return min(met_minutes, NON_EXERCISE_MET_CAP) / NON_EXERCISE_MET_SCALE


def recovery_signal(
    sample: DaySample,
    baselines: Baselines,
    sleep_score: Optional[float],
) -> Optional[float]:
    """
    Blended recovery deviation in [-1, 1]; positive = well recovered.
    None when no signal could be measured.
    """
    parts = 0
    z_hrv = z_rhr = z_sleep = 0.0
    if sample.hrv is not None and baselines.hrv:
        z_hrv = (sample.hrv - baselines.hrv) / baselines.hrv
        parts += 1
    if sample.resting_hr is not None and baselines.resting_hr:
        z_rhr = (baselines.resting_hr - sample.resting_hr) / baselines.resting_hr
        parts += 1
    if sleep_score is not None:
        z_sleep = (sleep_score - 75.0) / 25.0
        parts += 1
    if parts == 0:
        return None
    return clamp(0.6 * z_hrv + 0.3 * z_rhr + 0.1 * z_sleep, -1.0, 1.0)


class StrainScoreCalculator:
    """Stateless strain calculator bound to one athlete profile."""

    def __init__(
        self,
        profile: Optional[AthleteProfile] = None,
        daily_cap: Optional[float] = None,
        floor: Optional[float] = None,
        band_cuts: Optional[List[float]] = None,
    ):
        self.profile = profile or AthleteProfile()
        self.estimator = CardioLoadEstimator(self.profile)
        self.daily_cap = settings.STRAIN_DAILY_CAP if daily_cap is None else daily_cap
        self.floor = settings.STRAIN_FLOOR if floor is None else floor
        self.band_cuts = band_cuts or list(settings.STRAIN_BAND_CUTS)

    def compute(
        self,
        day: date,
        sample: DaySample,
        activities: List[ActivityInput],
        baselines: Baselines,
        sleep_score: Optional[float] = None,
    ) -> FamilyScore:
        present: Dict[str, bool] = {group: False for group in STRAIN_INPUT_GROUPS}

        # Cardio
        cardio_trimp = 0.0
        cardio_minutes = 0.0
        weighted_if = 0.0
        if_minutes = 0.0
        strength_units = 0.0
        for activity in activities:
            if activity.is_strength:
                minutes = (activity.duration_s or 0) / 60.0
                units = strength_load_units(
                    activity.rpe,
                    minutes,
                    activity.volume_kg,
                    self.profile.body_mass_kg,
                    activity.sets,
                )
                if minutes > 0:
                    present["strength"] = True
                strength_units += units
                continue
            load = self.estimator.estimate(activity)
            if load.method == LoadMethod.NONE:
                continue
            present["cardio"] = True
            cardio_trimp += load.strain_trimp
            cardio_minutes += load.duration_min or 0.0
            if load.intensity_factor is not None and load.duration_min:
                weighted_if += load.intensity_factor * load.duration_min
                if_minutes += load.duration_min

        intensity = weighted_if / if_minutes if if_minutes > 0 else None
        cardio = cardio_fraction(cardio_trimp, cardio_minutes or None, intensity) * CARDIO_WEIGHT
        strength = strength_units * STRENGTH_WEIGHT

        neat_fraction = non_exercise_fraction(sample.steps, sample.active_calories)
        if neat_fraction is not None:
            present["non_exercise"] = True
        non_exercise = (neat_fraction or 0.0) * NON_EXERCISE_WEIGHT

        signal = recovery_signal(sample, baselines, sleep_score)
        if signal is not None:
            present["recovery"] = True
        # Under-recovery (negative signal) amplifies, good recovery dampens
        recovery_factor = 1.0 - RECOVERY_MODULATION_RANGE * (signal or 0.0)

        completeness = sum(1 for v in present.values() if v)
        inputs_total = len(STRAIN_INPUT_GROUPS)

        if not (present["cardio"] or present["strength"] or present["non_exercise"]) and not activities:
            logger.debug(f"Strain {day}: no activities and no movement data")
            return FamilyScore(
                family=ScoreFamily.STRAIN,
                day=day,
                status=ScoreStatus.INSUFFICIENT_DATA,
                score=None,
                band=None,
                completeness=completeness,
                inputs_total=inputs_total,
            )

        raw = (cardio + strength + non_exercise) * recovery_factor
        score = max(self.floor, min(self.daily_cap, raw))

        logger.debug(
            f"Strain {day}: cardio={cardio:.2f} strength={strength:.2f} "
            f"non_exercise={non_exercise:.2f} factor={recovery_factor:.3f} -> {score:.2f}"
        )

        components: Dict[str, Any] = {
            "cardio_load": cardio,
            "strength_load": strength,
            "non_exercise_load": non_exercise,
            "recovery_factor": recovery_factor,
            "cardio_trimp": cardio_trimp,
            "inputs_present": [k for k, v in present.items() if v],
        }
        return FamilyScore(
            family=ScoreFamily.STRAIN,
            day=day,
            status=ScoreStatus.OK,
            score=score,
            band=band_for(score, self.band_cuts, STRAIN_BANDS),
            completeness=completeness,
            inputs_total=inputs_total,
            components=components,
        )
