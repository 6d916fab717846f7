"""
Cardio Load Estimator

Converts one activity into a training-stress value (TSS) and a heart-rate
training impulse (TRIMP). Input completeness varies by source, so the
estimate walks a strict priority chain and records which level it used:

    1. POWER       normalized (else average) power + FTP
                   TSS = 100 x hours x IF^2, IF = power / FTP
    2. SOURCE_TSS  the platform's own TSS, used verbatim
    3. HEART_RATE  avg HR + max HR + resting HR
                   Banister TRIMP, converted to an HR-based TSS
    4. DURATION    duration only: TRIMP = minutes x 0.6, TSS = 50 per hour
    -  NONE        no duration: zero load, logged as a warning

Levels 1 and 2 still report a TRIMP when heart-rate data allows it.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Iterable, List

import logging

from services.score_inputs import ActivityInput, AthleteProfile, Sex

logger = logging.getLogger(__name__)


class LoadMethod(str, Enum):
    POWER = "power"
    SOURCE_TSS = "source_tss"
    HEART_RATE = "heart_rate"
    DURATION = "duration"
    NONE = "none"


# Banister TRIMP: minutes x HRr x k x e^(b x HRr)
BANISTER_COEFFICIENTS = {
    Sex.MALE: (0.64, 1.92),
    Sex.FEMALE: (0.86, 1.67),
    Sex.UNSPECIFIED: (0.75, 1.80),
}

# One hour at lactate threshold sits near 88% of heart-rate reserve
THRESHOLD_HR_RESERVE = 0.88

# Duration-only fallback assumes moderate, steady effort
DURATION_ONLY_TRIMP_PER_MIN = 0.6
DURATION_ONLY_TSS_PER_HOUR = 50.0


@dataclass(frozen=True)
class CardioLoad:
    """Load estimate for one activity."""
    tss: Optional[float]
    trimp: Optional[float]
    method: LoadMethod
    intensity_factor: Optional[float] = None
    duration_min: Optional[float] = None

    @property
    def strain_trimp(self) -> float:
        """TRIMP for the strain score; TSS stands in when no HR impulse exists."""
        if self.trimp is not None:
            return self.trimp
        return self.tss or 0.0


def banister_trimp(
    duration_min: float,
    avg_hr: float,
    max_hr: float,
    resting_hr: float,
    sex: Sex = Sex.UNSPECIFIED,
) -> Optional[float]:
    """Banister TRIMP, or None if the heart-rate reserve is not positive."""
    reserve = max_hr - resting_hr
    if reserve <= 0 or duration_min <= 0:
        return None
    hr_fraction = (avg_hr - resting_hr) / reserve
    hr_fraction = max(0.0, min(1.0, hr_fraction))
    k, b = BANISTER_COEFFICIENTS[sex]
    return duration_min * hr_fraction * k * math.exp(b * hr_fraction)


def threshold_hour_trimp(sex: Sex = Sex.UNSPECIFIED) -> float:
    """TRIMP of one hour at threshold heart-rate reserve (== 100 TSS)."""
    k, b = BANISTER_COEFFICIENTS[sex]
    return 60.0 * THRESHOLD_HR_RESERVE * k * math.exp(b * THRESHOLD_HR_RESERVE)


class CardioLoadEstimator:
    """
    Stateless estimator. Construct once with the athlete profile and reuse
    across activities and days; no state is kept between calls.
    """

    def __init__(self, profile: Optional[AthleteProfile] = None):
        self.profile = profile or AthleteProfile()

    def estimate(self, activity: ActivityInput) -> CardioLoad:
        duration_s = activity.duration_s
        if duration_s is None or duration_s <= 0:
            logger.warning(
                f"Activity {activity.name or activity.start_time.isoformat()} has no duration; "
                f"counting zero load"
            )
            return CardioLoad(tss=None, trimp=None, method=LoadMethod.NONE)

        duration_min = duration_s / 60.0
        hours = duration_s / 3600.0
        hr_trimp = self._hr_trimp(activity, duration_min)

        # Level 1: power + FTP
        power = activity.normalized_power or activity.avg_power
        ftp = self.profile.ftp
        if power and ftp and ftp > 0:
            intensity = power / ftp
            tss = 100.0 * hours * intensity ** 2
            return self._result(activity, tss, hr_trimp, LoadMethod.POWER, intensity, duration_min)

        # Level 2: platform TSS
        if activity.source_tss is not None:
            return self._result(
                activity,
                activity.source_tss,
                hr_trimp,
                LoadMethod.SOURCE_TSS,
                activity.source_intensity_factor,
                duration_min,
            )

        # Level 3: heart rate
        if hr_trimp is not None:
            tss = hr_trimp / threshold_hour_trimp(self.profile.sex) * 100.0
            intensity = self._hr_intensity(activity)
            return self._result(activity, tss, hr_trimp, LoadMethod.HEART_RATE, intensity, duration_min)

        # Level 4: duration only
        trimp = duration_min * DURATION_ONLY_TRIMP_PER_MIN
        tss = hours * DURATION_ONLY_TSS_PER_HOUR
        return self._result(activity, tss, trimp, LoadMethod.DURATION, None, duration_min)

    def estimate_all(self, activities: Iterable[ActivityInput]) -> List[CardioLoad]:
        return [self.estimate(a) for a in activities]

    def daily_tss(self, activities: Iterable[ActivityInput]) -> float:
        """Sum of TSS for a day. Activities without load count as zero."""
        return sum(load.tss or 0.0 for load in self.estimate_all(activities))

    # ===== HELPERS =====

    def _max_hr(self, activity: ActivityInput) -> Optional[float]:
        return self.profile.max_hr or activity.max_hr

    def _hr_trimp(self, activity: ActivityInput, duration_min: float) -> Optional[float]:
        max_hr = self._max_hr(activity)
        resting = self.profile.resting_hr
        if activity.avg_hr is None or max_hr is None or resting is None:
            return None
        return banister_trimp(duration_min, activity.avg_hr, max_hr, resting, self.profile.sex)

    def _hr_intensity(self, activity: ActivityInput) -> Optional[float]:
        max_hr = self._max_hr(activity)
        resting = self.profile.resting_hr
        if activity.avg_hr is None or not max_hr or resting is None or max_hr <= resting:
            return None
        return ((activity.avg_hr - resting) / (max_hr - resting)) / THRESHOLD_HR_RESERVE

    def _result(
        self,
        activity: ActivityInput,
        tss: Optional[float],
        trimp: Optional[float],
        method: LoadMethod,
        intensity: Optional[float],
        duration_min: float,
    ) -> CardioLoad:
        logger.debug(
            f"Cardio load for {activity.name or activity.start_time.isoformat()}: "
            f"method={method.value} tss={tss} trimp={trimp}"
        )
        return CardioLoad(
            tss=tss,
            trimp=trimp,
            method=method,
            intensity_factor=intensity,
            duration_min=duration_min,
        )
