"""
Score Inputs

Plain value types shared by the calculators, the data providers and the
backfill scheduler. Every physiological field is Optional and None means
"not measured"; a measured 0 is a real value. Calculators never coerce one
into the other.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Dict, Any, Sequence, List

import logging

logger = logging.getLogger(__name__)

SLEEP_NEED_MIN_HOURS = 4.0
SLEEP_NEED_MAX_HOURS = 12.0
SLEEP_NEED_FALLBACK_HOURS = 8.0

STRENGTH_SPORTS = frozenset({"strength", "weight_training", "weights", "gym", "crossfit"})


class ScoreFamily(str, Enum):
    RECOVERY = "recovery"
    SLEEP = "sleep"
    STRAIN = "strain"


class ScoreStatus(str, Enum):
    """Whether a family produced a number or an explicit sentinel."""
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"   # inputs exist but none usable
    NO_DATA = "no_data"                       # e.g. no sleep session at all


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Sex":
        if not value:
            return cls.UNSPECIFIED
        value = value.strip().lower()
        if value in ("m", "male"):
            return cls.MALE
        if value in ("f", "female"):
            return cls.FEMALE
        return cls.UNSPECIFIED


class BaselineMetric(str, Enum):
    HRV = "hrv"
    RESTING_HR = "resting_hr"
    SLEEP_DURATION = "sleep_duration"
    RESPIRATORY_RATE = "respiratory_rate"
    BEDTIME = "bedtime"       # minutes from midnight, may be negative (before midnight)
    WAKE_TIME = "wake_time"   # minutes from midnight


@dataclass(frozen=True)
class DaySample:
    """One day's raw inputs. Durations are seconds."""
    day: date
    hrv: Optional[float] = None
    resting_hr: Optional[float] = None
    sleep_duration: Optional[float] = None
    time_in_bed: Optional[float] = None
    deep_sleep: Optional[float] = None
    rem_sleep: Optional[float] = None
    wake_events: Optional[int] = None
    bedtime: Optional[datetime] = None
    wake_time: Optional[datetime] = None
    respiratory_rate: Optional[float] = None
    steps: Optional[int] = None
    active_calories: Optional[float] = None

    @property
    def has_sleep_session(self) -> bool:
        return self.sleep_duration is not None and self.sleep_duration > 0


@dataclass(frozen=True)
class ActivityInput:
    """One completed session. Durations are seconds, power in watts."""
    start_time: datetime
    duration_s: Optional[float] = None
    avg_power: Optional[float] = None
    normalized_power: Optional[float] = None
    avg_hr: Optional[float] = None
    max_hr: Optional[float] = None
    source_tss: Optional[float] = None
    source_intensity_factor: Optional[float] = None
    rpe: Optional[float] = None
    volume_kg: Optional[float] = None
    sets: Optional[int] = None
    name: Optional[str] = None
    sport: Optional[str] = None

    @property
    def has_cardio_signal(self) -> bool:
        return any(
            v is not None
            for v in (self.avg_power, self.normalized_power, self.avg_hr, self.source_tss)
        )

    @property
    def is_strength(self) -> bool:
        """Scored by session RPE: a strength sport, lifting volume, or RPE with nothing else to go on."""
        if self.rpe is None:
            return False
        if self.sport is not None and self.sport.lower() in STRENGTH_SPORTS:
            return True
        if self.volume_kg is not None or self.sets is not None:
            return True
        return not self.has_cardio_signal


@dataclass(frozen=True)
class AthleteProfile:
    ftp: Optional[float] = None
    max_hr: Optional[float] = None
    resting_hr: Optional[float] = None
    sex: Sex = Sex.UNSPECIFIED
    body_mass_kg: Optional[float] = None
    sleep_need_h: float = SLEEP_NEED_FALLBACK_HOURS


@dataclass(frozen=True)
class Baselines:
    """Rolling reference values as of a day. None = insufficient history."""
    hrv: Optional[float] = None
    resting_hr: Optional[float] = None
    sleep_duration: Optional[float] = None
    respiratory_rate: Optional[float] = None
    bedtime_minutes: Optional[float] = None
    wake_time_minutes: Optional[float] = None

    def get(self, metric: BaselineMetric) -> Optional[float]:
        return {
            BaselineMetric.HRV: self.hrv,
            BaselineMetric.RESTING_HR: self.resting_hr,
            BaselineMetric.SLEEP_DURATION: self.sleep_duration,
            BaselineMetric.RESPIRATORY_RATE: self.respiratory_rate,
            BaselineMetric.BEDTIME: self.bedtime_minutes,
            BaselineMetric.WAKE_TIME: self.wake_time_minutes,
        }[metric]


@dataclass
class FamilyScore:
    """
    Result of one score family for one day.

    `score` is None exactly when `status` is a sentinel. `completeness`
    counts the sub-score inputs that were present, out of `inputs_total`.
    """
    family: ScoreFamily
    day: date
    status: ScoreStatus
    score: Optional[float]
    band: Optional[str]
    completeness: int
    inputs_total: int
    components: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_score(self) -> bool:
        return self.status == ScoreStatus.OK and self.score is not None


def validated_sleep_need(hours: Optional[float]) -> float:
    """Sleep need within 4-12 h, else the 8 h fallback."""
    if hours is None:
        return SLEEP_NEED_FALLBACK_HOURS
    if not SLEEP_NEED_MIN_HOURS <= hours <= SLEEP_NEED_MAX_HOURS:
        logger.warning(
            f"Sleep need {hours}h outside {SLEEP_NEED_MIN_HOURS}-{SLEEP_NEED_MAX_HOURS}h, "
            f"using {SLEEP_NEED_FALLBACK_HOURS}h"
        )
        return SLEEP_NEED_FALLBACK_HOURS
    return hours


def band_for(score: float, cuts: Sequence[float], names: List[str]) -> str:
    """
    Bucket a score into an ordered partition.

    `cuts` are ascending lower bounds; `names` has one more entry than
    `cuts`, lowest band first.
    """
    index = 0
    for cut in cuts:
        if score >= cut:
            index += 1
    return names[index]


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clock_minutes(moment: datetime, fold_evening: bool = False) -> float:
    """
    Clock time as minutes from midnight.

    With `fold_evening`, times after noon map to the previous night
    (23:30 -> -30) so bedtimes either side of midnight average sensibly.
    """
    minutes = moment.hour * 60 + moment.minute + moment.second / 60.0
    if fold_evening and minutes >= 12 * 60:
        minutes -= 24 * 60
    return minutes
