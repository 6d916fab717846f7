"""
Training Load Engine

Turns a day-indexed TSS series into training-load metrics:
- CTL (Chronic Training Load) - fitness (42-day exponential average)
- ATL (Acute Training Load) - fatigue (7-day exponential average)
- TSB (Training Stress Balance) - form (CTL - ATL), derived, never stored

The recurrence is strictly sequential: each day's point is a function of
the previous day's point and that day's TSS. Rest days are TSS = 0, never
skipped, so both loads decay through gaps.

Independent ranges may be computed concurrently; a single range is always
produced in chronological order. Splitting a range into chunks and seeding
each chunk with the previous chunk's last point gives identical results.
"""

from datetime import date, timedelta
from typing import List, Optional, Tuple, Mapping
from dataclasses import dataclass
from enum import Enum
import logging

from core.exceptions import OutOfOrderRangeError

logger = logging.getLogger(__name__)

CTL_TIME_CONSTANT_DAYS = 42
ATL_TIME_CONSTANT_DAYS = 7

# Cold start: the recurrence starts on the earliest activity day, seeded from
# the mean TSS of its first COLD_START_SEED_DAYS days rather than from zero.
# The seed is a function of that first week only, so later history never
# changes an earlier point.
COLD_START_SEED_DAYS = 7
COLD_START_CTL_MULTIPLIER = 0.7
COLD_START_ATL_MULTIPLIER = 0.4


class TSBZone(str, Enum):
    """Training Stress Balance zones for actionable insights."""
    RACE_READY = "race_ready"           # Fresh & fit
    RECOVERING = "recovering"            # Final taper zone
    OPTIMAL_TRAINING = "optimal_training"  # Normal productive training
    OVERREACHING = "overreaching"        # High fatigue
    OVERTRAINING_RISK = "overtraining_risk"  # Red zone


@dataclass
class TSBZoneInfo:
    """Information about a TSB zone."""
    zone: TSBZone
    label: str
    description: str
    color: str  # For UI display
    is_race_window: bool


@dataclass(frozen=True)
class TrainingLoadPoint:
    """One day of the load series."""
    day: date
    ctl: float
    atl: float
    tss: float = 0.0
    activity_count: int = 0

    @property
    def tsb(self) -> float:
        return self.ctl - self.atl


@dataclass
class LoadSummary:
    """Training load summary as of the last point of a series."""
    day: date
    current_atl: float
    current_ctl: float
    current_tsb: float
    atl_trend: str  # "rising", "falling", "stable"
    ctl_trend: str
    tsb_trend: str
    zone: TSBZoneInfo


class TrainingLoadEngine:
    """
    Stateless CTL/ATL engine.

    EMA alpha = 2 / (N + 1): 2/43 for CTL, 2/8 for ATL.
    """

    def __init__(
        self,
        ctl_days: int = CTL_TIME_CONSTANT_DAYS,
        atl_days: int = ATL_TIME_CONSTANT_DAYS,
        cold_start_seed_days: int = COLD_START_SEED_DAYS,
    ):
        self.ctl_days = ctl_days
        self.atl_days = atl_days
        self.cold_start_seed_days = cold_start_seed_days
        self.ctl_alpha = 2 / (ctl_days + 1)
        self.atl_alpha = 2 / (atl_days + 1)

    # =========================================================================
    # RECURRENCE
    # =========================================================================

    def step(self, ctl: float, atl: float, tss: float) -> Tuple[float, float]:
        """Advance one day."""
        new_ctl = ctl + (tss - ctl) * self.ctl_alpha
        new_atl = atl + (tss - atl) * self.atl_alpha
        return new_ctl, new_atl

    def cold_start_seed(self, tss_by_day: Mapping[date, float], first_day: date) -> Tuple[float, float]:
        """
        Seed values for the day before `first_day`.

        Mean TSS over the first COLD_START_SEED_DAYS days (gaps count as 0),
        scaled to avoid an artificially fresh week-one reading.
        """
        window = [
            tss_by_day.get(first_day + timedelta(days=i), 0.0)
            for i in range(self.cold_start_seed_days)
        ]
        mean_tss = sum(window) / len(window)
        ctl = mean_tss * COLD_START_CTL_MULTIPLIER
        atl = mean_tss * COLD_START_ATL_MULTIPLIER
        logger.info(
            f"Cold-start seeding from {first_day}: mean TSS {mean_tss:.1f} "
            f"-> CTL {ctl:.1f}, ATL {atl:.1f}"
        )
        return ctl, atl

    def initial_state(self, tss_by_day: Mapping[date, float]) -> Tuple[float, float]:
        """
        State on the day before the earliest day in `tss_by_day` when no stored
        seed exists. No history at all is a valid untrained state (0, 0).
        """
        if not tss_by_day:
            return 0.0, 0.0
        return self.cold_start_seed(tss_by_day, min(tss_by_day))

    def progressive(
        self,
        start: date,
        end: date,
        tss_by_day: Mapping[date, float],
        seed: Optional[TrainingLoadPoint] = None,
        activity_counts: Optional[Mapping[date, int]] = None,
    ) -> List[TrainingLoadPoint]:
        """
        One point per day in [start, end], computed in chronological order.

        With a `seed`, it must be the point for `start - 1`. Without one, the
        recurrence warms up from the earliest day in `tss_by_day` (the first
        day of history) and only the requested range is returned. Days before
        that first day are untrained (0, 0).

        `tss_by_day` must cover the cold-start window after the first day even
        when it extends past `end`.

        Raises:
            OutOfOrderRangeError: end before start, or a non-contiguous seed.
        """
        if end < start:
            raise OutOfOrderRangeError(f"Range end {end} is before start {start}")
        activity_counts = activity_counts or {}

        if seed is not None:
            if seed.day != start - timedelta(days=1):
                raise OutOfOrderRangeError(
                    f"Seed for {seed.day} is not contiguous with range starting {start}"
                )
            first_day = start
            ctl, atl = seed.ctl, seed.atl
        elif tss_by_day:
            first_day = min(tss_by_day)
            ctl, atl = self.initial_state(tss_by_day)
        else:
            first_day = start
            ctl, atl = 0.0, 0.0

        points: List[TrainingLoadPoint] = []
        current = min(start, first_day)
        while current <= end:
            day_tss = tss_by_day.get(current, 0.0)
            if current < first_day:
                point_ctl, point_atl = 0.0, 0.0
            else:
                ctl, atl = self.step(ctl, atl, day_tss)
                point_ctl, point_atl = ctl, atl
            if current >= start:
                points.append(TrainingLoadPoint(
                    day=current,
                    ctl=point_ctl,
                    atl=point_atl,
                    tss=day_tss,
                    activity_count=activity_counts.get(current, 0),
                ))
            current += timedelta(days=1)
        return points

    def point_for(
        self,
        day: date,
        tss_by_day: Mapping[date, float],
        seed: Optional[TrainingLoadPoint] = None,
    ) -> TrainingLoadPoint:
        return self.progressive(day, day, tss_by_day, seed=seed)[0]

    # =========================================================================
    # SUMMARY, TRENDS, ZONES
    # =========================================================================

    def summarize(self, points: List[TrainingLoadPoint]) -> Optional[LoadSummary]:
        """Summary as of the last point. Trends compare the last 7 days with the 7 before."""
        if not points:
            return None
        atl_history = [p.atl for p in points]
        ctl_history = [p.ctl for p in points]
        last = points[-1]

        atl_trend = self._calculate_trend(atl_history[-14:-7], atl_history[-7:])
        ctl_trend = self._calculate_trend(ctl_history[-14:-7], ctl_history[-7:])

        # TSB trend from ATL/CTL trends
        if atl_trend == "rising" and ctl_trend != "rising":
            tsb_trend = "falling"
        elif atl_trend == "falling" and ctl_trend != "falling":
            tsb_trend = "rising"
        else:
            tsb_trend = "stable"

        return LoadSummary(
            day=last.day,
            current_atl=round(last.atl, 1),
            current_ctl=round(last.ctl, 1),
            current_tsb=round(last.tsb, 1),
            atl_trend=atl_trend,
            ctl_trend=ctl_trend,
            tsb_trend=tsb_trend,
            zone=self.get_tsb_zone(last.tsb),
        )

    def _calculate_trend(
        self,
        old_values: List[float],
        new_values: List[float]
    ) -> str:
        """Determine trend direction from two periods"""
        if not old_values or not new_values:
            return "stable"

        old_avg = sum(old_values) / len(old_values)
        new_avg = sum(new_values) / len(new_values)

        if old_avg == 0:
            return "rising" if new_avg > 0 else "stable"

        change_pct = (new_avg - old_avg) / old_avg

        if change_pct > 0.1:  # >10% increase
            return "rising"
        elif change_pct < -0.1:  # >10% decrease
            return "falling"
        else:
            return "stable"

    @staticmethod
    def get_tsb_zone(tsb: float) -> TSBZoneInfo:
        """Population TSB zones (TrainingPeaks methodology)."""
        if tsb >= 15:
            return TSBZoneInfo(
                zone=TSBZone.RACE_READY,
                label="Race Ready",
                description="Fresh and fit - ideal race window",
                color="green",
                is_race_window=True
            )
        elif tsb >= 5:
            return TSBZoneInfo(
                zone=TSBZone.RECOVERING,
                label="Recovering",
                description="Final taper zone",
                color="blue",
                is_race_window=False
            )
        elif tsb >= -10:
            return TSBZoneInfo(
                zone=TSBZone.OPTIMAL_TRAINING,
                label="Optimal Training",
                description="Productive overload",
                color="yellow",
                is_race_window=False
            )
        elif tsb >= -30:
            return TSBZoneInfo(
                zone=TSBZone.OVERREACHING,
                label="Overreaching",
                description="High fatigue",
                color="orange",
                is_race_window=False
            )
        else:
            return TSBZoneInfo(
                zone=TSBZone.OVERTRAINING_RISK,
                label="Overtraining Risk",
                description="Red zone",
                color="red",
                is_race_window=False
            )

