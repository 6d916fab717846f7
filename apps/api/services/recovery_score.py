"""
Recovery Score Calculator

One 0-100 score per day from five independently-optional sub-scores:

    Recovery = 0.30 x HRV + 0.20 x RHR + 0.30 x Sleep
             + 0.10 x Respiratory + 0.10 x Form

Sub-scores whose inputs are missing are excluded from both the numerator
and the denominator (weights renormalized over what is present). When
nothing is present the result is the INSUFFICIENT_DATA sentinel, never a
neutral mid-range number.

Anomaly modulation:
    The alcohol compound-effect detector looks for joint HRV suppression,
    RHR elevation and degraded sleep. It only runs when the day has sleep
    data; when it fires, the composite is multiplied down by a bounded
    penalty.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Dict, Any, List

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
)

logger = logging.getLogger(__name__)


RECOVERY_WEIGHTS = {
    "hrv": 0.30,
    "rhr": 0.20,
    "sleep": 0.30,
    "respiratory": 0.10,
    "form": 0.10,
}

RECOVERY_BANDS = ["low", "moderate", "optimal"]

# Corroboration for the alcohol detector: RHR more than ~8% over baseline,
# a sleep score below "good"
ALCOHOL_RHR_ELEVATED_BELOW = 88.0
ALCOHOL_SLEEP_DEGRADED_BELOW = 60.0


@dataclass
class AlcoholAssessment:
    """Outcome of the compound-effect detector for one day."""
    evaluated: bool
    detected: bool = False
    confidence: float = 0.0
    penalty_fraction: float = 0.0
    signals: List[str] = field(default_factory=list)


# =============================================================================
# SUB-SCORE CURVES
# =============================================================================

def hrv_component(hrv: Optional[float], baseline: Optional[float]) -> Optional[float]:
    """At or above baseline = 100; softer piecewise penalty for drops."""
    if hrv is None or baseline is None or baseline <= 0:
        return None
    change = (hrv - baseline) / baseline
    if change >= 0:
        return 100.0
    drop = abs(change)
    if drop <= 0.10:
        return max(85.0, 100 - drop * 150)
    if drop <= 0.20:
        return max(60.0, 85 - (drop - 0.10) * 250)
    if drop <= 0.35:
        return max(30.0, 60 - (drop - 0.20) * 200)
    return max(0.0, 30 - (drop - 0.35) * 60)


def rhr_component(rhr: Optional[float], baseline: Optional[float]) -> Optional[float]:
    """At or below baseline = 100; piecewise penalty for elevation."""
    if rhr is None or baseline is None or baseline <= 0:
        return None
    rise = (rhr - baseline) / baseline
    if rise <= 0:
        return 100.0
    if rise <= 0.08:
        return max(88.0, 100 - rise * 150)
    if rise <= 0.15:
        return max(67.0, 88 - (rise - 0.08) * 300)
    if rise <= 0.25:
        return max(37.0, 67 - (rise - 0.15) * 300)
    return max(0.0, 37 - (rise - 0.25) * 100)


def sleep_component(
    sleep_score: Optional[float],
    sleep_duration: Optional[float],
    baseline: Optional[float],
) -> Optional[float]:
    """The day's sleep score when available, else duration relative to baseline."""
    if sleep_score is not None:
        return float(sleep_score)
    if sleep_duration is None or baseline is None or baseline <= 0:
        return None
    return clamp(sleep_duration / baseline * 100, 0.0, 100.0)


def respiratory_component(rate: Optional[float], baseline: Optional[float]) -> Optional[float]:
    """Directional: elevated rate is a stronger stress signal than suppressed."""
    if rate is None or baseline is None or baseline <= 0:
        return None
    change = (rate - baseline) / baseline
    if change > 0.15:
        return max(0.0, 50 - change * 200)
    if change > 0.05:
        return max(50.0, 100 - (change - 0.05) * 500)
    if change >= -0.05:
        return 100.0
    if change >= -0.15:
        return max(70.0, 100 - (abs(change) - 0.05) * 300)
    return max(40.0, 70 - (abs(change) - 0.15) * 200)


def tss_penalty(yesterday_tss: float) -> float:
    """Points removed from form for yesterday's training stress."""
    if yesterday_tss < 50:
        return 0.0
    if yesterday_tss < 100:
        return (yesterday_tss - 50) * 0.2
    if yesterday_tss < 200:
        return 10 + (yesterday_tss - 100) * 0.15
    return min(40.0, 25 + (yesterday_tss - 200) * 0.1)


def form_component(
    ctl: Optional[float],
    atl: Optional[float],
    yesterday_tss: Optional[float] = None,
) -> Optional[float]:
    """
    Form from training-stress balance.

    TSB >= 0 (fresh) = 100. Under fatigue the ATL/CTL ratio scales the score
    down: 100 at 1.0, 50 at 1.5, then towards 0.
    """
    if ctl is None or atl is None:
        return None
    tsb = ctl - atl
    if tsb >= 0:
        base = 100.0
    elif ctl > 0:
        ratio = atl / ctl
        if ratio < 1.5:
            base = max(50.0, 100 - (ratio - 1.0) * 100)
        else:
            base = max(0.0, 50 - (ratio - 1.5) * 50)
    else:
        base = 50.0
    if yesterday_tss is not None and yesterday_tss > 0:
        base -= tss_penalty(yesterday_tss)
    return max(0.0, base)


# =============================================================================
# CALCULATOR
# =============================================================================

class RecoveryScoreCalculator:
    """
    Stateless recovery calculator. Tunables are fixed at construction.
    """

    def __init__(
        self,
        weights: Optional[Dict[str, float]] = None,
        band_cuts: Optional[List[float]] = None,
        alcohol_threshold: Optional[float] = None,
        alcohol_max_penalty: Optional[float] = None,
        alcohol_min_corroborating: Optional[int] = None,
    ):
        self.weights = weights or RECOVERY_WEIGHTS.copy()
        self.band_cuts = band_cuts or list(settings.RECOVERY_BAND_CUTS)
        self.alcohol_threshold = (
            settings.ALCOHOL_CONFIDENCE_THRESHOLD if alcohol_threshold is None else alcohol_threshold
        )
        self.alcohol_max_penalty = (
            settings.ALCOHOL_MAX_PENALTY_FRACTION if alcohol_max_penalty is None else alcohol_max_penalty
        )
        self.alcohol_min_corroborating = (
            settings.ALCOHOL_MIN_CORROBORATING_SIGNALS
            if alcohol_min_corroborating is None
            else alcohol_min_corroborating
        )

    def compute(
        self,
        day: date,
        sample: DaySample,
        baselines: Baselines,
        sleep_score: Optional[float] = None,
        ctl: Optional[float] = None,
        atl: Optional[float] = None,
        yesterday_tss: Optional[float] = None,
    ) -> FamilyScore:
        """
        Compute the recovery score for `day`.

        Args:
            sample: the day's raw inputs
            baselines: rolling references as of `day`
            sleep_score: the day's sleep score, if one was computed
            ctl, atl: training load at the end of the previous day
            yesterday_tss: previous day's total TSS
        """
        signals: Dict[str, float] = {}

        hrv = hrv_component(sample.hrv, baselines.hrv)
        if hrv is not None:
            signals["hrv"] = hrv
        rhr = rhr_component(sample.resting_hr, baselines.resting_hr)
        if rhr is not None:
            signals["rhr"] = rhr
        sleep = sleep_component(sleep_score, sample.sleep_duration, baselines.sleep_duration)
        if sleep is not None:
            signals["sleep"] = sleep
        respiratory = respiratory_component(sample.respiratory_rate, baselines.respiratory_rate)
        if respiratory is not None:
            signals["respiratory"] = respiratory
        form = form_component(ctl, atl, yesterday_tss)
        if form is not None:
            signals["form"] = form

        inputs_total = len(self.weights)

        if not signals:
            logger.info(f"Recovery {day}: no inputs available, insufficient data")
            return FamilyScore(
                family=ScoreFamily.RECOVERY,
                day=day,
                status=ScoreStatus.INSUFFICIENT_DATA,
                score=None,
                band=None,
                completeness=0,
                inputs_total=inputs_total,
            )

        # Weighted average with renormalization for missing signals
        active_weights = {k: self.weights[k] for k in signals}
        total_weight = sum(active_weights.values())
        score = sum(signals[k] * active_weights[k] for k in signals) / total_weight

        has_sleep_data = sleep_score is not None or sample.has_sleep_session
        alcohol = self.assess_alcohol(day, sample, baselines, sleep_score, rhr, has_sleep_data)
        if alcohol.detected:
            score *= 1.0 - alcohol.penalty_fraction

        score = clamp(score, 0.0, 100.0)

        logger.debug(
            f"Recovery {day}: score={score:.1f}, signals={len(signals)}/{inputs_total}, "
            f"components={signals}"
        )

        return FamilyScore(
            family=ScoreFamily.RECOVERY,
            day=day,
            status=ScoreStatus.OK,
            score=score,
            band=band_for(score, self.band_cuts, RECOVERY_BANDS),
            completeness=len(signals),
            inputs_total=inputs_total,
            components={
                "sub_scores": signals,
                "weights_used": active_weights,
                "alcohol": {
                    "evaluated": alcohol.evaluated,
                    "detected": alcohol.detected,
                    "confidence": alcohol.confidence,
                    "penalty_fraction": alcohol.penalty_fraction,
                    "signals": alcohol.signals,
                },
            },
        )

    # ------------------------------------------------------------------
    # Alcohol compound effect
    # ------------------------------------------------------------------

    def assess_alcohol(
        self,
        day: date,
        sample: DaySample,
        baselines: Baselines,
        sleep_score: Optional[float],
        rhr_score: Optional[float],
        has_sleep_data: bool,
    ) -> AlcoholAssessment:
        """
        Multi-signal confidence scoring.

        Requires sleep data and measurable HRV suppression; without either the
        detector does not evaluate. Suppressed HRV alone never fires: it must be
        joined by elevated RHR and/or a poor sleep score (see
        `alcohol_min_corroborating`).
        """
        if not has_sleep_data:
            return AlcoholAssessment(evaluated=False)
        if sample.hrv is None or baselines.hrv is None or baselines.hrv <= 0:
            return AlcoholAssessment(evaluated=False)

        hrv_change = (sample.hrv - baselines.hrv) / baselines.hrv * 100
        confidence = 0.0
        base_penalty = 0.0
        fired: List[str] = []

        # Signal 1: HRV suppression tiers
        for limit, conf, penalty in (
            (-35.0, 30.0, 20.0),
            (-30.0, 28.0, 16.0),
            (-25.0, 25.0, 12.0),
            (-20.0, 20.0, 10.0),
            (-15.0, 15.0, 7.0),
            (-10.0, 10.0, 4.0),
        ):
            if hrv_change < limit:
                confidence += conf
                base_penalty = penalty
                fired.append("hrv_suppressed")
                break

        if confidence <= 0:
            return AlcoholAssessment(evaluated=True)

        # Signal 2/3: poor sleep quality and likely deep-sleep suppression
        if sleep_score is not None:
            if sleep_score < 40:
                confidence += 20.0
                fired.append("sleep_very_poor")
            elif sleep_score < 60:
                confidence += 10.0
                fired.append("sleep_poor")
            if sleep_score < 50:
                confidence += 15.0
                fired.append("deep_sleep_suppressed")

        # Signal 4: elevated RHR
        if rhr_score is not None:
            if rhr_score < 30:
                confidence += 15.0
                fired.append("rhr_strongly_elevated")
            elif rhr_score < 50:
                confidence += 10.0
                fired.append("rhr_elevated")

        # Signal 5: stable respiratory rate points away from illness
        if (
            sample.respiratory_rate is not None
            and baselines.respiratory_rate is not None
            and baselines.respiratory_rate > 0
        ):
            rr_change = (sample.respiratory_rate - baselines.respiratory_rate) / baselines.respiratory_rate
            if abs(rr_change) < 0.10:
                confidence += 15.0
                fired.append("respiratory_stable")
            elif rr_change > 0.15:
                confidence -= 20.0
                fired.append("respiratory_elevated")

        # Signal 6: weekend morning
        is_weekend = day.weekday() >= 5
        if is_weekend:
            confidence += 10.0
            fired.append("weekend")

        confidence = clamp(confidence, 0.0, 100.0)
        corroborating = []
        if rhr_score is not None and rhr_score < ALCOHOL_RHR_ELEVATED_BELOW:
            corroborating.append("rhr")
        if sleep_score is not None and sleep_score < ALCOHOL_SLEEP_DEGRADED_BELOW:
            corroborating.append("sleep")
        if len(corroborating) < self.alcohol_min_corroborating:
            logger.debug(
                f"Alcohol check {day}: HRV suppressed without joint signature "
                f"(corroborating={corroborating})"
            )
            return AlcoholAssessment(evaluated=True, confidence=confidence, signals=fired)

        if confidence < self.alcohol_threshold:
            return AlcoholAssessment(evaluated=True, confidence=confidence, signals=fired)

        penalty = base_penalty * (confidence / 100.0)
        if rhr_score is not None:
            if rhr_score < 30:
                penalty *= 1.5
            elif rhr_score < 50:
                penalty *= 1.25
        if is_weekend and confidence > 60:
            penalty *= 1.2
        # Good sleep despite the signature blunts the impact
        if sleep_score is not None:
            if sleep_score >= 80:
                penalty *= 0.70
            elif sleep_score >= 65:
                penalty *= 0.85

        fraction = min(penalty / 100.0, self.alcohol_max_penalty)
        logger.info(
            f"Alcohol compound effect on {day}: confidence={confidence:.0f}, "
            f"penalty={fraction:.1%}, signals={fired}"
        )
        return AlcoholAssessment(
            evaluated=True,
            detected=True,
            confidence=confidence,
            penalty_fraction=fraction,
            signals=fired,
        )
