"""
Unit tests for the strain score calculator.
"""

import pytest
from datetime import date, datetime

from services.score_inputs import ActivityInput, AthleteProfile, Baselines, DaySample, ScoreStatus, Sex
from services.strain_score import (
    StrainScoreCalculator,
    cardio_fraction,
    non_exercise_fraction,
    recovery_signal,
    strength_load_units,
)

DAY = date(2024, 3, 14)
START = datetime(2024, 3, 14, 7, 0)
PROFILE = AthleteProfile(ftp=250.0, max_hr=190.0, resting_hr=50.0, sex=Sex.MALE, body_mass_kg=72.0)


def _ride(**overrides) -> ActivityInput:
    values = dict(start_time=START, duration_s=3600, normalized_power=200.0, avg_hr=140)
    values.update(overrides)
    return ActivityInput(**values)


@pytest.fixture
def calculator():
    return StrainScoreCalculator(PROFILE, daily_cap=18.0, floor=0.5)


class TestBounds:

    def test_rest_day_floors(self, calculator):
        sample = DaySample(day=DAY, steps=0, active_calories=0.0)
        result = calculator.compute(DAY, sample, [], Baselines())
        assert result.status == ScoreStatus.OK
        assert result.score == 0.5
        assert result.band == "light"

    def test_huge_day_caps(self, calculator):
        activities = [
            _ride(duration_s=5 * 3600, normalized_power=250.0, avg_hr=170),
            ActivityInput(start_time=START, duration_s=2 * 3600, rpe=10, volume_kg=20000, sets=30),
        ]
        sample = DaySample(day=DAY, steps=25000, active_calories=2500.0)
        result = calculator.compute(DAY, sample, activities, Baselines())
        assert result.score == 18.0
        assert result.band == "very_hard"

    def test_nothing_measured_is_insufficient(self, calculator):
        result = calculator.compute(DAY, DaySample(day=DAY), [], Baselines())
        assert result.status == ScoreStatus.INSUFFICIENT_DATA
        assert result.score is None

    def test_activity_without_duration_still_scores(self, calculator):
        result = calculator.compute(DAY, DaySample(day=DAY), [_ride(duration_s=None)], Baselines())
        assert result.status == ScoreStatus.OK
        assert result.score == 0.5


class TestComponents:

    def test_cardio_and_strength_counted(self, calculator):
        activities = [
            _ride(),
            ActivityInput(start_time=START, duration_s=45 * 60, rpe=7, sets=4),
        ]
        sample = DaySample(day=DAY, steps=8000)
        result = calculator.compute(DAY, sample, activities, Baselines())
        present = result.components["inputs_present"]
        assert set(present) == {"cardio", "strength", "non_exercise"}
        assert result.completeness == 3
        assert result.inputs_total == 4
        assert result.components["strength_load"] > 0
        assert result.components["cardio_load"] > 0

    def test_harder_ride_more_strain(self, calculator):
        easy = calculator.compute(DAY, DaySample(day=DAY), [_ride(avg_hr=120)], Baselines())
        hard = calculator.compute(DAY, DaySample(day=DAY), [_ride(avg_hr=165)], Baselines())
        assert hard.score > easy.score

    def test_rpe_only_session_is_strength(self, calculator):
        session = ActivityInput(start_time=START, duration_s=3600, rpe=9)
        with_sets = ActivityInput(start_time=START, duration_s=3600, rpe=9, sets=1)

        result = calculator.compute(DAY, DaySample(day=DAY), [session], Baselines())
        assert result.components["inputs_present"] == ["strength"]
        assert result.components["cardio_load"] == 0.0
        assert result.components["strength_load"] == pytest.approx(
            calculator.compute(DAY, DaySample(day=DAY), [with_sets], Baselines()).components["strength_load"]
        )

    def test_strength_sport_with_hr_is_strength(self, calculator):
        session = ActivityInput(start_time=START, duration_s=3600, rpe=8, avg_hr=120, sport="weight_training")
        assert session.is_strength
        result = calculator.compute(DAY, DaySample(day=DAY), [session], Baselines())
        assert result.components["inputs_present"] == ["strength"]

    def test_ride_with_rpe_stays_cardio(self, calculator):
        ride = _ride(rpe=6, sport="ride")
        assert not ride.is_strength
        result = calculator.compute(DAY, DaySample(day=DAY), [ride], Baselines())
        assert result.components["inputs_present"] == ["cardio"]

    def test_non_exercise_fraction(self):
        assert non_exercise_fraction(None, None) is None
        assert non_exercise_fraction(8000, 500.0) == pytest.approx((80 + 1.5) / 1000)
        assert non_exercise_fraction(100000, None) == pytest.approx(0.24)

    def test_strength_rejects_out_of_range_rpe(self):
        assert strength_load_units(11, 60) == 0.0
        assert strength_load_units(7, 0) == 0.0
        assert strength_load_units(7, 60, sets=5) > strength_load_units(7, 60)

    def test_cardio_fraction_zero_without_trimp(self):
        assert cardio_fraction(0.0) == 0.0
        assert 0 < cardio_fraction(100.0) <= 1.0


class TestRecoveryModulation:
    """Under-recovery amplifies the cost of the same work; good recovery dampens it."""

    BASELINES = Baselines(hrv=60.0, resting_hr=50.0)

    def test_poor_recovery_raises_strain(self, calculator):
        well = DaySample(day=DAY, hrv=72.0, resting_hr=48.0)
        poor = DaySample(day=DAY, hrv=42.0, resting_hr=56.0)
        good_day = calculator.compute(DAY, well, [_ride()], self.BASELINES)
        bad_day = calculator.compute(DAY, poor, [_ride()], self.BASELINES)
        assert good_day.components["recovery_factor"] < 1.0 < bad_day.components["recovery_factor"]
        assert bad_day.score > good_day.score

    def test_factor_bounded(self, calculator):
        wrecked = DaySample(day=DAY, hrv=5.0, resting_hr=90.0)
        result = calculator.compute(DAY, wrecked, [_ride()], self.BASELINES, sleep_score=0.0)
        assert result.components["recovery_factor"] == pytest.approx(1.15)

    def test_signal_absent_without_measurements(self):
        assert recovery_signal(DaySample(day=DAY), Baselines(), None) is None
