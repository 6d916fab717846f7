"""
Unit tests for the cardio load estimator.

Covers the power -> source TSS -> heart rate -> duration priority chain,
the Banister TRIMP helpers and the no-duration edge case.
"""

import logging
from datetime import datetime

import pytest

from services.cardio_load import (
    CardioLoad,
    CardioLoadEstimator,
    LoadMethod,
    banister_trimp,
    threshold_hour_trimp,
)
from services.score_inputs import ActivityInput, AthleteProfile, Sex

START = datetime(2024, 3, 14, 7, 0)


@pytest.fixture
def full_profile():
    return AthleteProfile(ftp=250.0, max_hr=190.0, resting_hr=50.0, sex=Sex.MALE)


class TestPriorityChain:
    """Each level is used only when every level above it is unavailable."""

    def test_power_with_ftp_wins(self, full_profile):
        activity = ActivityInput(
            start_time=START, duration_s=3600, normalized_power=250.0, source_tss=999.0, avg_hr=150,
        )
        load = CardioLoadEstimator(full_profile).estimate(activity)
        assert load.method == LoadMethod.POWER
        assert load.tss == pytest.approx(100.0)
        assert load.intensity_factor == pytest.approx(1.0)
        # Heart rate still yields a TRIMP alongside the power-based TSS
        assert load.trimp is not None

    def test_average_power_used_without_normalized(self, full_profile):
        activity = ActivityInput(start_time=START, duration_s=7200, avg_power=125.0)
        load = CardioLoadEstimator(full_profile).estimate(activity)
        assert load.method == LoadMethod.POWER
        assert load.tss == pytest.approx(100.0 * 2 * 0.5 ** 2)

    def test_power_without_ftp_falls_to_source_tss(self):
        profile = AthleteProfile(max_hr=190.0, resting_hr=50.0)
        activity = ActivityInput(
            start_time=START, duration_s=3600, normalized_power=250.0,
            source_tss=72.0, source_intensity_factor=0.85,
        )
        load = CardioLoadEstimator(profile).estimate(activity)
        assert load.method == LoadMethod.SOURCE_TSS
        assert load.tss == 72.0
        assert load.intensity_factor == 0.85

    def test_heart_rate_when_no_power_or_source_tss(self, full_profile):
        activity = ActivityInput(start_time=START, duration_s=3600, avg_hr=50 + 0.88 * 140)
        load = CardioLoadEstimator(full_profile).estimate(activity)
        assert load.method == LoadMethod.HEART_RATE
        # An hour at threshold reserve is 100 TSS by construction
        assert load.tss == pytest.approx(100.0)
        assert load.intensity_factor == pytest.approx(1.0)

    def test_activity_max_hr_used_when_profile_lacks_it(self):
        profile = AthleteProfile(resting_hr=50.0)
        activity = ActivityInput(start_time=START, duration_s=1800, avg_hr=140, max_hr=185)
        load = CardioLoadEstimator(profile).estimate(activity)
        assert load.method == LoadMethod.HEART_RATE

    def test_missing_resting_hr_falls_to_duration(self):
        profile = AthleteProfile(max_hr=190.0)
        activity = ActivityInput(start_time=START, duration_s=3600, avg_hr=150)
        load = CardioLoadEstimator(profile).estimate(activity)
        assert load.method == LoadMethod.DURATION

    def test_duration_only(self, caplog):
        """58 minutes with nothing else -> TRIMP 58 x 0.6 = 34.8, logged as duration."""
        activity = ActivityInput(start_time=START, duration_s=3480, name="Commute")
        with caplog.at_level(logging.DEBUG, logger="services.cardio_load"):
            load = CardioLoadEstimator(AthleteProfile()).estimate(activity)
        assert load.method == LoadMethod.DURATION
        assert load.trimp == pytest.approx(34.8)
        assert load.tss == pytest.approx(3480 / 3600 * 50.0)
        assert "method=duration" in caplog.text


class TestNoDuration:

    def test_zero_load_and_warning(self, caplog):
        activity = ActivityInput(start_time=START, duration_s=None, avg_power=300.0, name="Broken file")
        with caplog.at_level(logging.WARNING, logger="services.cardio_load"):
            load = CardioLoadEstimator(AthleteProfile(ftp=250.0)).estimate(activity)
        assert load.method == LoadMethod.NONE
        assert load.tss is None
        assert load.trimp is None
        assert "Broken file" in caplog.text

    def test_daily_tss_counts_missing_as_zero(self):
        estimator = CardioLoadEstimator(AthleteProfile())
        activities = [
            ActivityInput(start_time=START, duration_s=0),
            ActivityInput(start_time=START, duration_s=3600),
        ]
        assert estimator.daily_tss(activities) == pytest.approx(50.0)


class TestTrimpHelpers:

    def test_banister_trimp_scales_with_duration(self):
        one = banister_trimp(30, 150, 190, 50, Sex.MALE)
        two = banister_trimp(60, 150, 190, 50, Sex.MALE)
        assert two == pytest.approx(2 * one)

    def test_banister_trimp_rejects_non_positive_reserve(self):
        assert banister_trimp(60, 150, 50, 50) is None

    def test_female_coefficients_differ(self):
        assert threshold_hour_trimp(Sex.FEMALE) != threshold_hour_trimp(Sex.MALE)

    def test_strain_trimp_falls_back_to_tss(self):
        load = CardioLoad(tss=40.0, trimp=None, method=LoadMethod.SOURCE_TSS)
        assert load.strain_trimp == 40.0
