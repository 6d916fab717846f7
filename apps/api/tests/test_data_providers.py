"""
Tests for the stored-data provider and rolling baselines.

Uses the in-memory SQLite session from conftest.
"""

import pytest
from datetime import date, datetime, timedelta

from conftest import make_ride, make_sample
from models import Athlete
from services.data_providers import BaselineCalculator, StoredDataProvider
from services.score_inputs import BaselineMetric, Sex

AS_OF = date(2024, 3, 14)


class TestBaselineCalculator:

    def test_window_excludes_the_day_itself(self):
        first, last = BaselineCalculator(window_days=7).window(AS_OF)
        assert first == AS_OF - timedelta(days=7)
        assert last == AS_OF - timedelta(days=1)

    def test_minimum_samples(self):
        calc = BaselineCalculator(window_days=7, min_samples=3)
        two = [(AS_OF - timedelta(days=1), 50.0), (AS_OF - timedelta(days=2), 60.0)]
        assert calc.mean(AS_OF, two) is None
        three = two + [(AS_OF - timedelta(days=3), 70.0)]
        assert calc.mean(AS_OF, three) == pytest.approx(60.0)

    def test_unmeasured_days_are_skipped_not_zero(self):
        calc = BaselineCalculator(window_days=7, min_samples=3)
        values = [
            (AS_OF - timedelta(days=1), 60.0),
            (AS_OF - timedelta(days=2), None),
            (AS_OF - timedelta(days=3), 60.0),
            (AS_OF - timedelta(days=4), 60.0),
        ]
        assert calc.mean(AS_OF, values) == pytest.approx(60.0)

    def test_values_outside_window_ignored(self):
        calc = BaselineCalculator(window_days=3, min_samples=1)
        values = [(AS_OF, 100.0), (AS_OF - timedelta(days=10), 100.0), (AS_OF - timedelta(days=1), 40.0)]
        assert calc.mean(AS_OF, values) == pytest.approx(40.0)


class TestStoredDataProvider:

    @pytest.mark.asyncio
    async def test_missing_day_is_all_absent(self, db_session):
        sample = await StoredDataProvider(db_session).samples(AS_OF)
        assert sample.day == AS_OF
        assert sample.hrv is None
        assert sample.has_sleep_session is False

    @pytest.mark.asyncio
    async def test_sample_preserves_measured_zero(self, db_session):
        db_session.add(make_sample(AS_OF, wake_events=0, steps=None))
        db_session.commit()
        sample = await StoredDataProvider(db_session).samples(AS_OF)
        assert sample.wake_events == 0
        assert sample.steps is None

    @pytest.mark.asyncio
    async def test_hrv_baseline(self, db_session, baseline_history):
        provider = StoredDataProvider(db_session, BaselineCalculator(window_days=7, min_samples=3))
        assert await provider.baseline(BaselineMetric.HRV, AS_OF) == pytest.approx(60.0)

    @pytest.mark.asyncio
    async def test_baseline_needs_history(self, db_session):
        db_session.add(make_sample(AS_OF - timedelta(days=1)))
        db_session.commit()
        provider = StoredDataProvider(db_session, BaselineCalculator(window_days=7, min_samples=3))
        baselines = await provider.baselines(AS_OF)
        assert baselines.hrv is None
        assert baselines.resting_hr is None

    @pytest.mark.asyncio
    async def test_bedtime_baseline_folds_across_midnight(self, db_session):
        bedtimes = [(1, 23, 30), (2, 0, 30), (3, 0, 0)]
        for offset, hour, minute in bedtimes:
            day = AS_OF - timedelta(days=offset)
            night = datetime.combine(day, datetime.min.time()) + timedelta(hours=hour, minutes=minute)
            if hour >= 12:
                night -= timedelta(days=1)
            db_session.add(make_sample(day, bedtime=night))
        db_session.commit()

        provider = StoredDataProvider(db_session, BaselineCalculator(window_days=7, min_samples=3))
        assert await provider.baseline(BaselineMetric.BEDTIME, AS_OF) == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_activities_grouped_by_day(self, db_session):
        morning = datetime(2024, 3, 12, 7, 0)
        db_session.add_all([
            make_ride(morning),
            make_ride(morning + timedelta(hours=10), name="Evening spin"),
            make_ride(morning + timedelta(days=2)),
        ])
        db_session.commit()

        provider = StoredDataProvider(db_session)
        grouped = await provider.activities_between(date(2024, 3, 11), AS_OF)
        assert len(grouped[date(2024, 3, 12)]) == 2
        assert len(grouped[AS_OF]) == 1
        assert date(2024, 3, 13) not in grouped
        assert len(await provider.activities(AS_OF)) == 1
        assert await provider.earliest_activity_day() == date(2024, 3, 12)

    @pytest.mark.asyncio
    async def test_strength_session_keeps_sport_and_rpe(self, db_session):
        db_session.add(make_ride(
            datetime(2024, 3, 14, 18, 0),
            name="Gym",
            sport="strength",
            normalized_power_w=None,
            avg_hr=None,
            rpe=9.0,
        ))
        db_session.commit()

        [session] = await StoredDataProvider(db_session).activities(AS_OF)
        assert session.sport == "strength"
        assert session.rpe == 9.0
        assert session.is_strength

    @pytest.mark.asyncio
    async def test_no_activities(self, db_session):
        provider = StoredDataProvider(db_session)
        assert await provider.earliest_activity_day() is None
        assert await provider.activities(AS_OF) == []


class TestProfile:

    @pytest.mark.asyncio
    async def test_defaults_without_athlete(self, db_session):
        profile = await StoredDataProvider(db_session).profile()
        assert profile.ftp is None
        assert profile.sleep_need_h == 8.0
        assert profile.sex == Sex.UNSPECIFIED

    @pytest.mark.asyncio
    async def test_athlete_profile(self, db_session, athlete):
        profile = await StoredDataProvider(db_session).profile()
        assert profile.ftp == 250.0
        assert profile.max_hr == 190
        assert profile.sex == Sex.MALE

    @pytest.mark.asyncio
    async def test_invalid_sleep_need_falls_back(self, db_session):
        db_session.add(Athlete(display_name="Night owl", sleep_need_h=15.0))
        db_session.commit()
        profile = await StoredDataProvider(db_session).profile()
        assert profile.sleep_need_h == 8.0
