"""
Tests for the day record store: per-family writes, the completeness
guard, load points and backfill run state.
"""

import pytest
from datetime import date

from core.exceptions import CompletenessRegressionError, InvariantViolation
from models import DailyScore
from services.day_record_store import DayRecordStore
from services.score_inputs import FamilyScore, ScoreFamily, ScoreStatus
from services.training_load import TrainingLoadPoint

DAY = date(2024, 3, 14)


def _score(family: ScoreFamily, score: float, completeness: int, total: int = 5) -> FamilyScore:
    return FamilyScore(
        family=family,
        day=DAY,
        status=ScoreStatus.OK,
        score=score,
        band="good",
        completeness=completeness,
        inputs_total=total,
        components={"sub_scores": {"hrv": score}},
    )


@pytest.fixture
def store(db_session):
    return DayRecordStore(db_session)


class TestScoreWrites:

    @pytest.mark.asyncio
    async def test_unscored_day(self, store):
        assert await store.get_score_record(DAY) is None
        assert await store.get_family(DAY, ScoreFamily.SLEEP) is None

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        await store.upsert_score_family(DAY, ScoreFamily.RECOVERY, _score(ScoreFamily.RECOVERY, 72.5, 4))
        stored = await store.get_family(DAY, ScoreFamily.RECOVERY)
        assert stored.score == 72.5
        assert stored.completeness == 4
        assert stored.status == ScoreStatus.OK
        assert stored.components == {"sub_scores": {"hrv": 72.5}}

    @pytest.mark.asyncio
    async def test_families_written_independently(self, store):
        await store.upsert_score_family(DAY, ScoreFamily.SLEEP, _score(ScoreFamily.SLEEP, 81.0, 5))
        record = await store.get_score_record(DAY)
        assert record.sleep.score == 81.0
        assert record.recovery is None
        assert record.strain is None

        await store.upsert_score_family(DAY, ScoreFamily.STRAIN, _score(ScoreFamily.STRAIN, 9.4, 3, total=4))
        record = await store.get_score_record(DAY)
        assert record.sleep.score == 81.0
        assert record.family(ScoreFamily.STRAIN).score == 9.4

    @pytest.mark.asyncio
    async def test_completeness_regression_rejected(self, store, db_session):
        await store.upsert_score_family(DAY, ScoreFamily.RECOVERY, _score(ScoreFamily.RECOVERY, 70.0, 5))

        with pytest.raises(CompletenessRegressionError) as exc_info:
            await store.upsert_score_family(DAY, ScoreFamily.RECOVERY, _score(ScoreFamily.RECOVERY, 40.0, 3))

        assert isinstance(exc_info.value, InvariantViolation)
        assert exc_info.value.stored == 5
        assert exc_info.value.attempted == 3
        stored = await store.get_family(DAY, ScoreFamily.RECOVERY)
        assert stored.score == 70.0
        assert stored.completeness == 5
        assert db_session.query(DailyScore).count() == 1

    @pytest.mark.asyncio
    async def test_equal_completeness_overwrites(self, store):
        await store.upsert_score_family(DAY, ScoreFamily.RECOVERY, _score(ScoreFamily.RECOVERY, 70.0, 4))
        await store.upsert_score_family(DAY, ScoreFamily.RECOVERY, _score(ScoreFamily.RECOVERY, 66.0, 4))
        assert (await store.get_family(DAY, ScoreFamily.RECOVERY)).score == 66.0

    @pytest.mark.asyncio
    async def test_sentinel_stored(self, store):
        sentinel = FamilyScore(
            family=ScoreFamily.SLEEP, day=DAY, status=ScoreStatus.NO_DATA,
            score=None, band=None, completeness=0, inputs_total=5,
        )
        await store.upsert_score_family(DAY, ScoreFamily.SLEEP, sentinel)
        stored = await store.get_family(DAY, ScoreFamily.SLEEP)
        assert stored.status == ScoreStatus.NO_DATA
        assert stored.score is None
        assert stored.has_score is False


class TestLoadPoints:

    @pytest.mark.asyncio
    async def test_unchanged_point_not_rewritten(self, store):
        point = TrainingLoadPoint(day=DAY, ctl=42.0, atl=55.0, tss=80.0, activity_count=1)
        assert await store.upsert_load_point(point) is True
        assert await store.upsert_load_point(point) is False

        changed = TrainingLoadPoint(day=DAY, ctl=43.0, atl=55.0, tss=80.0, activity_count=1)
        assert await store.upsert_load_point(changed) is True
        assert (await store.get_load_point(DAY)).ctl == 43.0

    @pytest.mark.asyncio
    async def test_range_ordered(self, store):
        for day in (date(2024, 3, 3), date(2024, 3, 1), date(2024, 3, 2)):
            await store.upsert_load_point(TrainingLoadPoint(day=day, ctl=1.0, atl=1.0))
        points = await store.get_load_points(date(2024, 3, 1), date(2024, 3, 3))
        assert [p.day for p in points] == [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)]
        assert points[0].tsb == 0.0


class TestRunState:

    @pytest.mark.asyncio
    async def test_no_run_yet(self, store):
        assert await store.get_last_run(ScoreFamily.SLEEP) is None

    @pytest.mark.asyncio
    async def test_running_pass_is_not_a_last_run(self, store):
        await store.mark_run_started(ScoreFamily.SLEEP)
        state = await store.get_run_state(ScoreFamily.SLEEP)
        assert state.last_status == "running"
        assert await store.get_last_run(ScoreFamily.SLEEP) is None

    @pytest.mark.asyncio
    async def test_successful_pass_recorded(self, store):
        await store.mark_run_started(ScoreFamily.SLEEP)
        await store.mark_run_finished(ScoreFamily.SLEEP, {"updated": 3, "skipped": 0, "errored": 0})
        last_run = await store.get_last_run(ScoreFamily.SLEEP)
        assert last_run is not None
        assert last_run.tzinfo is not None

    @pytest.mark.asyncio
    async def test_failed_pass_does_not_count(self, store):
        await store.mark_run_started(ScoreFamily.STRAIN)
        await store.mark_run_finished(ScoreFamily.STRAIN, {}, error="boom")
        state = await store.get_run_state(ScoreFamily.STRAIN)
        assert state.last_status == "error"
        assert state.last_error == "boom"
        assert await store.get_last_run(ScoreFamily.STRAIN) is None
