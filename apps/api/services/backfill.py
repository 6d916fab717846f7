"""
Backfill Scheduler

Keeps stored scores and training-load points current over a trailing
window without destroying good data or recomputing needlessly.

Per score family and day:
- no stored result                      -> write
- recomputed completeness is higher     -> write
- recomputed completeness is lower      -> keep stored (never regress)
- same completeness, different values   -> write only for today or when forced
- otherwise                             -> nothing to do

A full pass is throttled per family (BACKFILL_THROTTLE_HOURS since the last
successful pass) unless forced. Today is always recomputed, throttle or
not, since its inputs change intraday. A provider failure on one day marks
that day skipped; the rest of the window still runs.

Passes for the same family are single-flight: a caller arriving while a
pass is running awaits that pass's result instead of starting another.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Dict, Any, List, Callable, Awaitable, Iterable

import logging

from core.config import settings
from core.exceptions import CompletenessRegressionError, UpstreamFailure
from services.day_record_store import DayRecordStore
from services.score_inputs import FamilyScore, ScoreFamily
from services.scoring_service import Calculators, ScoringService

logger = logging.getLogger(__name__)

LOAD_FLIGHT_KEY = "training_load"
SCORE_TOLERANCE = 1e-6

# Sleep first: recovery and strain read the same night's sleep
FAMILY_ORDER = (ScoreFamily.SLEEP, ScoreFamily.RECOVERY, ScoreFamily.STRAIN)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FamilyReport:
    family: str
    throttled: bool = False
    updated_days: List[date] = field(default_factory=list)
    skipped_days: List[date] = field(default_factory=list)
    errored_days: List[date] = field(default_factory=list)


@dataclass
class BackfillReport:
    window: int
    force: bool
    families: Dict[str, FamilyReport] = field(default_factory=dict)
    load_updated_days: List[date] = field(default_factory=list)
    load_error: Optional[str] = None

    def _collect(self, attr: str, extra: Iterable[date] = ()) -> List[date]:
        days = set(extra)
        for report in self.families.values():
            days.update(getattr(report, attr))
        return sorted(days)

    @property
    def updated_days(self) -> List[date]:
        return self._collect("updated_days", self.load_updated_days)

    @property
    def skipped_days(self) -> List[date]:
        return self._collect("skipped_days")

    @property
    def errored_days(self) -> List[date]:
        return self._collect("errored_days")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window": self.window,
            "force": self.force,
            "updated_days": [d.isoformat() for d in self.updated_days],
            "skipped_days": [d.isoformat() for d in self.skipped_days],
            "errored_days": [d.isoformat() for d in self.errored_days],
            "load_updated_days": [d.isoformat() for d in self.load_updated_days],
            "load_error": self.load_error,
            "families": {
                name: {
                    "throttled": r.throttled,
                    "updated_days": [d.isoformat() for d in r.updated_days],
                    "skipped_days": [d.isoformat() for d in r.skipped_days],
                    "errored_days": [d.isoformat() for d in r.errored_days],
                }
                for name, r in self.families.items()
            },
        }


class SingleFlight:
    """
    At most one in-flight call per key; late callers await the same result.

    Cancelling a late caller does not cancel the shared call.
    """

    def __init__(self):
        self._inflight: Dict[str, "asyncio.Future[Any]"] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        existing = self._inflight.get(key)
        if existing is not None:
            logger.debug(f"Joining in-flight pass for {key}")
            return await asyncio.shield(existing)

        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        try:
            return await task
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]


# Process-wide guard shared by every scheduler instance
BACKFILL_FLIGHTS = SingleFlight()


def should_write(
    existing: Optional[FamilyScore],
    result: FamilyScore,
    is_today: bool,
    force: bool,
) -> bool:
    if existing is None:
        return True
    if result.completeness > existing.completeness:
        return True
    if result.completeness < existing.completeness:
        return False
    if not (is_today or force):
        return False
    return _differs(existing, result)


def _differs(a: FamilyScore, b: FamilyScore) -> bool:
    if a.status != b.status or a.band != b.band:
        return True
    if (a.score is None) != (b.score is None):
        return True
    return a.score is not None and abs(a.score - b.score) > SCORE_TOLERANCE


class BackfillScheduler:
    def __init__(
        self,
        service: ScoringService,
        store: DayRecordStore,
        throttle_hours: Optional[float] = None,
        today_fn: Callable[[], date] = date.today,
        now_fn: Callable[[], datetime] = _utcnow,
        single_flight: Optional[SingleFlight] = None,
    ):
        self.service = service
        self.store = store
        self.throttle = timedelta(
            hours=settings.BACKFILL_THROTTLE_HOURS if throttle_hours is None else throttle_hours
        )
        self.today_fn = today_fn
        self.now_fn = now_fn
        self.flights = single_flight or BACKFILL_FLIGHTS

    def window_days(self, window: int) -> List[date]:
        today = self.today_fn()
        return [today - timedelta(days=offset) for offset in range(window - 1, -1, -1)]

    async def run_backfill(
        self,
        window: Optional[int] = None,
        force: bool = False,
        families: Optional[Iterable[ScoreFamily]] = None,
    ) -> BackfillReport:
        window = window or settings.BACKFILL_WINDOW_DAYS
        wanted = set(families) if families is not None else set(FAMILY_ORDER)
        selected = [f for f in FAMILY_ORDER if f in wanted]
        days = self.window_days(window)
        report = BackfillReport(window=window, force=force)

        logger.info(
            f"Backfill starting: window={window} force={force} "
            f"families={[f.value for f in selected]} range={days[0]}..{days[-1]}"
        )

        try:
            calculators = await self.service.calculators()
        except Exception as e:
            logger.error(f"Backfill aborted before start, athlete profile unavailable: {e}")
            for family in selected:
                report.families[family.value] = FamilyReport(family=family.value, skipped_days=list(days))
            return report

        try:
            report.load_updated_days = await self.flights.run(
                LOAD_FLIGHT_KEY, lambda: self._run_load(days, calculators)
            )
        except Exception as e:
            report.load_error = str(e)
            logger.warning(f"Training-load pass skipped: {e}")

        for family in selected:
            report.families[family.value] = await self.flights.run(
                family.value, lambda family=family: self._run_family(family, days, force, calculators)
            )

        logger.info(
            f"Backfill finished: updated={len(report.updated_days)} "
            f"skipped={len(report.skipped_days)} errored={len(report.errored_days)}"
        )
        return report

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def _run_load(self, days: List[date], calculators: Calculators) -> List[date]:
        """Recompute load points over the window; write only the ones that changed."""
        try:
            points = await self.service.compute_load_range(days[0], days[-1], calculators)
        except Exception as e:
            raise UpstreamFailure(days[0], "activities", e) from e

        updated: List[date] = []
        for point in points:
            if await self.store.upsert_load_point(point):
                updated.append(point.day)
        return updated

    async def _is_throttled(self, family: ScoreFamily, force: bool) -> bool:
        if force:
            return False
        last_run = await self.store.get_last_run(family)
        return last_run is not None and self.now_fn() - last_run < self.throttle

    async def _run_family(
        self,
        family: ScoreFamily,
        days: List[date],
        force: bool,
        calculators: Calculators,
    ) -> FamilyReport:
        report = FamilyReport(family=family.value)
        today = self.today_fn()

        report.throttled = await self._is_throttled(family, force)
        if report.throttled:
            logger.info(f"Backfill {family.value} throttled, refreshing {today} only")
            days = [d for d in days if d == today]
        else:
            await self.store.mark_run_started(family)

        error: Optional[str] = None
        completed = False
        try:
            for day in days:
                await self._process_day(family, day, day == today, force, calculators, report)
            completed = True
        except Exception as e:
            error = str(e)
            raise
        finally:
            # A cancelled pass stays "running" so it never satisfies the throttle
            if not report.throttled and (completed or error):
                await self.store.mark_run_finished(
                    family,
                    {
                        "updated": len(report.updated_days),
                        "skipped": len(report.skipped_days),
                        "errored": len(report.errored_days),
                    },
                    error=error,
                )
        return report

    async def _process_day(
        self,
        family: ScoreFamily,
        day: date,
        is_today: bool,
        force: bool,
        calculators: Calculators,
        report: FamilyReport,
    ) -> None:
        try:
            result = await self.service.compute_family(day, family, calculators)
        except Exception as e:
            failure = UpstreamFailure(day, "samples", e)
            logger.warning(f"Backfill {family.value}: skipping {day}: {failure}")
            report.skipped_days.append(day)
            return

        existing = await self.store.get_family(day, family)
        if not should_write(existing, result, is_today, force):
            return

        try:
            await self.store.upsert_score_family(day, family, result)
        except CompletenessRegressionError as e:
            logger.error(f"Backfill {family.value}: {e}")
            report.errored_days.append(day)
            return
        report.updated_days.append(day)
