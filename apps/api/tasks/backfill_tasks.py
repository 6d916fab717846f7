"""
Score Backfill Tasks

Celery Beat enqueues `run_score_backfill` daily (full pass) and hourly
(throttled families refresh today only).

Design:
    - One Redis lock per score family across workers; a family already
      being backfilled elsewhere is left out of this run.
    - Within the worker the scheduler's single-flight guard applies.
    - A failing day is reported, never retried here; the next run picks it up.
"""

import asyncio
from typing import Dict, List, Optional

from celery import Task

from tasks import celery_app
from core.database import get_db_sync
from services.backfill import BackfillScheduler, FAMILY_ORDER
from services.backfill_lock import acquire_family_locks, release_family_locks
from services.day_record_store import DayRecordStore
from services.score_inputs import ScoreFamily
from services.scoring_service import scoring_service_for
import logging

logger = logging.getLogger(__name__)


@celery_app.task(
    name="tasks.run_score_backfill",
    bind=True,
    max_retries=0,
    soft_time_limit=20 * 60,
    time_limit=25 * 60,
)
def run_score_backfill(
    self: Task,
    window: Optional[int] = None,
    force: bool = False,
    families: Optional[List[str]] = None,
) -> Dict:
    """
    Run one backfill pass over the trailing window.

    Args:
        window: Days to cover, defaults to BACKFILL_WINDOW_DAYS.
        force: Ignore the throttle and rewrite changed values on every day.
        families: Subset of "recovery", "sleep", "strain". Defaults to all.

    Returns:
        The backfill report as a dict, or a skip marker when every requested
        family is locked by another worker.
    """
    requested = [ScoreFamily(f) for f in families] if families else list(FAMILY_ORDER)
    held = acquire_family_locks([f.value for f in requested])
    if not held:
        logger.info("Score backfill skipped: all families already running")
        return {"status": "skipped", "reason": "locked"}

    db = get_db_sync()
    try:
        scheduler = BackfillScheduler(scoring_service_for(db), DayRecordStore(db))
        report = asyncio.run(scheduler.run_backfill(
            window=window,
            force=force,
            families=[ScoreFamily(f) for f in held],
        ))
        result = report.to_dict()
        result["status"] = "ok"
        logger.info(
            f"Score backfill complete: {len(report.updated_days)} updated, "
            f"{len(report.skipped_days)} skipped, {len(report.errored_days)} errored"
        )
        return result
    except Exception as e:
        logger.error(f"Score backfill failed: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
        release_family_locks(held)
