"""
Backfill Lock Service

Cross-process in-flight lock per score family, held by the Celery backfill
task so two workers never recompute the same family at once. Within one
process the scheduler's single-flight guard already serializes passes.

Fails open: when Redis is unavailable the task proceeds and relies on the
store's monotonic-completeness writes.
"""

import logging
from typing import Iterable, List

from core.cache import get_redis_client
from core.config import settings

logger = logging.getLogger(__name__)


def _lock_key(family: str) -> str:
    return f"score_backfill_lock:{family}"


def acquire_backfill_lock(family: str, ttl_s: int = None) -> bool:
    """
    Acquire the in-flight lock for a score family.
    Returns True if acquired, False if another worker holds it.
    """
    r = get_redis_client()
    if not r:
        return True  # fail open

    try:
        acquired = r.set(_lock_key(family), "1", nx=True, ex=ttl_s or settings.BACKFILL_LOCK_TTL_S)
        return bool(acquired)
    except Exception as e:
        logger.warning(f"Backfill lock check failed for {family}: {e}")
        return True  # fail open


def release_backfill_lock(family: str) -> None:
    """Release the in-flight lock after the pass completes."""
    r = get_redis_client()
    if not r:
        return
    try:
        r.delete(_lock_key(family))
    except Exception as e:
        logger.warning(f"Backfill lock release failed for {family}: {e}")


def acquire_family_locks(families: Iterable[str]) -> List[str]:
    """Acquire what can be acquired; return the families now held by this caller."""
    held: List[str] = []
    for family in families:
        if acquire_backfill_lock(family):
            held.append(family)
        else:
            logger.info(f"Backfill for {family} already running elsewhere, skipping")
    return held


def release_family_locks(families: Iterable[str]) -> None:
    for family in families:
        release_backfill_lock(family)
