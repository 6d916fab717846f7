"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

# Schedule configuration
beat_schedule = {
    # Full trailing-window pass once a day, after overnight device syncs.
    'score-backfill-daily': {
        'task': 'tasks.run_score_backfill',
        'schedule': crontab(hour=3, minute=0),
    },
    # Hourly refresh. Throttled families only recompute today, so this
    # keeps intraday scores current without re-scanning the window.
    'score-backfill-hourly': {
        'task': 'tasks.run_score_backfill',
        'schedule': crontab(minute=5),
    },
}
