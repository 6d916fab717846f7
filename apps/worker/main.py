"""
Celery worker entry point.

This imports the Celery app and tasks from the API module.
"""
import sys

# Add API directory to path so we can import tasks
sys.path.insert(0, '/api')

from core.logging import setup_logging  # noqa: E402
from tasks import celery_app  # noqa: E402

setup_logging()

# This makes Celery discover tasks
celery_app.autodiscover_tasks(['tasks'])


@celery_app.task(name="worker.health_check")
def health_check():
    """Health check task"""
    return {"status": "ok"}
