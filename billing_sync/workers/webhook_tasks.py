import logging

from celery import shared_task
from flask import current_app
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(OperationalError,),
    retry_backoff=30,
    retry_kwargs={"max_retries": 5},
    retry_jitter=True,
)
def reprocess_pending_events(self, older_than_seconds=300, limit=100):
    """Periodic sweep for admitted webhooks that were never processed."""
    counts = current_app.extensions["billing"].sweeper.reprocess_pending(
        older_than_seconds=older_than_seconds, limit=limit
    )
    logger.info("Reprocess task finished", extra={"task_id": self.request.id, **counts})
    return counts
