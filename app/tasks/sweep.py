"""
Connection code cleanup tasks
"""

import logging

from app.celery_app import celery
from app.db.session import session_scope
from app.services.sweep import sweep_expired
from app.tasks.runner import run_async

logger = logging.getLogger(__name__)


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def sweep_expired_task(self):
    """
    Deactivate expired connection codes and expire stale invitations.
    Scheduled daily by Celery beat (see app.tasks.scheduler).
    """
    try:
        logger.info("Starting connection code sweep")

        async def _process():
            async with session_scope() as session:
                result = await sweep_expired(session)
                return result.to_dict()

        return run_async(_process())

    except Exception as exc:
        logger.error(f"Error sweeping expired connection codes: {exc}")
        if self.request.retries < self.max_retries:
            logger.info(f"Retrying sweep (attempt {self.request.retries + 1})")
            raise self.retry(countdown=60 * (2 ** self.request.retries))  # Exponential backoff
        else:
            logger.error("Max retries exceeded for connection code sweep")
            raise
