"""
Invitation email retry tasks
"""

import logging

from app.celery_app import celery
from app.core.clock import utcnow, as_utc
from app.core.config import settings
from app.db.session import session_scope
from app.models.enums import InvitationStatus
from app.repos.invitation_repo import get_invitation
from app.tasks.runner import run_async

logger = logging.getLogger(__name__)


class InvitationDeliveryFailed(Exception):
    """Raised inside the task so Celery schedules another attempt."""


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def retry_invitation_email_task(self, invitation_id: str):
    """
    Retry delivery of an invitation email that failed at submission.

    Stops without retrying once the invitation was delivered, linked,
    expired, or reached the delivery attempt limit.

    Args:
        invitation_id: Invitation to deliver
    """
    try:
        async def _process():
            from app.services.invitations import deliver_invitation

            async with session_scope() as session:
                invitation = await get_invitation(session, invitation_id)
                if invitation is None:
                    logger.warning(f"Invitation {invitation_id} not found for email retry")
                    return "missing"
                if invitation.status != InvitationStatus.SENT.value or utcnow() >= as_utc(invitation.expires_at):
                    return "not_pending"
                if invitation.email_sent_at is not None:
                    return "already_sent"
                if (invitation.delivery_attempts or 0) >= settings.invitation_max_delivery_attempts:
                    logger.error(f"Delivery attempt limit reached for invitation {invitation_id}")
                    return "limit_reached"

                if await deliver_invitation(session, invitation, schedule_retry=False):
                    return "sent"
                raise InvitationDeliveryFailed(f"Email delivery failed for invitation {invitation_id}")

        return run_async(_process())

    except InvitationDeliveryFailed as exc:
        logger.error(str(exc))
        if self.request.retries < self.max_retries:
            logger.info(f"Retrying invitation email {invitation_id} (attempt {self.request.retries + 1})")
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))  # Exponential backoff
        logger.error(f"Max retries exceeded for invitation email {invitation_id}")
        return "failed"


def enqueue_invitation_retry(invitation_id: str) -> bool:
    """
    Schedule a delayed delivery retry for an invitation.

    Returns:
        True if the retry was enqueued
    """
    if settings.app_env == "testing":
        # Eager mode would run the retry inline on the request path
        return False
    try:
        retry_invitation_email_task.apply_async(args=[invitation_id], countdown=60, retry=False)
        return True
    except Exception as e:
        logger.error(f"Failed to enqueue invitation email retry for {invitation_id}: {e}")
        return False
