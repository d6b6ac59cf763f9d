"""
Periodic cleanup of expired codes and invitations
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.exceptions import PersistenceError
from app.core.metrics import SWEEP_ROWS
from app.repos.connection_code_repo import deactivate_expired_codes
from app.repos.invitation_repo import expire_stale_invitations

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    codes_deactivated: int = 0
    invitations_expired: int = 0

    def to_dict(self):
        return {
            "codes_deactivated": self.codes_deactivated,
            "invitations_expired": self.invitations_expired,
        }


async def sweep_expired(session: AsyncSession, now: Optional[datetime] = None) -> SweepResult:
    """
    Deactivate expired active codes and expire stale sent invitations.

    Both updates are conditional on the row's current state, so running the
    sweep concurrently with issuance or registration never clobbers a row that
    was refreshed or linked in the meantime, and a second run changes nothing.

    Args:
        session: Database session
        now: Reference time (defaults to now)

    Returns:
        SweepResult with the number of rows changed per kind
    """
    now = now or utcnow()
    try:
        codes = await deactivate_expired_codes(session, now)
        invitations = await expire_stale_invitations(session, now)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error sweeping expired connection codes: {e}")
        raise PersistenceError("Sweep failed") from e

    SWEEP_ROWS.labels(kind="codes").inc(codes)
    SWEEP_ROWS.labels(kind="invitations").inc(invitations)
    logger.info(f"Sweep complete: {codes} codes deactivated, {invitations} invitations expired")
    return SweepResult(codes_deactivated=codes, invitations_expired=invitations)
