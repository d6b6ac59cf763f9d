"""
Email invitation repository with async CRUD operations
"""

from datetime import datetime
from typing import Optional, List, Any, Dict
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, desc
from app.models.email_invitation import EmailInvitation
from app.models.enums import InvitationStatus


async def get_invitation(session: AsyncSession, invitation_id: str) -> Optional[EmailInvitation]:
    """
    Get invitation by ID.

    Args:
        session: Database session
        invitation_id: Invitation ID

    Returns:
        EmailInvitation instance or None if not found
    """
    result = await session.execute(
        select(EmailInvitation).where(EmailInvitation.invitation_id == invitation_id)
    )
    return result.scalar_one_or_none()


async def find_invitation_for_pair(
    session: AsyncSession,
    connection_code: str,
    recipient_email: str,
    statuses: List[str]
) -> Optional[EmailInvitation]:
    """
    Find the newest invitation for a (code, recipient) pair in one of the given statuses.
    """
    result = await session.execute(
        select(EmailInvitation)
        .where(EmailInvitation.connection_code == connection_code)
        .where(EmailInvitation.recipient_email == recipient_email)
        .where(EmailInvitation.status.in_(statuses))
        .order_by(desc(EmailInvitation.created_at))
        .limit(1)
    )
    return result.scalars().first()


async def add_invitation(
    session: AsyncSession,
    invitation_id: str,
    recipient_email: str,
    sender_user_id: UUID,
    connection_code: str,
    expires_at: datetime,
    scan_data: Optional[Dict[str, Any]] = None
) -> EmailInvitation:
    """
    Stage a new invitation with status 'sent'. Does not commit.
    """
    invitation = EmailInvitation(
        invitation_id=invitation_id,
        recipient_email=recipient_email,
        sender_user_id=sender_user_id,
        connection_code=connection_code,
        scan_data=scan_data,
        expires_at=expires_at,
        status=InvitationStatus.SENT.value,
        delivery_attempts=0
    )
    session.add(invitation)
    await session.flush()
    return invitation


async def get_linkable_invitations(session: AsyncSession, email: str, now: datetime) -> List[EmailInvitation]:
    """
    Get unexpired 'sent' invitations addressed to an email.
    """
    result = await session.execute(
        select(EmailInvitation)
        .where(EmailInvitation.recipient_email == email)
        .where(EmailInvitation.status == InvitationStatus.SENT.value)
        .where(EmailInvitation.expires_at > now)
        .order_by(EmailInvitation.created_at)
    )
    return list(result.scalars().all())


async def mark_invitation_registered(
    session: AsyncSession,
    invitation_id: str,
    registered_user_id: UUID,
    now: datetime
) -> bool:
    """
    Compare-and-set an invitation from 'sent' to 'registered'. Does not commit.

    Only succeeds while the invitation is still 'sent' and unexpired, so a
    retried or duplicate registration cannot link the same invitation twice.

    Returns:
        True if this call performed the transition
    """
    result = await session.execute(
        update(EmailInvitation)
        .where(EmailInvitation.invitation_id == invitation_id)
        .where(EmailInvitation.status == InvitationStatus.SENT.value)
        .where(EmailInvitation.expires_at > now)
        .values(
            status=InvitationStatus.REGISTERED.value,
            registered_user_id=registered_user_id,
            registration_completed_at=now
        )
        .execution_options(synchronize_session=False)
    )
    return (result.rowcount or 0) == 1


async def expire_stale_invitations(session: AsyncSession, now: datetime) -> int:
    """
    Move 'sent' invitations past their expiry to 'expired'. Does not commit.

    Returns:
        Number of invitations expired
    """
    result = await session.execute(
        update(EmailInvitation)
        .where(EmailInvitation.status == InvitationStatus.SENT.value)
        .where(EmailInvitation.expires_at < now)
        .values(status=InvitationStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def get_pending_invitations(session: AsyncSession, sender_user_id: UUID) -> List[EmailInvitation]:
    """
    Get an owner's invitations still waiting for registration, newest first.
    """
    result = await session.execute(
        select(EmailInvitation)
        .where(EmailInvitation.sender_user_id == sender_user_id)
        .where(EmailInvitation.status == InvitationStatus.SENT.value)
        .order_by(desc(EmailInvitation.created_at))
    )
    return list(result.scalars().all())
