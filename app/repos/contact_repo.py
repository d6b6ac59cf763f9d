"""
Contact repository - mutual connections between two users
"""

from typing import Optional, List, Any, Dict
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.models.contact import Contact


async def get_contact(session: AsyncSession, owner_user_id: UUID, contact_user_id: UUID) -> Optional[Contact]:
    """Get one direction of a connection."""
    result = await session.execute(
        select(Contact)
        .where(Contact.owner_user_id == owner_user_id)
        .where(Contact.contact_user_id == contact_user_id)
    )
    return result.scalar_one_or_none()


async def are_connected(session: AsyncSession, user_a: UUID, user_b: UUID) -> bool:
    """True if user_a already has user_b in their contacts."""
    return await get_contact(session, user_a, user_b) is not None


async def add_mutual_contacts(
    session: AsyncSession,
    user_a: UUID,
    user_b: UUID,
    method: str,
    metadata: Optional[Dict[str, Any]] = None
) -> int:
    """
    Stage both directions of a connection, skipping directions that already
    exist. Does not commit.

    Returns:
        Number of contact rows created
    """
    created = 0
    for owner, other in ((user_a, user_b), (user_b, user_a)):
        if await get_contact(session, owner, other) is not None:
            continue
        session.add(Contact(
            owner_user_id=owner,
            contact_user_id=other,
            method=method,
            contact_metadata=metadata
        ))
        created += 1
    await session.flush()
    return created


async def get_contacts_for_user(session: AsyncSession, owner_user_id: UUID) -> List[Contact]:
    """Get a user's contact list."""
    result = await session.execute(
        select(Contact).where(Contact.owner_user_id == owner_user_id).order_by(Contact.created_at)
    )
    return list(result.scalars().all())
