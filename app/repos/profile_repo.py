"""
Profile repository - read access to profiles owned by the profile service
"""

from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from app.models.profile import Profile


async def get_profile_by_id(session: AsyncSession, user_id: UUID, for_update: bool = False) -> Optional[Profile]:
    """
    Get profile by user ID.

    Args:
        session: Database session
        user_id: Profile / auth user UUID
        for_update: Lock the row for the rest of the transaction

    Returns:
        Profile instance or None if not found
    """
    query = select(Profile).where(Profile.id == user_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_profile_by_email(session: AsyncSession, email: str) -> Optional[Profile]:
    """
    Get profile by email, case-insensitively.

    Args:
        session: Database session
        email: Email address

    Returns:
        Profile instance or None if not found
    """
    result = await session.execute(
        select(Profile).where(func.lower(Profile.email) == email.strip().lower())
    )
    return result.scalar_one_or_none()


async def create_profile(
    session: AsyncSession,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    user_id: Optional[UUID] = None,
    **fields
) -> Profile:
    """
    Create a profile row. Used by seed scripts and tests; production rows
    come from the profile service.
    """
    profile = Profile(
        email=email.strip().lower(),
        first_name=first_name,
        last_name=last_name,
        **fields
    )
    if user_id is not None:
        profile.id = user_id
    session.add(profile)
    await session.commit()
    await session.refresh(profile)
    return profile
