"""
Connection code repository with async CRUD operations
"""

from datetime import datetime
from typing import Optional, Any, Dict
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from app.models.connection_code import ConnectionCode


async def get_connection_code(session: AsyncSession, code: str) -> Optional[ConnectionCode]:
    """
    Get connection code by code string.

    Args:
        session: Database session
        code: Connection code string

    Returns:
        ConnectionCode instance or None if not found
    """
    result = await session.execute(
        select(ConnectionCode).where(ConnectionCode.code == code)
    )
    return result.scalar_one_or_none()


async def get_active_code_for_owner(session: AsyncSession, owner_user_id: UUID) -> Optional[ConnectionCode]:
    """
    Get the owner's current active code, expired or not.

    Args:
        session: Database session
        owner_user_id: Owner profile UUID

    Returns:
        ConnectionCode instance or None if the owner has no active code
    """
    result = await session.execute(
        select(ConnectionCode)
        .where(ConnectionCode.owner_user_id == owner_user_id)
        .where(ConnectionCode.is_active == True)
        .order_by(ConnectionCode.created_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def deactivate_codes_for_owner(session: AsyncSession, owner_user_id: UUID) -> int:
    """
    Deactivate every active code of an owner. Does not commit.

    Returns:
        Number of codes deactivated
    """
    result = await session.execute(
        update(ConnectionCode)
        .where(ConnectionCode.owner_user_id == owner_user_id)
        .where(ConnectionCode.is_active == True)
        .values(is_active=False)
    )
    return result.rowcount or 0


async def add_connection_code(
    session: AsyncSession,
    code: str,
    owner_user_id: UUID,
    expires_at: datetime
) -> ConnectionCode:
    """
    Stage a new active code in the current transaction. Does not commit.
    """
    connection_code = ConnectionCode(
        code=code,
        owner_user_id=owner_user_id,
        is_active=True,
        expires_at=expires_at,
        scan_count=0
    )
    session.add(connection_code)
    await session.flush()
    return connection_code


async def increment_scan_rollup(
    session: AsyncSession,
    code: str,
    scanned_at: datetime,
    location: Optional[Dict[str, Any]] = None
) -> int:
    """
    Bump the denormalized scan counters of a code. Does not commit.

    Returns:
        Number of rows updated
    """
    values = {
        "scan_count": ConnectionCode.scan_count + 1,
        "last_scanned_at": scanned_at,
    }
    if location is not None:
        values["last_scan_location"] = location
    result = await session.execute(
        update(ConnectionCode)
        .where(ConnectionCode.code == code)
        .values(**values)
    )
    return result.rowcount or 0


async def deactivate_expired_codes(session: AsyncSession, now: datetime) -> int:
    """
    Deactivate active codes whose expiry has passed. Does not commit.

    Returns:
        Number of codes deactivated
    """
    result = await session.execute(
        update(ConnectionCode)
        .where(ConnectionCode.is_active == True)
        .where(ConnectionCode.expires_at < now)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
