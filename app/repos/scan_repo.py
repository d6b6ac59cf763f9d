"""
Scan tracking repository
"""

from datetime import datetime
from typing import Optional, List, Any, Dict
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func
from app.models.scan_event import ScanEvent


async def add_scan_event(
    session: AsyncSession,
    scan_id: str,
    code: str,
    owner_user_id: UUID,
    scanned_at: datetime,
    location: Optional[Dict[str, Any]] = None,
    device_info: Optional[Dict[str, Any]] = None,
    referrer: Optional[str] = None,
    session_id: Optional[str] = None
) -> ScanEvent:
    """
    Stage a scan event row. Does not commit.
    """
    event = ScanEvent(
        scan_id=scan_id,
        code=code,
        owner_user_id=owner_user_id,
        scanned_at=scanned_at,
        location=location,
        device_info=device_info,
        referrer=referrer,
        session_id=session_id
    )
    session.add(event)
    return event


async def count_scans_for_owner(session: AsyncSession, owner_user_id: UUID) -> int:
    """Total number of scans recorded for an owner's codes."""
    result = await session.execute(
        select(func.count()).select_from(ScanEvent).where(ScanEvent.owner_user_id == owner_user_id)
    )
    return result.scalar_one()


async def get_recent_scans(session: AsyncSession, owner_user_id: UUID, limit: int = 50) -> List[ScanEvent]:
    """
    Get an owner's most recent scans, newest first.

    Args:
        session: Database session
        owner_user_id: Owner profile UUID
        limit: Maximum number of scans to return

    Returns:
        List of ScanEvent instances
    """
    result = await session.execute(
        select(ScanEvent)
        .where(ScanEvent.owner_user_id == owner_user_id)
        .order_by(desc(ScanEvent.scanned_at))
        .limit(limit)
    )
    return list(result.scalars().all())
