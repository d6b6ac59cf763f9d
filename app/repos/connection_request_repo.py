"""
Connection request repository
"""

from typing import Optional, List, Any, Dict
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from app.models.connection_request import ConnectionRequest
from app.models.enums import ConnectionRequestStatus


async def get_connection_request(session: AsyncSession, request_id: UUID) -> Optional[ConnectionRequest]:
    """Get connection request by ID."""
    result = await session.execute(
        select(ConnectionRequest).where(ConnectionRequest.id == request_id)
    )
    return result.scalar_one_or_none()


async def find_request_between(
    session: AsyncSession,
    requester_id: UUID,
    target_user_id: UUID
) -> Optional[ConnectionRequest]:
    """
    Find the newest request from a requester to a target user.
    """
    result = await session.execute(
        select(ConnectionRequest)
        .where(ConnectionRequest.requester_id == requester_id)
        .where(ConnectionRequest.target_user_id == target_user_id)
        .order_by(desc(ConnectionRequest.created_at))
        .limit(1)
    )
    return result.scalars().first()


async def add_connection_request(
    session: AsyncSession,
    target_user_id: UUID,
    requester_id: Optional[UUID] = None,
    requester_email: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> ConnectionRequest:
    """
    Stage a pending connection request. Does not commit.
    """
    request = ConnectionRequest(
        requester_id=requester_id,
        requester_email=requester_email,
        target_user_id=target_user_id,
        status=ConnectionRequestStatus.PENDING.value,
        request_metadata=metadata
    )
    session.add(request)
    await session.flush()
    return request


async def get_requests_for_target(
    session: AsyncSession,
    target_user_id: UUID,
    status: Optional[str] = ConnectionRequestStatus.PENDING.value,
    limit: int = 50
) -> List[ConnectionRequest]:
    """
    Get connection requests addressed to a user, newest first.
    """
    query = select(ConnectionRequest).where(ConnectionRequest.target_user_id == target_user_id)
    if status:
        query = query.where(ConnectionRequest.status == status)
    query = query.order_by(desc(ConnectionRequest.created_at)).limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all())
