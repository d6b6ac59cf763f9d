"""
Owner-facing connection request endpoints
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.exceptions import ConnectionRequestNotFound, PersistenceError
from app.db.session import get_db
from app.models.profile import Profile
from app.services.invitations import get_incoming_requests, respond_to_connection_request

router = APIRouter()


@router.get("")
async def list_connection_requests(
    current_user: Profile = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """Pending connection requests addressed to the current user."""
    requests = await get_incoming_requests(session, current_user.id)
    return [request.to_dict() for request in requests]


async def _respond(session: AsyncSession, request_id: UUID, owner: Profile, accept: bool):
    try:
        request = await respond_to_connection_request(session, request_id, owner.id, accept)
    except ConnectionRequestNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connection request not found")
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to update connection request"
        )
    return request.to_dict()


@router.post("/{request_id}/accept")
async def accept_connection_request(
    request_id: UUID,
    current_user: Profile = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """Accept a request; both users become contacts."""
    return await _respond(session, request_id, current_user, accept=True)


@router.post("/{request_id}/decline")
async def decline_connection_request(
    request_id: UUID,
    current_user: Profile = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    return await _respond(session, request_id, current_user, accept=False)
