"""
Anonymous public profile endpoints

Reached by scanning a QR code or opening a shared link; no authentication.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Header, Query, status, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundOrInactive, ValidationError, PersistenceError
from app.db.session import get_db
from app.repos.profile_repo import get_profile_by_id
from app.schemas.profile import ScanLocation
from app.services.email import EmailService, get_email_service
from app.services.invitations import submit_invitation_request, validate_invitation
from app.services.preview import resolve_preview
from app.services.resolver import resolve, build_public_view, ResolutionFailure
from app.services.scan_recorder import device_info_from_user_agent
from app.tasks.scans import enqueue_scan

logger = logging.getLogger(__name__)

router = APIRouter()

NOT_FOUND_DETAIL = "Profile not found"
EXPIRED_DETAIL = "This connection code has expired"


class InvitationRequest(BaseModel):
    """Connection request left by an anonymous viewer"""
    email: str = Field(..., max_length=320)
    message: Optional[str] = None
    location: Optional[ScanLocation] = None


class InvitationResponse(BaseModel):
    success: bool
    message: str
    invitation_id: Optional[str] = None
    email_sent: bool = False
    already_registered: bool = False


class InvitationLinkResponse(BaseModel):
    """What the registration page may show for an invitation link"""
    invitation_id: str
    recipient_email: str
    sender_name: str
    expires_at: datetime


@router.get("/profile/{code}")
async def get_public_profile(
    code: str,
    background_tasks: BackgroundTasks,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    user_agent: Optional[str] = Header(None),
    referer: Optional[str] = Header(None),
    x_session_id: Optional[str] = Header(None, max_length=128),
    session: AsyncSession = Depends(get_db)
):
    """
    Resolve a connection code to the owner's public profile.

    Returns only the fields the owner made public. A successful resolution
    queues a scan event after the response is sent.
    """
    try:
        resolution = await resolve(session, code)
    except PersistenceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service unavailable")

    if resolution.failure == ResolutionFailure.EXPIRED:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=EXPIRED_DETAIL)
    if not resolution.ok:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)

    location = None
    if lat is not None and lng is not None:
        location = {"latitude": lat, "longitude": lng}

    background_tasks.add_task(
        enqueue_scan,
        code,
        device_info=device_info_from_user_agent(user_agent).model_dump(),
        location=location,
        session_id=x_session_id,
        referrer=referer
    )
    return resolution.view.to_public_dict()


@router.post("/profile/{code}/invitations", response_model=InvitationResponse)
async def create_invitation_request(
    code: str,
    request_data: InvitationRequest,
    session: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Ask the code's owner to connect.

    Existing users get a direct connection request; new users get an email
    invitation that links on registration.
    """
    location = request_data.location.model_dump(exclude_none=True) if request_data.location else None
    try:
        result = await submit_invitation_request(
            session,
            code,
            request_data.email,
            message=request_data.message,
            location=location,
            email_service=email_service
        )
    except NotFoundOrInactive:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid or expired connection code")
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to process connection request"
        )

    return InvitationResponse(
        success=result.success,
        message=result.message,
        invitation_id=result.invitation_id,
        email_sent=result.email_sent,
        already_registered=result.already_registered
    )


@router.get("/preview/{token}")
async def get_profile_preview(token: str, session: AsyncSession = Depends(get_db)):
    """Owner preview of the public profile. Never records a scan."""
    try:
        view = await resolve_preview(session, token)
    except NotFoundOrInactive:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return view.to_public_dict()


@router.get("/invitations/{invitation_id}", response_model=InvitationLinkResponse)
async def get_invitation_link(
    invitation_id: str,
    code: Optional[str] = Query(None, max_length=64),
    session: AsyncSession = Depends(get_db)
):
    """
    Validate the invitation link from an email so registration can be pre-filled.
    """
    try:
        invitation = await validate_invitation(session, invitation_id, code)
        sender = await get_profile_by_id(session, invitation.sender_user_id) if invitation else None
    except PersistenceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service unavailable")

    if invitation is None or sender is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found or expired")

    return InvitationLinkResponse(
        invitation_id=invitation.invitation_id,
        recipient_email=invitation.recipient_email,
        sender_name=build_public_view(sender).name or "Someone",
        expires_at=invitation.expires_at
    )
