"""
Owner-facing invitation endpoints
"""

from typing import List, Any, Dict

from fastapi import APIRouter, HTTPException, status, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.exceptions import InvitationNotFound
from app.db.session import get_db
from app.models.profile import Profile
from app.services.email import EmailService, get_email_service
from app.services.invitations import get_pending_invitations, resend_invitation

router = APIRouter()


@router.get("/pending")
async def list_pending_invitations(
    current_user: Profile = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
) -> List[Dict[str, Any]]:
    """Invitations sent on the current user's behalf that are still open."""
    invitations = await get_pending_invitations(session, current_user.id)
    return [invitation.to_dict() for invitation in invitations]


@router.post("/{invitation_id}/resend")
async def resend_pending_invitation(
    invitation_id: str,
    current_user: Profile = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service)
):
    """Resend the email for a pending invitation."""
    try:
        result = await resend_invitation(session, invitation_id, current_user.id, email_service)
    except InvitationNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")

    if not result.success:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)
    return {"success": True, "message": result.message, "invitation_id": invitation_id}
