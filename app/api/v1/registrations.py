"""
Registration hook called by the auth service after a user signs up
"""

import hashlib
import hmac
import json
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, HTTPException, status, Request, Depends
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import PersistenceError
from app.db.session import get_db
from app.services.invitations import link_invitations_on_registration

logger = logging.getLogger(__name__)

router = APIRouter()


class RegistrationCompleted(BaseModel):
    """Payload sent when a user finishes registration"""
    user_id: UUID = Field(..., description="New user's id")
    email: str = Field(..., max_length=320, description="Email the user registered with")


class RegistrationLinkResponse(BaseModel):
    linked: List[str]
    contacts_created: int


def sign_payload(body: bytes) -> str:
    """HMAC-SHA256 hex signature of a raw request body."""
    return hmac.new(
        settings.registration_hook_secret.encode(),
        body,
        hashlib.sha256
    ).hexdigest()


def verify_registration_signature(request: Request, body: bytes) -> bool:
    """
    Verify the hook signature using HMAC-SHA256.

    Without a configured secret every call is rejected, except under
    APP_ENV=testing.

    Returns:
        True if signature is valid, False otherwise
    """
    if not settings.registration_hook_secret:
        if settings.app_env == "testing":
            return True
        logger.error("REGISTRATION_HOOK_SECRET is not set, rejecting registration hook call")
        return False

    signature = request.headers.get("X-Signature")
    if not signature:
        return False

    if signature.startswith("sha256="):
        signature = signature[7:]

    return hmac.compare_digest(signature, sign_payload(body))


@router.post("/complete", response_model=RegistrationLinkResponse)
async def registration_completed(request: Request, session: AsyncSession = Depends(get_db)):
    """
    Link pending invitations for a newly registered user.

    Safe to call more than once for the same registration.
    """
    body = await request.body()
    if not verify_registration_signature(request, body):
        logger.warning("Registration hook called with an invalid signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = RegistrationCompleted.model_validate(json.loads(body or b"{}"))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid payload: {e}")

    try:
        summary = await link_invitations_on_registration(session, payload.user_id, payload.email)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to link invitations"
        )

    return RegistrationLinkResponse(linked=summary.linked, contacts_created=summary.contacts_created)
