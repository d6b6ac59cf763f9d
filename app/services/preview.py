"""
Owner preview of the public profile.

A preview is resolved from a signed, short-lived token rather than from a
connection code, so it never records scans, never touches invitations and
ignores the enabled flag.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import create_preview_token, decode_token, subject_as_uuid
from app.core.config import settings
from app.core.exceptions import NotFoundOrInactive
from app.repos.profile_repo import get_profile_by_id
from app.schemas.profile import PublicProfileView
from app.services.resolver import build_public_view

logger = logging.getLogger(__name__)


def preview_url(token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/preview/{token}"


def issue_preview(owner_user_id: UUID) -> dict:
    token = create_preview_token(owner_user_id)
    return {"preview_token": token, "preview_url": preview_url(token)}


async def resolve_preview(session: AsyncSession, token: str) -> PublicProfileView:
    """
    Resolve a preview token to the owner's public view.

    Raises:
        NotFoundOrInactive: The token is invalid, expired or its owner is gone
    """
    payload = decode_token(token, "preview")
    owner_user_id = subject_as_uuid(payload) if payload else None
    if owner_user_id is None:
        raise NotFoundOrInactive()

    profile = await get_profile_by_id(session, owner_user_id)
    if profile is None:
        logger.warning(f"Preview token for missing profile {owner_user_id}")
        raise NotFoundOrInactive()

    return build_public_view(profile, preview=True)
