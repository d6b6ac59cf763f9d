"""
Owner-facing connection code endpoints
"""

from datetime import datetime
from typing import Optional, List, Any, Dict

from fastapi import APIRouter, HTTPException, status, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.exceptions import ProfileNotFound, PersistenceError
from app.db.session import get_db
from app.models.connection_code import ConnectionCode
from app.models.profile import Profile
from app.services.code_issuer import (
    issue_or_refresh_code,
    regenerate_code,
    revoke_code,
    public_profile_url,
)
from app.services.preview import issue_preview
from app.services.scan_recorder import get_scan_stats

router = APIRouter()


class ConnectionCodeResponse(BaseModel):
    """Current connection code"""
    code: str
    expires_at: datetime
    public_profile_url: str


class RevokeResponse(BaseModel):
    deactivated: int


class ScanStatsResponse(BaseModel):
    """Scan statistics for the owner's codes"""
    total_scans: int
    recent_scans: List[Dict[str, Any]]
    last_scan_date: Optional[datetime] = None


class PreviewResponse(BaseModel):
    preview_token: str
    preview_url: str


def _code_response(connection_code: ConnectionCode) -> ConnectionCodeResponse:
    return ConnectionCodeResponse(
        code=connection_code.code,
        expires_at=connection_code.expires_at,
        public_profile_url=public_profile_url(connection_code.code)
    )


@router.post("", response_model=ConnectionCodeResponse)
async def get_or_create_connection_code(
    current_user: Profile = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Get the current connection code, issuing a new one if there is none or
    it has expired.
    """
    try:
        connection_code = await issue_or_refresh_code(session, current_user.id)
    except ProfileNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to generate connection code"
        )
    return _code_response(connection_code)


@router.post("/regenerate", response_model=ConnectionCodeResponse)
async def regenerate_connection_code(
    current_user: Profile = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """
    Replace the current connection code. The previous code stops resolving
    immediately.
    """
    try:
        connection_code = await regenerate_code(session, current_user.id)
    except ProfileNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to regenerate connection code"
        )
    return _code_response(connection_code)


@router.delete("", response_model=RevokeResponse)
async def revoke_connection_code(
    current_user: Profile = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """Deactivate the current connection code."""
    try:
        deactivated = await revoke_code(session, current_user.id)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to revoke connection code"
        )
    return RevokeResponse(deactivated=deactivated)


@router.get("/stats", response_model=ScanStatsResponse)
async def get_connection_code_stats(
    current_user: Profile = Depends(get_current_user),
    session: AsyncSession = Depends(get_db)
):
    """Scan statistics for the current user's codes."""
    stats = await get_scan_stats(session, current_user.id)
    return ScanStatsResponse(**stats.model_dump())


@router.post("/preview", response_model=PreviewResponse)
async def create_profile_preview(current_user: Profile = Depends(get_current_user)):
    """
    Create a short-lived link showing the public view of the current user's
    profile, whether or not the public profile is enabled.
    """
    return PreviewResponse(**issue_preview(current_user.id))
