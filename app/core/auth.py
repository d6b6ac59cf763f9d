"""
JWT Authentication utilities

Access tokens are issued by the external auth service with the shared
secret; this service only verifies them. Preview tokens are issued here.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from uuid import UUID

from jose import JWTError, jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import get_db
from app.models.profile import Profile
from app.repos.profile_repo import get_profile_by_id

logger = logging.getLogger(__name__)

# JWT token scheme
security = HTTPBearer()


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token (used by tests and local tooling)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_preview_token(owner_user_id: UUID) -> str:
    """
    Create a short-lived token that lets an owner preview their public view.

    The token is self-verifying and never stored.
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.preview_token_expire_minutes)
    to_encode = {"sub": str(owner_user_id), "exp": expire, "type": "preview"}
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, token_type: str) -> Optional[Dict[str, Any]]:
    """Decode a JWT of the given type, or return None if invalid."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.info(f"Rejected {token_type} token: {e}")
        return None
    if payload.get("type") != token_type:
        return None
    return payload


def verify_token(token: str, token_type: str = "access") -> Dict[str, Any]:
    """Verify and decode a JWT token."""
    payload = decode_token(token, token_type)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )
    return payload


def subject_as_uuid(payload: Dict[str, Any]) -> Optional[UUID]:
    try:
        return UUID(str(payload.get("sub")))
    except (TypeError, ValueError):
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_db)
) -> Profile:
    """Get the authenticated owner's profile."""
    payload = verify_token(credentials.credentials, "access")

    user_id = subject_as_uuid(payload)
    if user_id is None:
        logger.error("JWT token missing or malformed 'sub' claim")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    profile = await get_profile_by_id(session, user_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )
    return profile
