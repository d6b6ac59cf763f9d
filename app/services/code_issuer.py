"""
Connection code issuance and rotation.

An owner has at most one active code at a time. The partial unique index on
connection_codes(owner_user_id) WHERE is_active backs this up in the store;
the issuer locks the owner's profile row for the rotate step and treats a
lost unique-index race as "someone else already issued", returning the
winner's code.
"""

import logging
import secrets
from datetime import timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow, as_utc
from app.core.config import settings
from app.core.exceptions import ProfileNotFound, PersistenceError
from app.core.metrics import CODES_ISSUED
from app.models.connection_code import ConnectionCode
from app.repos.profile_repo import get_profile_by_id
from app.repos.connection_code_repo import (
    get_active_code_for_owner,
    deactivate_codes_for_owner,
    add_connection_code,
)

logger = logging.getLogger(__name__)

CODE_PREFIX = "conn_"


def generate_code() -> str:
    """Generate an opaque, URL-safe connection code."""
    return f"{CODE_PREFIX}{secrets.token_urlsafe(settings.connection_code_bytes)}"


def public_profile_url(code: str) -> str:
    """Canonical public URL for a code."""
    return f"{settings.public_base_url.rstrip('/')}/profile/{code}"


def is_usable(connection_code: ConnectionCode) -> bool:
    """True if the code is active and not yet expired."""
    return bool(connection_code.is_active) and utcnow() < as_utc(connection_code.expires_at)


async def issue_or_refresh_code(session: AsyncSession, owner_user_id: UUID) -> ConnectionCode:
    """
    Return the owner's current code, issuing a new one when there is none or
    it has expired.

    Args:
        session: Database session
        owner_user_id: Authenticated owner UUID

    Returns:
        The owner's active, unexpired ConnectionCode

    Raises:
        ProfileNotFound: The owner has no profile row
        PersistenceError: The store failed; safe to retry
    """
    try:
        current = await get_active_code_for_owner(session, owner_user_id)
        if current is not None and is_usable(current):
            return current
        return await _rotate(session, owner_user_id, only_if_stale=True)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error issuing connection code for {owner_user_id}: {e}")
        raise PersistenceError("Failed to issue connection code") from e


async def regenerate_code(session: AsyncSession, owner_user_id: UUID) -> ConnectionCode:
    """
    Deactivate the owner's current code and issue a fresh one.

    Raises:
        ProfileNotFound: The owner has no profile row
        PersistenceError: The store failed; safe to retry
    """
    try:
        return await _rotate(session, owner_user_id, only_if_stale=False)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error regenerating connection code for {owner_user_id}: {e}")
        raise PersistenceError("Failed to regenerate connection code") from e


async def revoke_code(session: AsyncSession, owner_user_id: UUID) -> int:
    """
    Deactivate the owner's active code without issuing a new one.

    Returns:
        Number of codes deactivated
    """
    try:
        count = await deactivate_codes_for_owner(session, owner_user_id)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error revoking connection code for {owner_user_id}: {e}")
        raise PersistenceError("Failed to revoke connection code") from e

    if count:
        logger.info(f"Revoked {count} connection code(s) for {owner_user_id}")
    return count


async def _rotate(session: AsyncSession, owner_user_id: UUID, only_if_stale: bool) -> ConnectionCode:
    profile = await get_profile_by_id(session, owner_user_id, for_update=True)
    if profile is None:
        await session.rollback()
        raise ProfileNotFound(owner_user_id)

    if only_if_stale:
        # Another issuer may have finished while we waited for the lock
        current = await get_active_code_for_owner(session, owner_user_id)
        if current is not None and is_usable(current):
            await session.commit()
            return current

    now = utcnow()
    expires_at = now + timedelta(hours=settings.connection_code_ttl_hours)

    try:
        deactivated = await deactivate_codes_for_owner(session, owner_user_id)
        new_code = await add_connection_code(session, generate_code(), owner_user_id, expires_at)
        await session.commit()
    except IntegrityError:
        # A concurrent issuer inserted first; its code is the current one
        await session.rollback()
        winner = await get_active_code_for_owner(session, owner_user_id)
        if winner is None:
            raise
        logger.info(f"Concurrent issuance for {owner_user_id}, returning existing code")
        return winner

    await session.refresh(new_code)
    CODES_ISSUED.labels(kind="refresh" if only_if_stale else "regenerate").inc()
    logger.info(f"Issued connection code for {owner_user_id} (deactivated {deactivated}), expires {expires_at.isoformat()}")
    return new_code
