"""
Anonymous profile resolution by connection code.

Every failed check short-circuits to a not-found outcome so anonymous
callers cannot tell which check failed. The one exception is a code that
is still flagged active but past its expiry, which may be reported as
expired (settings.distinguish_expired_codes): the caller already holds the
code string, and once the sweep deactivates it the code collapses into
not-found like any other.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow, as_utc
from app.core.config import settings
from app.core.exceptions import PersistenceError
from app.core.metrics import CODE_RESOLUTIONS
from app.models.connection_code import ConnectionCode
from app.models.profile import Profile
from app.repos.connection_code_repo import get_connection_code
from app.repos.profile_repo import get_profile_by_id
from app.schemas.profile import Bio, PublicProfileSettings, PublicProfileView
from app.services.code_issuer import public_profile_url

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 64


class ResolutionFailure(enum.Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


@dataclass
class Resolution:
    """Outcome of resolving a code."""
    view: Optional[PublicProfileView] = None
    failure: Optional[ResolutionFailure] = None
    connection_code: Optional[ConnectionCode] = None
    owner: Optional[Profile] = None

    @property
    def ok(self) -> bool:
        return self.view is not None


def build_public_view(profile: Profile, code: Optional[str] = None, preview: bool = False) -> PublicProfileView:
    """
    Project a profile onto its public view.

    Only fields flagged in the owner's allowed_fields are set; the rest are
    left unset and therefore omitted when serialized. The enabled flag is not
    checked here.
    """
    allowed = PublicProfileSettings.parse(profile.public_profile).allowed_fields
    data = {"name": profile.full_name}

    if code is not None:
        data["connection_code"] = code
        data["public_profile_url"] = public_profile_url(code)

    bio = Bio.parse(profile.bio)
    if allowed.bio and bio is not None and (bio.about or bio.from_):
        # location is governed by its own flag
        bio_fields = {"about": bio.about, "from_": bio.from_}
        data["bio"] = Bio(**{k: v for k, v in bio_fields.items() if v})
    if allowed.location and bio is not None and bio.location:
        data["location"] = bio.location
    if allowed.company and profile.company:
        data["company"] = profile.company
    if allowed.job_title and profile.job_title:
        data["job_title"] = profile.job_title
    if allowed.profile_image and profile.profile_image:
        data["profile_image"] = profile.profile_image
    if allowed.interests and profile.interests:
        data["interests"] = [str(i) for i in profile.interests]
    if allowed.social_links and isinstance(profile.social_links, dict) and profile.social_links:
        data["social_links"] = {
            str(platform): str(url) for platform, url in profile.social_links.items() if url
        }
    if preview:
        data["preview"] = True

    return PublicProfileView(**data)


async def resolve(session: AsyncSession, code: str) -> Resolution:
    """
    Resolve an untrusted code to a public profile view.

    Args:
        session: Database session
        code: Code string from the URL

    Returns:
        Resolution with either a view or a failure reason

    Raises:
        PersistenceError: The store is unavailable
    """
    if not code or len(code) > MAX_CODE_LENGTH:
        return _fail(ResolutionFailure.NOT_FOUND)

    try:
        connection_code = await get_connection_code(session, code)
        if connection_code is None or not connection_code.is_active:
            return _fail(ResolutionFailure.NOT_FOUND)

        if utcnow() >= as_utc(connection_code.expires_at):
            logger.info(f"Connection code expired: {code}")
            if settings.distinguish_expired_codes:
                return _fail(ResolutionFailure.EXPIRED)
            return _fail(ResolutionFailure.NOT_FOUND)

        profile = await get_profile_by_id(session, connection_code.owner_user_id)
    except SQLAlchemyError as e:
        logger.error(f"Error resolving connection code: {e}")
        raise PersistenceError("Failed to resolve connection code") from e

    if profile is None:
        logger.error(f"Profile not found for connection code: {code}")
        return _fail(ResolutionFailure.NOT_FOUND)

    if not PublicProfileSettings.parse(profile.public_profile).enabled:
        return _fail(ResolutionFailure.NOT_FOUND)

    CODE_RESOLUTIONS.labels(outcome="ok").inc()
    return Resolution(
        view=build_public_view(profile, code),
        connection_code=connection_code,
        owner=profile
    )


async def resolve_view(session: AsyncSession, code: str) -> Optional[PublicProfileView]:
    """Resolve a code to its view, or None."""
    resolution = await resolve(session, code)
    return resolution.view


def _fail(reason: ResolutionFailure) -> Resolution:
    CODE_RESOLUTIONS.labels(outcome=reason.value).inc()
    return Resolution(failure=reason)
