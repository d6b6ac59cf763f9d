"""
Connection requests and email invitations started from a public profile.

An anonymous viewer who resolved a code can ask to connect by leaving an
email address. Recipients who already have an account get a direct
connection request; everyone else gets an email invitation that is linked
to their account when they register with the same address, at which point
a mutual contact pair is created for both users.

Invitation states: sent -> registered, or sent -> expired (sweep).
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, List, Any, Dict
from uuid import UUID

from email_validator import validate_email, EmailNotValidError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow, as_utc
from app.core.config import settings
from app.core.exceptions import (
    NotFoundOrInactive,
    InvalidEmail,
    InvalidMessage,
    PersistenceError,
    InvitationNotFound,
    ConnectionRequestNotFound,
)
from app.core.metrics import INVITATIONS_SUBMITTED, INVITATION_EMAILS, INVITATIONS_LINKED
from app.models.connection_request import ConnectionRequest
from app.models.email_invitation import EmailInvitation
from app.models.enums import InvitationStatus, ConnectionRequestStatus, ConnectionMethod
from app.models.profile import Profile
from app.repos.connection_request_repo import (
    add_connection_request,
    find_request_between,
    get_connection_request,
    get_requests_for_target,
)
from app.repos.contact_repo import add_mutual_contacts, are_connected
from app.repos.invitation_repo import (
    add_invitation,
    find_invitation_for_pair,
    get_invitation,
    get_linkable_invitations,
    get_pending_invitations as repo_get_pending_invitations,
    mark_invitation_registered,
)
from app.repos.profile_repo import get_profile_by_email, get_profile_by_id
from app.services.email import EmailService, get_email_service
from app.services.resolver import resolve, build_public_view

logger = logging.getLogger(__name__)


@dataclass
class InvitationResult:
    success: bool
    message: str
    invitation_id: Optional[str] = None
    connection_request_id: Optional[UUID] = None
    email_sent: bool = False
    already_registered: bool = False


@dataclass
class LinkSummary:
    linked: List[str] = field(default_factory=list)
    contacts_created: int = 0


def generate_invitation_id() -> str:
    return f"inv_{secrets.token_hex(10)}"


def normalize_email(email: str) -> str:
    """
    Validate and normalize a recipient email.

    Raises:
        InvalidEmail: The address is malformed
    """
    try:
        result = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidEmail(str(e)) from e
    return result.normalized.lower()


def registration_url(invitation_id: str, code: str) -> str:
    base = settings.public_base_url.rstrip('/')
    return f"{base}/app/register?invitation={invitation_id}&code={code}"


def _sender_details(profile: Profile) -> tuple[str, Optional[str]]:
    # Only what the owner shows publicly goes into the email
    view = build_public_view(profile)
    title = view.job_title
    if title and view.company:
        title = f"{title} at {view.company}"
    elif view.company:
        title = view.company
    return view.name or "Someone", title


async def submit_invitation_request(
    session: AsyncSession,
    code: str,
    recipient_email: str,
    message: Optional[str] = None,
    location: Optional[Dict[str, Any]] = None,
    email_service: Optional[EmailService] = None
) -> InvitationResult:
    """
    Ask to connect with the owner of a code.

    Args:
        session: Database session
        code: Connection code the viewer resolved
        recipient_email: The viewer's email address
        message: Optional note to the owner
        location: Optional client-supplied location of the meeting
        email_service: Email collaborator (defaults to the shared service)

    Returns:
        InvitationResult

    Raises:
        NotFoundOrInactive: The code no longer resolves
        InvalidEmail / InvalidMessage: Input validation failed
        PersistenceError: The store failed; safe to retry
    """
    email = normalize_email(recipient_email)
    message = (message or "").strip() or None
    if message and len(message) > settings.invitation_message_max_length:
        raise InvalidMessage(f"Message must be at most {settings.invitation_message_max_length} characters")

    # Re-validate at submission time, not just at page load
    resolution = await resolve(session, code)
    if not resolution.ok:
        INVITATIONS_SUBMITTED.labels(outcome="invalid_code").inc()
        raise NotFoundOrInactive("Invalid or expired connection code")

    owner = resolution.owner
    if owner.email and owner.email.lower() == email:
        raise InvalidEmail("You cannot send a connection request to yourself")

    scan_data = {
        "location": location,
        "message": message,
        "submitted_at": utcnow().isoformat(),
    }

    try:
        registered = await find_invitation_for_pair(
            session, code, email, [InvitationStatus.REGISTERED.value]
        )
        if registered is not None:
            INVITATIONS_SUBMITTED.labels(outcome="already_registered").inc()
            return InvitationResult(
                success=True,
                message="You are already connected.",
                invitation_id=registered.invitation_id,
                already_registered=True
            )

        existing_user = await get_profile_by_email(session, email)
        if existing_user is not None:
            return await _request_from_existing_user(session, owner, existing_user, scan_data)

        invitation, outcome = await _store_invitation(session, owner, code, email, scan_data)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error submitting invitation request for code {code}: {e}")
        raise PersistenceError("Failed to store invitation") from e

    INVITATIONS_SUBMITTED.labels(outcome=outcome).inc()
    logger.info(f"Invitation request stored: {invitation.invitation_id} ({outcome})")

    if outcome == "created" or _may_redeliver(invitation):
        email_sent = await deliver_invitation(session, invitation, owner, email_service)
    else:
        logger.info(f"Not redelivering invitation {invitation.invitation_id} (attempts {invitation.delivery_attempts})")
        email_sent = invitation.email_sent_at is not None

    if email_sent:
        result_message = "Invitation sent! Check your email to complete the connection."
    else:
        result_message = "Your request was saved, but we could not send the email yet. We will try again shortly."

    return InvitationResult(
        success=True,
        message=result_message,
        invitation_id=invitation.invitation_id,
        email_sent=email_sent
    )


async def _store_invitation(
    session: AsyncSession,
    owner: Profile,
    code: str,
    email: str,
    scan_data: Dict[str, Any]
) -> tuple[EmailInvitation, str]:
    now = utcnow()
    invitation = await find_invitation_for_pair(session, code, email, [InvitationStatus.SENT.value])
    if invitation is not None and now < as_utc(invitation.expires_at):
        logger.info(f"Reusing pending invitation {invitation.invitation_id} for code {code}")
        invitation.scan_data = scan_data
        await session.commit()
        return invitation, "resent"

    if invitation is not None:
        # Past expiry but not swept yet; frees the pending slot for this pair
        invitation.status = InvitationStatus.EXPIRED.value
        await session.flush()

    try:
        invitation = await add_invitation(
            session,
            invitation_id=generate_invitation_id(),
            recipient_email=email,
            sender_user_id=owner.id,
            connection_code=code,
            expires_at=now + timedelta(days=settings.invitation_ttl_days),
            scan_data=scan_data
        )
        await session.commit()
    except IntegrityError:
        # A concurrent submit for the same pair inserted first
        await session.rollback()
        winner = await find_invitation_for_pair(session, code, email, [InvitationStatus.SENT.value])
        if winner is None:
            raise
        await session.refresh(owner)
        logger.info(f"Concurrent submit for code {code}, reusing invitation {winner.invitation_id}")
        return winner, "resent"

    return invitation, "created"


def _may_redeliver(invitation: EmailInvitation) -> bool:
    """Whether a repeated submit may send the invitation email again."""
    if (invitation.delivery_attempts or 0) >= settings.invitation_max_delivery_attempts:
        return False
    if invitation.email_sent_at is None:
        return True
    cooldown = timedelta(minutes=settings.invitation_resend_cooldown_minutes)
    return utcnow() - as_utc(invitation.email_sent_at) >= cooldown


async def _request_from_existing_user(
    session: AsyncSession,
    owner: Profile,
    requester: Profile,
    scan_data: Dict[str, Any]
) -> InvitationResult:
    if await are_connected(session, owner.id, requester.id):
        INVITATIONS_SUBMITTED.labels(outcome="already_connected").inc()
        return InvitationResult(success=True, message="You are already connected with this person.")

    existing = await find_request_between(session, requester.id, owner.id)
    if existing is not None and existing.status == ConnectionRequestStatus.PENDING.value:
        INVITATIONS_SUBMITTED.labels(outcome="request_pending").inc()
        return InvitationResult(
            success=True,
            message="Connection request already sent and pending approval.",
            connection_request_id=existing.id
        )

    request = await add_connection_request(
        session,
        target_user_id=owner.id,
        requester_id=requester.id,
        requester_email=requester.email,
        metadata={**scan_data, "method": ConnectionMethod.QR_INVITATION.value}
    )
    await session.commit()

    INVITATIONS_SUBMITTED.labels(outcome="connection_request").inc()
    logger.info(f"Connection request {request.id} created from {requester.id} to {owner.id}")
    return InvitationResult(
        success=True,
        message="Connection request sent! The person will be notified.",
        connection_request_id=request.id
    )


async def deliver_invitation(
    session: AsyncSession,
    invitation: EmailInvitation,
    sender: Optional[Profile] = None,
    email_service: Optional[EmailService] = None,
    schedule_retry: bool = True
) -> bool:
    """
    Send (or resend) the email for an invitation and record the attempt.

    A failed delivery keeps the invitation; when schedule_retry is set a
    bounded background retry is queued.

    Returns:
        True if the email was accepted by the transport
    """
    email_service = email_service or get_email_service()
    if sender is None:
        sender = await get_profile_by_id(session, invitation.sender_user_id)
    if sender is None:
        logger.error(f"Sender profile missing for invitation {invitation.invitation_id}")
        return False

    sender_name, sender_title = _sender_details(sender)
    scan_data = invitation.scan_data or {}
    sent = await email_service.send_invitation_email(
        invitation.recipient_email,
        sender_name,
        registration_url(invitation.invitation_id, invitation.connection_code),
        location=scan_data.get("location"),
        sender_title=sender_title,
        message=scan_data.get("message")
    )

    invitation.delivery_attempts = (invitation.delivery_attempts or 0) + 1
    if sent:
        invitation.email_sent_at = utcnow()
        invitation.last_delivery_error = None
        INVITATION_EMAILS.labels(status="sent").inc()
    else:
        invitation.last_delivery_error = "Email transport did not accept the message"
        INVITATION_EMAILS.labels(status="failed").inc()

    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to record delivery attempt for {invitation.invitation_id}: {e}")

    if not sent and schedule_retry:
        from app.tasks.invitations import enqueue_invitation_retry
        enqueue_invitation_retry(invitation.invitation_id)

    return sent


async def link_invitations_on_registration(session: AsyncSession, user_id: UUID, email: str) -> LinkSummary:
    """
    Link pending invitations to a newly registered account.

    Every unexpired 'sent' invitation addressed to the email is moved to
    'registered' with a compare-and-set update, and only the caller that
    performed the transition creates the mutual contacts. Running this twice
    for the same registration links nothing the second time.

    Args:
        session: Database session
        user_id: The new account's user id
        email: The new account's email

    Returns:
        LinkSummary with linked invitation ids and contact rows created
    """
    try:
        email = normalize_email(email)
    except InvalidEmail:
        logger.warning(f"Registration hook called with invalid email for user {user_id}")
        return LinkSummary()

    for attempt in range(2):
        try:
            summary = await _link_once(session, user_id, email)
            await session.commit()
        except IntegrityError as e:
            # A concurrent path created one of the contact rows; start over
            await session.rollback()
            logger.warning(f"Conflict linking invitations for {user_id} (attempt {attempt + 1}): {e}")
            continue
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Error linking invitations for {user_id}: {e}")
            raise PersistenceError("Failed to link invitations") from e

        if summary.linked:
            INVITATIONS_LINKED.inc(len(summary.linked))
            logger.info(f"Linked invitations {summary.linked} to user {user_id}")
        return summary

    raise PersistenceError("Failed to link invitations after retry")


async def _link_once(session: AsyncSession, user_id: UUID, email: str) -> LinkSummary:
    summary = LinkSummary()
    now = utcnow()
    for invitation in await get_linkable_invitations(session, email, now):
        if invitation.sender_user_id == user_id:
            continue
        if not await mark_invitation_registered(session, invitation.invitation_id, user_id, now):
            continue
        summary.linked.append(invitation.invitation_id)
        summary.contacts_created += await add_mutual_contacts(
            session,
            invitation.sender_user_id,
            user_id,
            method=ConnectionMethod.EMAIL_INVITATION.value,
            metadata={
                **(invitation.scan_data or {}),
                "invitation_id": invitation.invitation_id,
                "registered_at": now.isoformat(),
            }
        )
    return summary


async def resend_invitation(
    session: AsyncSession,
    invitation_id: str,
    owner_user_id: UUID,
    email_service: Optional[EmailService] = None
) -> InvitationResult:
    """
    Manually resend a pending invitation on behalf of its sender.

    Raises:
        InvitationNotFound: No such invitation for this owner
    """
    invitation = await get_invitation(session, invitation_id)
    if invitation is None or invitation.sender_user_id != owner_user_id:
        raise InvitationNotFound(f"Invitation '{invitation_id}' not found")

    if invitation.status != InvitationStatus.SENT.value or utcnow() >= as_utc(invitation.expires_at):
        return InvitationResult(
            success=False,
            message="Invitation is no longer pending",
            invitation_id=invitation_id
        )

    if (invitation.delivery_attempts or 0) >= settings.invitation_max_delivery_attempts:
        return InvitationResult(
            success=False,
            message="Delivery attempt limit reached for this invitation",
            invitation_id=invitation_id
        )

    sent = await deliver_invitation(session, invitation, email_service=email_service, schedule_retry=False)
    return InvitationResult(
        success=sent,
        message="Invitation resent" if sent else "Failed to resend invitation",
        invitation_id=invitation_id,
        email_sent=sent
    )


async def validate_invitation(
    session: AsyncSession,
    invitation_id: str,
    code: Optional[str] = None
) -> Optional[EmailInvitation]:
    """
    Check an invitation link before registration.

    Args:
        session: Database session
        invitation_id: Invitation id from the link
        code: Connection code from the link, if present it must match

    Returns:
        The pending, unexpired invitation, or None. An invitation found past
        its expiry is marked expired.
    """
    try:
        invitation = await get_invitation(session, invitation_id)
        if invitation is None or invitation.status != InvitationStatus.SENT.value:
            return None
        if code is not None and invitation.connection_code != code:
            return None

        if utcnow() >= as_utc(invitation.expires_at):
            invitation.status = InvitationStatus.EXPIRED.value
            await session.commit()
            logger.info(f"Invitation {invitation_id} expired before registration")
            return None
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error validating invitation {invitation_id}: {e}")
        raise PersistenceError("Failed to validate invitation") from e

    return invitation


async def get_pending_invitations(session: AsyncSession, owner_user_id: UUID) -> List[EmailInvitation]:
    """An owner's invitations still waiting for the recipient to register."""
    return await repo_get_pending_invitations(session, owner_user_id)


async def get_incoming_requests(session: AsyncSession, owner_user_id: UUID) -> List[ConnectionRequest]:
    """Pending connection requests addressed to an owner."""
    return await get_requests_for_target(session, owner_user_id)


async def respond_to_connection_request(
    session: AsyncSession,
    request_id: UUID,
    owner_user_id: UUID,
    accept: bool
) -> ConnectionRequest:
    """
    Accept or decline a pending connection request.

    Accepting creates the mutual contact pair. A request that was already
    answered is returned unchanged.

    Raises:
        ConnectionRequestNotFound: No such request addressed to this owner
    """
    request = await get_connection_request(session, request_id)
    if request is None or request.target_user_id != owner_user_id:
        raise ConnectionRequestNotFound(f"Connection request '{request_id}' not found")

    if request.status != ConnectionRequestStatus.PENDING.value:
        return request

    new_status = ConnectionRequestStatus.ACCEPTED if accept else ConnectionRequestStatus.DECLINED
    try:
        result = await session.execute(
            update(ConnectionRequest)
            .where(ConnectionRequest.id == request_id)
            .where(ConnectionRequest.status == ConnectionRequestStatus.PENDING.value)
            .values(status=new_status.value, responded_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1 and accept and request.requester_id is not None:
            method = (request.request_metadata or {}).get("method", ConnectionMethod.QR_INVITATION.value)
            await add_mutual_contacts(
                session,
                owner_user_id,
                request.requester_id,
                method=method,
                metadata={"connection_request_id": str(request.id)}
            )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error responding to connection request {request_id}: {e}")
        raise PersistenceError("Failed to update connection request") from e

    await session.refresh(request)
    logger.info(f"Connection request {request_id} {request.status}")
    return request
