"""
Unit tests for the invitation workflow
"""

import pytest
from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from app.core.clock import utcnow
from app.core.config import settings
from app.core.exceptions import (
    NotFoundOrInactive,
    InvalidEmail,
    InvalidMessage,
    InvitationNotFound,
    ConnectionRequestNotFound,
    PersistenceError,
)
from app.models.email_invitation import EmailInvitation
from app.models.enums import InvitationStatus, ConnectionRequestStatus, ConnectionMethod
from app.repos.connection_code_repo import add_connection_code
from app.repos.contact_repo import add_mutual_contacts, are_connected, get_contact
from app.repos.invitation_repo import add_invitation, find_invitation_for_pair, get_invitation
from app.services.code_issuer import issue_or_refresh_code, revoke_code
from app.services.invitations import (
    normalize_email,
    registration_url,
    submit_invitation_request,
    link_invitations_on_registration,
    resend_invitation,
    get_pending_invitations,
    get_incoming_requests,
    respond_to_connection_request,
    validate_invitation,
)


async def count_invitations(session, code: str, email: str) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(EmailInvitation)
        .where(EmailInvitation.connection_code == code)
        .where(EmailInvitation.recipient_email == email)
    )
    return result.scalar_one()


async def reload_invitation(session, invitation_id: str) -> EmailInvitation:
    invitation = await get_invitation(session, invitation_id)
    await session.refresh(invitation)
    return invitation


class TestNormalizeEmail:

    def test_lowercases_and_strips(self):
        assert normalize_email("  New.Person@Example.COM ") == "new.person@example.com"

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@b", "two@@example.com"])
    def test_rejects_malformed(self, email):
        with pytest.raises(InvalidEmail):
            normalize_email(email)

    def test_registration_url_carries_invitation_and_code(self):
        url = registration_url("inv_1", "conn_2")
        assert url.endswith("/app/register?invitation=inv_1&code=conn_2")


class TestSubmitInvitation:

    @pytest.mark.asyncio
    async def test_new_recipient_gets_invitation_email(self, async_session, owner, email_service, email_transport):
        connection_code = await issue_or_refresh_code(async_session, owner.id)

        result = await submit_invitation_request(
            async_session,
            connection_code.code,
            "New.Person@Example.com",
            message="Great talk today",
            location={"latitude": 40.7, "longitude": -74.0, "name": "PyCon"},
            email_service=email_service
        )

        assert result.success is True
        assert result.email_sent is True
        assert result.already_registered is False
        assert result.invitation_id.startswith("inv_")

        invitation = await reload_invitation(async_session, result.invitation_id)
        assert invitation.recipient_email == "new.person@example.com"
        assert invitation.sender_user_id == owner.id
        assert invitation.status == InvitationStatus.SENT.value
        assert invitation.delivery_attempts == 1
        assert invitation.email_sent_at is not None
        assert invitation.scan_data["message"] == "Great talk today"

        assert len(email_transport.sent) == 1
        mail = email_transport.sent[0]
        assert mail["to"] == "new.person@example.com"
        assert "Grace Hopper" in mail["subject"]
        assert result.invitation_id in mail["text"]
        assert "PyCon" in mail["text"]
        # company is not public for this owner
        assert "US Navy" not in mail["text"]

    @pytest.mark.asyncio
    async def test_same_code_and_email_reuses_invitation(self, async_session, owner, email_service, email_transport):
        connection_code = await issue_or_refresh_code(async_session, owner.id)

        first = await submit_invitation_request(async_session, connection_code.code, "dup@example.com", email_service=email_service)
        second = await submit_invitation_request(async_session, connection_code.code, "DUP@example.com", email_service=email_service)

        assert first.invitation_id == second.invitation_id
        assert await count_invitations(async_session, connection_code.code, "dup@example.com") == 1
        # the second submit falls inside the resend cooldown
        assert len(email_transport.sent) == 1
        assert second.email_sent is True

    @pytest.mark.asyncio
    async def test_repeat_submits_stop_at_delivery_cap(self, async_session, owner, email_service, email_transport):
        connection_code = await issue_or_refresh_code(async_session, owner.id)

        results = []
        with patch("app.services.invitations.settings.invitation_resend_cooldown_minutes", 0):
            for _ in range(10):
                results.append(await submit_invitation_request(
                    async_session, connection_code.code, "victim@example.com", email_service=email_service
                ))

        assert len({r.invitation_id for r in results}) == 1
        assert len(email_transport.sent) == settings.invitation_max_delivery_attempts
        assert results[-1].email_sent is True

        invitation = await reload_invitation(async_session, results[0].invitation_id)
        assert invitation.delivery_attempts == settings.invitation_max_delivery_attempts

    @pytest.mark.asyncio
    async def test_repeat_submit_after_cooldown_resends(self, async_session, owner, email_service, email_transport):
        connection_code = await issue_or_refresh_code(async_session, owner.id)
        first = await submit_invitation_request(async_session, connection_code.code, "later@example.com", email_service=email_service)

        invitation = await get_invitation(async_session, first.invitation_id)
        invitation.email_sent_at = utcnow() - timedelta(minutes=settings.invitation_resend_cooldown_minutes + 1)
        await async_session.commit()

        await submit_invitation_request(async_session, connection_code.code, "later@example.com", email_service=email_service)

        assert len(email_transport.sent) == 2

    @pytest.mark.asyncio
    async def test_losing_concurrent_submit_reuses_winner(self, async_session, owner, email_service):
        code = (await issue_or_refresh_code(async_session, owner.id)).code
        await add_invitation(
            async_session,
            invitation_id="inv_winner",
            recipient_email="race@example.com",
            sender_user_id=owner.id,
            connection_code=code,
            expires_at=utcnow() + timedelta(days=1)
        )
        await async_session.commit()

        pending_checks = []

        async def lookup_before_winner_commits(session, connection_code, recipient_email, statuses):
            # The pending check runs before the other submit committed
            if statuses == [InvitationStatus.SENT.value] and not pending_checks:
                pending_checks.append(recipient_email)
                return None
            return await find_invitation_for_pair(session, connection_code, recipient_email, statuses)

        with patch("app.services.invitations.find_invitation_for_pair", lookup_before_winner_commits):
            result = await submit_invitation_request(async_session, code, "race@example.com", email_service=email_service)

        assert result.success is True
        assert result.invitation_id == "inv_winner"
        assert await count_invitations(async_session, code, "race@example.com") == 1

    @pytest.mark.asyncio
    async def test_second_pending_invitation_for_pair_violates_unique_index(self, async_session, owner):
        expires = utcnow() + timedelta(days=1)
        await add_invitation(async_session, "inv_one", "pair@example.com", owner.id, "conn_pair", expires)

        with pytest.raises(IntegrityError):
            await add_invitation(async_session, "inv_two", "pair@example.com", owner.id, "conn_pair", expires)
        await async_session.rollback()

    @pytest.mark.asyncio
    async def test_unswept_expired_invitation_is_replaced(self, async_session, owner, email_service):
        code = (await issue_or_refresh_code(async_session, owner.id)).code
        await add_invitation(
            async_session,
            invitation_id="inv_stale",
            recipient_email="again@example.com",
            sender_user_id=owner.id,
            connection_code=code,
            expires_at=utcnow() - timedelta(hours=1)
        )
        await async_session.commit()

        result = await submit_invitation_request(async_session, code, "again@example.com", email_service=email_service)

        assert result.invitation_id != "inv_stale"
        stale = await reload_invitation(async_session, "inv_stale")
        assert stale.status == InvitationStatus.EXPIRED.value

    @pytest.mark.asyncio
    async def test_invalid_code_is_rejected(self, async_session, email_service):
        with pytest.raises(NotFoundOrInactive):
            await submit_invitation_request(async_session, "conn_nope", "x@example.com", email_service=email_service)

    @pytest.mark.asyncio
    async def test_code_revoked_after_page_load_is_rejected(self, async_session, owner, email_service):
        connection_code = await issue_or_refresh_code(async_session, owner.id)
        await revoke_code(async_session, owner.id)

        with pytest.raises(NotFoundOrInactive):
            await submit_invitation_request(async_session, connection_code.code, "late@example.com", email_service=email_service)

    @pytest.mark.asyncio
    async def test_expired_code_is_rejected(self, async_session, owner, email_service):
        await add_connection_code(async_session, "conn_old", owner.id, utcnow() - timedelta(minutes=5))
        await async_session.commit()

        with pytest.raises(NotFoundOrInactive):
            await submit_invitation_request(async_session, "conn_old", "x@example.com", email_service=email_service)

    @pytest.mark.asyncio
    async def test_validation_errors(self, async_session, owner, email_service):
        connection_code = await issue_or_refresh_code(async_session, owner.id)

        with pytest.raises(InvalidEmail):
            await submit_invitation_request(async_session, connection_code.code, "bogus", email_service=email_service)
        with pytest.raises(InvalidEmail):
            await submit_invitation_request(async_session, connection_code.code, owner.email, email_service=email_service)
        with pytest.raises(InvalidMessage):
            await submit_invitation_request(
                async_session,
                connection_code.code,
                "ok@example.com",
                message="x" * (settings.invitation_message_max_length + 1),
                email_service=email_service
            )

    @pytest.mark.asyncio
    async def test_email_failure_keeps_invitation(self, async_session, owner, failing_email_service):
        connection_code = await issue_or_refresh_code(async_session, owner.id)

        with patch("app.tasks.invitations.enqueue_invitation_retry") as mock_retry:
            result = await submit_invitation_request(
                async_session,
                connection_code.code,
                "unlucky@example.com",
                email_service=failing_email_service
            )

        assert result.success is True
        assert result.email_sent is False
        mock_retry.assert_called_once_with(result.invitation_id)

        invitation = await reload_invitation(async_session, result.invitation_id)
        assert invitation.status == InvitationStatus.SENT.value
        assert invitation.email_sent_at is None
        assert invitation.delivery_attempts == 1
        assert invitation.last_delivery_error

    @pytest.mark.asyncio
    async def test_existing_user_gets_connection_request(self, async_session, owner, make_profile, email_service, email_transport):
        existing = await make_profile(email="member@example.com", first_name="Katherine", last_name="Johnson")
        connection_code = await issue_or_refresh_code(async_session, owner.id)

        result = await submit_invitation_request(async_session, connection_code.code, "member@example.com", email_service=email_service)

        assert result.success is True
        assert result.invitation_id is None
        assert result.connection_request_id is not None
        assert email_transport.sent == []

        requests = await get_incoming_requests(async_session, owner.id)
        assert [r.requester_id for r in requests] == [existing.id]

        again = await submit_invitation_request(async_session, connection_code.code, "member@example.com", email_service=email_service)
        assert again.connection_request_id == result.connection_request_id
        assert len(await get_incoming_requests(async_session, owner.id)) == 1


class TestLinkOnRegistration:

    @pytest.mark.asyncio
    async def test_registration_links_invitation_and_creates_mutual_contacts(self, async_session, owner, email_service):
        connection_code = await issue_or_refresh_code(async_session, owner.id)
        submitted = await submit_invitation_request(async_session, connection_code.code, "joiner@example.com", email_service=email_service)
        new_user_id = uuid4()

        summary = await link_invitations_on_registration(async_session, new_user_id, "Joiner@Example.com")

        assert summary.linked == [submitted.invitation_id]
        assert summary.contacts_created == 2

        invitation = await reload_invitation(async_session, submitted.invitation_id)
        assert invitation.status == InvitationStatus.REGISTERED.value
        assert invitation.registered_user_id == new_user_id
        assert invitation.registration_completed_at is not None

        assert await are_connected(async_session, owner.id, new_user_id)
        assert await are_connected(async_session, new_user_id, owner.id)
        contact = await get_contact(async_session, new_user_id, owner.id)
        assert contact.method == ConnectionMethod.EMAIL_INVITATION.value
        assert contact.contact_metadata["invitation_id"] == submitted.invitation_id

    @pytest.mark.asyncio
    async def test_linking_twice_is_a_no_op(self, async_session, owner, email_service):
        connection_code = await issue_or_refresh_code(async_session, owner.id)
        await submit_invitation_request(async_session, connection_code.code, "twice@example.com", email_service=email_service)
        new_user_id = uuid4()

        await link_invitations_on_registration(async_session, new_user_id, "twice@example.com")
        again = await link_invitations_on_registration(async_session, new_user_id, "twice@example.com")

        assert again.linked == []
        assert again.contacts_created == 0

    @pytest.mark.asyncio
    async def test_expired_invitation_is_not_linked(self, async_session, owner):
        await add_invitation(
            async_session,
            invitation_id="inv_expired",
            recipient_email="late@example.com",
            sender_user_id=owner.id,
            connection_code="conn_any",
            expires_at=utcnow() - timedelta(days=1)
        )
        await async_session.commit()

        summary = await link_invitations_on_registration(async_session, uuid4(), "late@example.com")

        assert summary.linked == []
        invitation = await reload_invitation(async_session, "inv_expired")
        assert invitation.status == InvitationStatus.SENT.value

    @pytest.mark.asyncio
    async def test_invitations_from_several_owners_all_link(self, async_session, owner, make_profile, email_service):
        other = await make_profile(public_profile={"enabled": True})
        first_code = await issue_or_refresh_code(async_session, owner.id)
        second_code = await issue_or_refresh_code(async_session, other.id)
        await submit_invitation_request(async_session, first_code.code, "popular@example.com", email_service=email_service)
        await submit_invitation_request(async_session, second_code.code, "popular@example.com", email_service=email_service)

        summary = await link_invitations_on_registration(async_session, uuid4(), "popular@example.com")

        assert len(summary.linked) == 2
        assert summary.contacts_created == 4


    @pytest.mark.asyncio
    async def test_contact_conflict_is_retried(self, async_session, owner, email_service):
        owner_id = owner.id
        code = (await issue_or_refresh_code(async_session, owner_id)).code
        invitation_id = (await submit_invitation_request(async_session, code, "retry@example.com", email_service=email_service)).invitation_id
        new_user_id = uuid4()
        calls = []

        async def conflict_once(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise IntegrityError("INSERT INTO contacts", {}, Exception("UNIQUE constraint failed: contacts"))
            return await add_mutual_contacts(*args, **kwargs)

        with patch("app.services.invitations.add_mutual_contacts", conflict_once):
            summary = await link_invitations_on_registration(async_session, new_user_id, "retry@example.com")

        assert len(calls) == 2
        assert summary.linked == [invitation_id]
        assert summary.contacts_created == 2
        assert await are_connected(async_session, owner_id, new_user_id)

    @pytest.mark.asyncio
    async def test_repeated_conflicts_leave_invitation_pending(self, async_session, owner, email_service):
        code = (await issue_or_refresh_code(async_session, owner.id)).code
        invitation_id = (await submit_invitation_request(async_session, code, "stuck@example.com", email_service=email_service)).invitation_id

        async def always_conflict(*args, **kwargs):
            raise IntegrityError("INSERT INTO contacts", {}, Exception("UNIQUE constraint failed: contacts"))

        with patch("app.services.invitations.add_mutual_contacts", always_conflict):
            with pytest.raises(PersistenceError):
                await link_invitations_on_registration(async_session, uuid4(), "stuck@example.com")

        invitation = await reload_invitation(async_session, invitation_id)
        assert invitation.status == InvitationStatus.SENT.value


class TestValidateInvitation:

    @pytest.mark.asyncio
    async def test_pending_invitation_is_valid(self, async_session, owner, email_service):
        code = (await issue_or_refresh_code(async_session, owner.id)).code
        submitted = await submit_invitation_request(async_session, code, "valid@example.com", email_service=email_service)

        invitation = await validate_invitation(async_session, submitted.invitation_id, code)

        assert invitation.invitation_id == submitted.invitation_id
        assert invitation.recipient_email == "valid@example.com"
        assert await validate_invitation(async_session, submitted.invitation_id) is not None

    @pytest.mark.asyncio
    async def test_mismatched_code_or_unknown_id_is_invalid(self, async_session, owner, email_service):
        code = (await issue_or_refresh_code(async_session, owner.id)).code
        submitted = await submit_invitation_request(async_session, code, "mismatch@example.com", email_service=email_service)

        assert await validate_invitation(async_session, submitted.invitation_id, "conn_other") is None
        assert await validate_invitation(async_session, "inv_missing") is None

    @pytest.mark.asyncio
    async def test_registered_invitation_is_invalid(self, async_session, owner, email_service):
        code = (await issue_or_refresh_code(async_session, owner.id)).code
        submitted = await submit_invitation_request(async_session, code, "done@example.com", email_service=email_service)
        await link_invitations_on_registration(async_session, uuid4(), "done@example.com")
        await reload_invitation(async_session, submitted.invitation_id)

        assert await validate_invitation(async_session, submitted.invitation_id) is None

    @pytest.mark.asyncio
    async def test_expired_invitation_is_marked_expired(self, async_session, owner):
        await add_invitation(
            async_session,
            invitation_id="inv_lapsed",
            recipient_email="lapsed@example.com",
            sender_user_id=owner.id,
            connection_code="conn_lapsed",
            expires_at=utcnow() - timedelta(minutes=1)
        )
        await async_session.commit()

        assert await validate_invitation(async_session, "inv_lapsed") is None

        invitation = await reload_invitation(async_session, "inv_lapsed")
        assert invitation.status == InvitationStatus.EXPIRED.value


class TestOwnerOperations:

    @pytest.mark.asyncio
    async def test_pending_invitations_and_resend(self, async_session, owner, email_service, email_transport):
        connection_code = await issue_or_refresh_code(async_session, owner.id)
        submitted = await submit_invitation_request(async_session, connection_code.code, "pending@example.com", email_service=email_service)

        pending = await get_pending_invitations(async_session, owner.id)
        assert [i.invitation_id for i in pending] == [submitted.invitation_id]

        result = await resend_invitation(async_session, submitted.invitation_id, owner.id, email_service)
        assert result.success is True
        assert len(email_transport.sent) == 2

    @pytest.mark.asyncio
    async def test_resend_is_bounded(self, async_session, owner, email_service):
        connection_code = await issue_or_refresh_code(async_session, owner.id)
        submitted = await submit_invitation_request(async_session, connection_code.code, "bounded@example.com", email_service=email_service)
        invitation = await get_invitation(async_session, submitted.invitation_id)
        invitation.delivery_attempts = settings.invitation_max_delivery_attempts
        await async_session.commit()

        result = await resend_invitation(async_session, submitted.invitation_id, owner.id, email_service)

        assert result.success is False

    @pytest.mark.asyncio
    async def test_resend_requires_ownership(self, async_session, owner, make_profile, email_service):
        stranger = await make_profile()
        connection_code = await issue_or_refresh_code(async_session, owner.id)
        submitted = await submit_invitation_request(async_session, connection_code.code, "mine@example.com", email_service=email_service)

        with pytest.raises(InvitationNotFound):
            await resend_invitation(async_session, submitted.invitation_id, stranger.id, email_service)

    @pytest.mark.asyncio
    async def test_accept_connection_request(self, async_session, owner, make_profile, email_service):
        member = await make_profile(email="accept-me@example.com")
        connection_code = await issue_or_refresh_code(async_session, owner.id)
        result = await submit_invitation_request(async_session, connection_code.code, "accept-me@example.com", email_service=email_service)

        request = await respond_to_connection_request(async_session, result.connection_request_id, owner.id, accept=True)

        assert request.status == ConnectionRequestStatus.ACCEPTED.value
        assert request.responded_at is not None
        assert await are_connected(async_session, owner.id, member.id)
        assert await are_connected(async_session, member.id, owner.id)

        again = await respond_to_connection_request(async_session, result.connection_request_id, owner.id, accept=False)
        assert again.status == ConnectionRequestStatus.ACCEPTED.value

    @pytest.mark.asyncio
    async def test_decline_connection_request(self, async_session, owner, make_profile, email_service):
        member = await make_profile(email="decline-me@example.com")
        connection_code = await issue_or_refresh_code(async_session, owner.id)
        result = await submit_invitation_request(async_session, connection_code.code, "decline-me@example.com", email_service=email_service)

        request = await respond_to_connection_request(async_session, result.connection_request_id, owner.id, accept=False)

        assert request.status == ConnectionRequestStatus.DECLINED.value
        assert not await are_connected(async_session, owner.id, member.id)

    @pytest.mark.asyncio
    async def test_respond_requires_target(self, async_session, owner):
        with pytest.raises(ConnectionRequestNotFound):
            await respond_to_connection_request(async_session, uuid4(), owner.id, accept=True)
