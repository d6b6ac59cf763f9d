"""
Unit tests for invitation email rendering and delivery
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from app.core.exceptions import EmailDeliveryFailed
from app.services.email import EmailService, LoggingTransport, MailerSendTransport, create_transport


class TestRenderInvitation:

    def test_render_includes_sender_link_and_location(self):
        service = EmailService(transport=LoggingTransport())

        subject, html, text = service.render_invitation(
            "Grace Hopper",
            "https://dislink.example/app/register?invitation=inv_1&code=conn_1",
            location={"name": "Tech Meetup", "city": "Lisbon"},
            sender_title="Rear Admiral",
            message="Nice to meet you"
        )

        assert subject.startswith("Grace Hopper wants to connect")
        for body in (html, text):
            assert "Grace Hopper" in body
            assert "Rear Admiral" in body
            assert "Tech Meetup" in body
            assert "Lisbon" in body
            assert "Nice to meet you" in body
        assert "invitation=inv_1" in text

    def test_render_without_optional_parts(self):
        service = EmailService(transport=LoggingTransport())

        _, html, text = service.render_invitation("Grace Hopper", "https://dislink.example/r")

        assert "Where you met" not in text
        assert "https://dislink.example/r" in html

    def test_html_escapes_user_content(self):
        service = EmailService(transport=LoggingTransport())

        _, html, _ = service.render_invitation(
            "Grace Hopper", "https://dislink.example/r", message="<script>alert(1)</script>"
        )

        assert "<script>" not in html
        assert "&lt;script&gt;" in html


class TestSendInvitationEmail:

    @pytest.mark.asyncio
    async def test_send_uses_transport(self):
        transport = MagicMock()
        transport.send = AsyncMock(return_value=True)
        service = EmailService(transport=transport)

        assert await service.send_invitation_email("to@example.com", "Grace", "https://x") is True
        to_email, subject, html, text = transport.send.call_args.args
        assert to_email == "to@example.com"
        assert "Grace" in subject

    @pytest.mark.asyncio
    async def test_transport_exception_returns_false(self):
        transport = MagicMock()
        transport.send = AsyncMock(side_effect=ConnectionError("smtp down"))
        service = EmailService(transport=transport)

        assert await service.send_invitation_email("to@example.com", "Grace", "https://x") is False


class TestTransportSelection:

    def test_logging_transport_without_api_key(self):
        with patch("app.services.email.settings.mailersend_api_key", None):
            assert isinstance(create_transport(), LoggingTransport)

    def test_mailersend_transport_with_api_key(self):
        with patch("app.services.email.settings.mailersend_api_key", "mlsn.test"):
            transport = create_transport()

        assert isinstance(transport, MailerSendTransport)

    @pytest.mark.asyncio
    async def test_mailersend_error_status_raises(self):
        transport = MailerSendTransport("mlsn.test", "noreply@example.com", "Dislink")
        transport.mailer = MagicMock()
        transport.mailer.send.return_value = "422\n{\"message\": \"invalid\"}"

        with pytest.raises(EmailDeliveryFailed):
            await transport.send("to@example.com", "s", "<p>h</p>", "t")

    @pytest.mark.asyncio
    async def test_rejected_delivery_reports_not_sent(self):
        transport = AsyncMock()
        transport.send.side_effect = EmailDeliveryFailed("rejected")
        service = EmailService(transport=transport)

        assert await service.send_invitation_email("to@example.com", "Grace", "https://x") is False

    @pytest.mark.asyncio
    async def test_mailersend_accepted_status_is_success(self):
        transport = MailerSendTransport("mlsn.test", "noreply@example.com", "Dislink")
        transport.mailer = MagicMock()
        transport.mailer.send.return_value = "202\n"

        assert await transport.send("to@example.com", "s", "<p>h</p>", "t") is True
