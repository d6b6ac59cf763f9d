"""
Invitation email delivery.

The workflow only depends on EmailService.send_invitation_email(); the
transport behind it is swappable. MailerSend is used when an API key is
configured, otherwise messages are written to the log.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import settings
from app.core.exceptions import DeliveryFailure, EmailDeliveryFailed

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


class LoggingTransport:
    """Development transport that only logs outgoing mail."""

    async def send(self, to_email: str, subject: str, html_content: str, text_content: str) -> bool:
        logger.info(f"Email (not sent, logging transport) to {to_email}: {subject}")
        logger.debug(text_content)
        return True


class MailerSendTransport:
    """MailerSend API transport."""

    def __init__(self, api_key: str, sender_email: str, sender_name: str):
        from mailersend import emails

        self.mailer = emails.NewEmail(api_key)
        self.sender_email = sender_email
        self.sender_name = sender_name

    def _create_mail_body(self, to_email: str, subject: str, html_content: str, text_content: str) -> dict:
        mail_body = {}
        self.mailer.set_mail_from({"name": self.sender_name, "email": self.sender_email}, mail_body)
        self.mailer.set_mail_to([{"name": to_email, "email": to_email}], mail_body)
        self.mailer.set_subject(subject, mail_body)
        self.mailer.set_html_content(html_content, mail_body)
        self.mailer.set_plaintext_content(text_content, mail_body)
        return mail_body

    async def send(self, to_email: str, subject: str, html_content: str, text_content: str) -> bool:
        mail_body = self._create_mail_body(to_email, subject, html_content, text_content)
        # The MailerSend client is synchronous
        response = await asyncio.to_thread(self.mailer.send, mail_body)
        status_line = str(response).strip().split("\n")[0]
        if status_line[:1] in ("4", "5"):
            raise EmailDeliveryFailed(f"MailerSend rejected email to {to_email}: {status_line}")
        return True


def create_transport():
    """Pick the transport from configuration."""
    if settings.mailersend_api_key:
        return MailerSendTransport(
            settings.mailersend_api_key,
            settings.mailersend_sender_email,
            settings.email_sender_name
        )
    return LoggingTransport()


class EmailService:
    def __init__(self, transport=None):
        self.transport = transport or create_transport()
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(['html', 'xml'])
        )

    def render_invitation(
        self,
        sender_name: str,
        registration_url: str,
        location: Optional[Dict[str, Any]] = None,
        sender_title: Optional[str] = None,
        message: Optional[str] = None
    ) -> tuple[str, str, str]:
        """
        Render subject, HTML body and plain text body of an invitation.
        """
        context = {
            "app_name": settings.email_sender_name,
            "sender_name": sender_name,
            "sender_title": sender_title,
            "registration_url": registration_url,
            "location": location,
            "message": message,
            "expires_in_days": settings.invitation_ttl_days,
        }
        subject = f"{sender_name} wants to connect with you on {settings.email_sender_name}"
        html_content = self.jinja_env.get_template("invitation.html").render(**context)
        text_content = self.jinja_env.get_template("invitation.txt").render(**context)
        return subject, html_content, text_content

    async def send_invitation_email(
        self,
        recipient_email: str,
        sender_name: str,
        registration_url: str,
        location: Optional[Dict[str, Any]] = None,
        sender_title: Optional[str] = None,
        message: Optional[str] = None
    ) -> bool:
        """
        Send an invitation email.

        Returns:
            True if the transport accepted the message
        """
        try:
            subject, html_content, text_content = self.render_invitation(
                sender_name, registration_url, location, sender_title, message
            )
            sent = await self.transport.send(recipient_email, subject, html_content, text_content)
        except DeliveryFailure as e:
            logger.error(str(e))
            return False
        except Exception as e:
            logger.error(f"Failed to send invitation email to {recipient_email}: {e}")
            return False

        if sent:
            logger.info(f"Invitation email sent to {recipient_email}")
        return sent


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """FastAPI dependency / task helper returning the shared email service."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
