"""
Email invitation model - pending connection tied to a recipient email
"""

from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db.base import Base
from app.models.enums import InvitationStatus


class EmailInvitation(Base):
    """Email invitation model - matches email_invitations table"""
    __tablename__ = "email_invitations"

    invitation_id = Column(String(64), primary_key=True)
    recipient_email = Column(String(320), nullable=False)
    sender_user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    connection_code = Column(String(64), nullable=False)
    scan_data = Column(JSON, nullable=True)
    email_sent_at = Column(DateTime(timezone=True), nullable=True)
    delivery_attempts = Column(Integer, nullable=False, default=0)
    last_delivery_error = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(16), nullable=False, default=InvitationStatus.SENT.value)
    registered_user_id = Column(UUID(as_uuid=True), nullable=True)
    registration_completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # At most one pending invitation per (code, recipient)
    __table_args__ = (
        Index("idx_email_invitations_recipient_status", "recipient_email", "status"),
        Index(
            "uq_email_invitations_code_recipient_sent",
            "connection_code",
            "recipient_email",
            unique=True,
            postgresql_where=(status == InvitationStatus.SENT.value),
            sqlite_where=(status == InvitationStatus.SENT.value),
        ),
    )

    def __repr__(self):
        return f"<EmailInvitation(id={self.invitation_id}, status={self.status})>"

    def to_dict(self):
        return {
            "invitation_id": self.invitation_id,
            "recipient_email": self.recipient_email,
            "sender_user_id": str(self.sender_user_id),
            "connection_code": self.connection_code,
            "scan_data": self.scan_data,
            "email_sent_at": self.email_sent_at.isoformat() if self.email_sent_at else None,
            "delivery_attempts": self.delivery_attempts,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "status": self.status,
            "registered_user_id": str(self.registered_user_id) if self.registered_user_id else None,
            "registration_completed_at": self.registration_completed_at.isoformat() if self.registration_completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }
