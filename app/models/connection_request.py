"""
Connection request model - direct request for recipients who already have an account
"""

from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db.base import Base
from app.models.enums import ConnectionRequestStatus
import uuid


class ConnectionRequest(Base):
    """Connection request model - matches connection_requests table"""
    __tablename__ = "connection_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    requester_id = Column(UUID(as_uuid=True), nullable=True)
    requester_email = Column(String(320), nullable=True)
    target_user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(16), nullable=False, default=ConnectionRequestStatus.PENDING.value)
    # "metadata" is reserved on declarative classes
    request_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_connection_requests_target_status", "target_user_id", "status"),
    )

    def __repr__(self):
        return f"<ConnectionRequest(id={self.id}, target={self.target_user_id}, status={self.status})>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "requester_id": str(self.requester_id) if self.requester_id else None,
            "requester_email": self.requester_email,
            "target_user_id": str(self.target_user_id),
            "status": self.status,
            "metadata": self.request_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None
        }
