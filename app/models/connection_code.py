"""
Connection code model - the capability token behind a QR code
"""

from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Index, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db.base import Base
import uuid


class ConnectionCode(Base):
    """Connection code model - matches connection_codes table"""
    __tablename__ = "connection_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(64), nullable=False, unique=True)
    owner_user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    scan_count = Column(Integer, nullable=False, default=0)
    last_scanned_at = Column(DateTime(timezone=True), nullable=True)
    last_scan_location = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # At most one active code per owner
    __table_args__ = (
        Index(
            "uq_connection_codes_owner_active",
            "owner_user_id",
            unique=True,
            postgresql_where=(is_active == True),
            sqlite_where=(is_active == True),
        ),
        Index("idx_connection_codes_expires_at", "expires_at"),
    )

    def __repr__(self):
        return f"<ConnectionCode(code={self.code}, owner={self.owner_user_id}, active={self.is_active})>"

    def to_dict(self):
        return {
            "code": self.code,
            "owner_user_id": str(self.owner_user_id),
            "is_active": self.is_active,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "scan_count": self.scan_count,
            "last_scanned_at": self.last_scanned_at.isoformat() if self.last_scanned_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }
