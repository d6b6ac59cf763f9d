"""
QR scan tracking model - append-only telemetry
"""

from sqlalchemy import Column, String, DateTime, Text, JSON, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db.base import Base


class ScanEvent(Base):
    """Scan event model - matches qr_scan_tracking table"""
    __tablename__ = "qr_scan_tracking"

    scan_id = Column(String(64), primary_key=True)
    code = Column(String(64), nullable=False)
    owner_user_id = Column(UUID(as_uuid=True), nullable=False)
    scanned_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    location = Column(JSON, nullable=True)
    device_info = Column(JSON, nullable=True)
    referrer = Column(Text, nullable=True)
    session_id = Column(String(128), nullable=True)

    __table_args__ = (
        Index("idx_qr_scan_tracking_owner_scanned", "owner_user_id", "scanned_at"),
    )

    def __repr__(self):
        return f"<ScanEvent(scan_id={self.scan_id}, code={self.code})>"

    def to_dict(self):
        return {
            "scan_id": self.scan_id,
            "code": self.code,
            "scanned_at": self.scanned_at.isoformat() if self.scanned_at else None,
            "location": self.location,
            "device_info": self.device_info,
            "referrer": self.referrer,
            "session_id": self.session_id
        }
