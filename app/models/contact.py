"""
Contact model - one direction of a mutual connection
"""

from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db.base import Base
import uuid


class Contact(Base):
    """Contact model - matches contacts table"""
    __tablename__ = "contacts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_user_id = Column(UUID(as_uuid=True), nullable=False)
    contact_user_id = Column(UUID(as_uuid=True), nullable=False)
    method = Column(String(32), nullable=False)
    contact_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("owner_user_id", "contact_user_id", name="uq_contacts_owner_contact"),
    )

    def __repr__(self):
        return f"<Contact(owner={self.owner_user_id}, contact={self.contact_user_id})>"
