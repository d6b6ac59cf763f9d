"""
Profile model - rows are written by the profile service and read here
"""

from sqlalchemy import Column, String, DateTime, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db.base import Base
import uuid


class Profile(Base):
    """Profile model - matches profiles table"""
    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    job_title = Column(String(200), nullable=True)
    company = Column(String(200), nullable=True)
    profile_image = Column(Text, nullable=True)
    bio = Column(JSON, nullable=True)
    interests = Column(JSON, nullable=True)
    social_links = Column(JSON, nullable=True)
    public_profile = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self):
        return f"<Profile(id={self.id}, email={self.email})>"
