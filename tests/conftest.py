"""
Test configuration and fixtures for Dislink Connect

Every test gets a fresh in-memory SQLite database. The email transport is
replaced with an in-memory fake and the scan queue with a mock, so no
broker, Redis or SMTP provider is needed.

Usage:
    pytest tests/
"""

import os

os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from datetime import timedelta
from typing import AsyncGenerator, List, Dict, Any
from unittest.mock import patch, MagicMock
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport
from fastapi import FastAPI

from app.core.auth import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models.profile import Profile
from app.repos.profile_repo import create_profile
from app.services.email import EmailService, get_email_service


class FakeEmailTransport:
    """Collects outgoing mail instead of sending it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send(self, to_email: str, subject: str, html_content: str, text_content: str) -> bool:
        if self.fail:
            return False
        self.sent.append({
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": text_content,
        })
        return True


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def email_transport() -> FakeEmailTransport:
    return FakeEmailTransport()


@pytest.fixture
def email_service(email_transport) -> EmailService:
    return EmailService(transport=email_transport)


@pytest.fixture
def failing_email_service() -> EmailService:
    """Email service whose transport rejects every message."""
    return EmailService(transport=FakeEmailTransport(fail=True))


@pytest.fixture
def scan_queue():
    """Replaces the Celery producer used by the public profile endpoint."""
    with patch("app.api.v1.public_profile.enqueue_scan", MagicMock(return_value=True)) as mock_enqueue:
        yield mock_enqueue


@pytest.fixture
async def test_app(session_factory, email_service, scan_queue) -> FastAPI:
    """
    App with the database and email dependencies pointed at test doubles.
    """
    async def get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = get_test_db
    app.dependency_overrides[get_email_service] = lambda: email_service

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def test_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as client:
        yield client


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid4().hex[:10]}@example.com"


@pytest.fixture
def make_profile(async_session: AsyncSession):
    """Factory creating profiles; public with default fields unless told otherwise."""
    async def _make(email: str = None, first_name: str = "Ada", last_name: str = "Lovelace", **fields) -> Profile:
        return await create_profile(
            async_session,
            email=email or unique_email(),
            first_name=first_name,
            last_name=last_name,
            **fields
        )
    return _make


@pytest.fixture
async def owner(make_profile) -> Profile:
    """A profile with a public preview showing bio and job title only."""
    return await make_profile(
        first_name="Grace",
        last_name="Hopper",
        job_title="Rear Admiral",
        company="US Navy",
        bio={"about": "Compilers and COBOL", "location": "Arlington", "from": "New York"},
        public_profile={
            "enabled": True,
            "allowedFields": {"bio": True, "jobTitle": True, "company": False},
        }
    )


@pytest.fixture
def auth_headers():
    """Builds Bearer headers the way the auth service would issue them."""
    def _headers(profile: Profile) -> Dict[str, str]:
        token = create_access_token({"sub": str(profile.id)}, expires_delta=timedelta(minutes=5))
        return {"Authorization": f"Bearer {token}"}
    return _headers
