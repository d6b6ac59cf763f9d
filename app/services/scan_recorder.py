"""
Scan telemetry for successful code resolutions.

Recording is best effort: it runs on a Celery worker, logs its own failures
and never raises, so a slow or broken telemetry path cannot affect the
anonymous read path.
"""

import logging
import re
import secrets
from datetime import datetime
from typing import Optional, Any, Dict
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import settings
from app.core.metrics import SCANS_RECORDED
from app.models.scan_event import ScanEvent
from app.repos.connection_code_repo import get_connection_code, increment_scan_rollup
from app.repos.scan_repo import add_scan_event, count_scans_for_owner, get_recent_scans
from app.schemas.profile import DeviceInfo, ScanStats

logger = logging.getLogger(__name__)

MOBILE_UA_PATTERN = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)
PLATFORM_PATTERNS = (
    ("iOS", re.compile(r"iPhone|iPad|iPod", re.IGNORECASE)),
    ("Android", re.compile(r"Android", re.IGNORECASE)),
    ("Windows", re.compile(r"Windows", re.IGNORECASE)),
    ("macOS", re.compile(r"Macintosh|Mac OS X", re.IGNORECASE)),
    ("Linux", re.compile(r"Linux", re.IGNORECASE)),
)


def device_info_from_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """Derive coarse device details from a User-Agent header."""
    if not user_agent:
        return DeviceInfo(platform="unknown")
    platform = next((name for name, pattern in PLATFORM_PATTERNS if pattern.search(user_agent)), "unknown")
    return DeviceInfo(
        user_agent=user_agent[:512],
        platform=platform,
        is_mobile=bool(MOBILE_UA_PATTERN.search(user_agent))
    )


def generate_scan_id() -> str:
    return f"scan_{secrets.token_hex(8)}"


async def record_scan(
    session: AsyncSession,
    code: str,
    device_info: Optional[Dict[str, Any]] = None,
    location: Optional[Dict[str, Any]] = None,
    session_id: Optional[str] = None,
    referrer: Optional[str] = None,
    scanned_at: Optional[datetime] = None
) -> Optional[ScanEvent]:
    """
    Append a scan event and bump the code's scan rollup.

    Args:
        session: Database session
        code: The resolved connection code
        device_info: Device details of the scanner
        location: Optional client-supplied location
        session_id: Scanner's client session id
        referrer: Referer header of the scan
        scanned_at: Time of the resolution (defaults to now)

    Returns:
        The stored ScanEvent, or None if nothing was recorded
    """
    try:
        connection_code = await get_connection_code(session, code)
        if connection_code is None:
            logger.warning(f"Invalid connection code for tracking: {code}")
            SCANS_RECORDED.labels(status="skipped").inc()
            return None

        scanned_at = scanned_at or utcnow()
        if location is not None:
            location = {**location, "scanned_at": scanned_at.isoformat()}

        event = await add_scan_event(
            session,
            scan_id=generate_scan_id(),
            code=code,
            owner_user_id=connection_code.owner_user_id,
            scanned_at=scanned_at,
            location=location,
            device_info=device_info,
            referrer=referrer,
            session_id=session_id
        )
        await increment_scan_rollup(session, code, scanned_at, location)
        await session.commit()

        SCANS_RECORDED.labels(status="ok").inc()
        logger.info(f"QR scan tracked successfully: {event.scan_id} for code {code}")
        return event

    except Exception as e:
        # Telemetry must never surface to the scanner
        logger.error(f"Error tracking QR scan for code {code}: {e}")
        SCANS_RECORDED.labels(status="failed").inc()
        try:
            await session.rollback()
        except Exception as rollback_error:
            logger.error(f"Rollback after failed scan tracking also failed: {rollback_error}")
        return None


async def get_scan_stats(session: AsyncSession, owner_user_id: UUID, limit: Optional[int] = None) -> ScanStats:
    """
    Get scan statistics for an owner.

    Args:
        session: Database session
        owner_user_id: Owner profile UUID
        limit: Number of recent scans to include

    Returns:
        ScanStats with the total count, recent scans and last scan date
    """
    limit = limit or settings.scan_stats_limit
    total = await count_scans_for_owner(session, owner_user_id)
    recent = await get_recent_scans(session, owner_user_id, limit=limit)
    return ScanStats(
        total_scans=total,
        recent_scans=[scan.to_dict() for scan in recent],
        last_scan_date=recent[0].scanned_at if recent else None
    )
