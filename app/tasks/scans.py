"""
Scan telemetry tasks
"""

import logging
from typing import Optional, Any, Dict

from app.celery_app import celery
from app.db.session import session_scope
from app.services.scan_recorder import record_scan
from app.tasks.runner import run_async

logger = logging.getLogger(__name__)


@celery.task(ignore_result=True)
def record_scan_task(
    code: str,
    device_info: Optional[Dict[str, Any]] = None,
    location: Optional[Dict[str, Any]] = None,
    session_id: Optional[str] = None,
    referrer: Optional[str] = None
):
    """
    Store one scan event. Failures are logged by record_scan and never retried.
    """
    async def _process():
        async with session_scope() as session:
            event = await record_scan(
                session,
                code=code,
                device_info=device_info,
                location=location,
                session_id=session_id,
                referrer=referrer
            )
            return event.scan_id if event else None

    try:
        return run_async(_process())
    except Exception as exc:
        logger.error(f"Error running scan tracking task for {code}: {exc}")
        return None


def enqueue_scan(
    code: str,
    device_info: Optional[Dict[str, Any]] = None,
    location: Optional[Dict[str, Any]] = None,
    session_id: Optional[str] = None,
    referrer: Optional[str] = None
) -> bool:
    """
    Hand a scan to the telemetry queue without waiting for it.

    Returns:
        True if the scan was enqueued
    """
    try:
        record_scan_task.apply_async(
            kwargs={
                "code": code,
                "device_info": device_info,
                "location": location,
                "session_id": session_id,
                "referrer": referrer,
            },
            retry=False
        )
        return True
    except Exception as e:
        logger.error(f"Failed to enqueue scan tracking for {code}: {e}")
        return False
