"""
Scheduled tasks configuration for Celery Beat
"""

from celery.schedules import crontab
from app.celery_app import celery
from app.core.config import settings
from app.tasks.sweep import sweep_expired_task

# Configure periodic tasks
celery.conf.beat_schedule = {
    'sweep-expired-connection-codes': {
        'task': 'app.tasks.sweep.sweep_expired_task',
        'schedule': crontab(hour=settings.sweep_hour, minute=0),  # Daily
    },
}

celery.conf.timezone = 'UTC'
