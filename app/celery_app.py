"""
Celery application configuration
"""

import os
from celery import Celery
from app.core.config import settings

# Use REDIS_URL as fallback for Celery broker
broker_url = os.environ.get('CELERY_BROKER_URL', os.environ.get('REDIS_URL', settings.celery_broker_url))
backend_url = os.environ.get('CELERY_RESULT_BACKEND', os.environ.get('REDIS_URL', settings.celery_result_backend))

# Create Celery instance
celery = Celery(
    "dislink",
    broker=broker_url,
    backend=backend_url,
    include=["app.tasks.scans", "app.tasks.invitations", "app.tasks.sweep"]
)

# Configure Celery
celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_disable_rate_limits=False,
    task_compression="gzip",
    result_compression="gzip",
    result_expires=3600,  # 1 hour
    worker_concurrency=int(os.getenv("CELERY_WORKER_CONCURRENCY", 4)),  # Default to 4, override with env
    task_routes={
        "app.tasks.scans.record_scan_task": {"queue": "telemetry"},
        "app.tasks.invitations.retry_invitation_email_task": {"queue": "email"},
        "app.tasks.sweep.sweep_expired_task": {"queue": "maintenance"},
    },
    task_default_queue="default",
    task_default_exchange="default",
    task_default_exchange_type="direct",
    task_default_routing_key="default",
    # Request-path producers must not hang on an unreachable broker
    broker_connection_retry_on_startup=True,
    broker_transport_options={"max_retries": 1},
)

# For testing, we can run tasks synchronously
if settings.app_env == "testing":
    celery.conf.task_always_eager = True
    celery.conf.task_eager_propagates = True

if __name__ == "__main__":
    celery.start()
