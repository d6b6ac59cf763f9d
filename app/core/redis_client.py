import os
from typing import Optional

import redis.asyncio as redis
from app.core.config import settings

REDIS_URL = os.environ.get("REDIS_URL", settings.redis_url)
redis_client: Optional[redis.Redis] = None

if settings.rate_limit_enabled:
    redis_client = redis.from_url(REDIS_URL, decode_responses=True)


async def get_redis_client() -> Optional[redis.Redis]:
    """Get the shared Redis client, or None when rate limiting is disabled"""
    return redis_client
