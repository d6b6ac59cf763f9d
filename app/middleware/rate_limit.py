"""
Rate limiting middleware using a Redis fixed window
"""

import logging
import re
from typing import Optional, Dict

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings

logger = logging.getLogger(__name__)


class RateLimitConfig:
    """Rate limits per endpoint type"""

    INVITATION_LIMITS = {
        "requests": settings.rate_limit_requests,
        "window": settings.rate_limit_window_seconds,
    }

    REGISTRATION_LIMITS = {
        "requests": 30,  # 30 hook calls per window
        "window": 60,    # 1 minute
    }

    @classmethod
    def get_limits_for_endpoint(cls, endpoint_type: str) -> Dict[str, int]:
        limits_map = {
            "invitation": cls.INVITATION_LIMITS,
            "registration": cls.REGISTRATION_LIMITS,
        }
        return limits_map.get(endpoint_type, {"requests": 30, "window": 60})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client-IP rate limiting for the anonymous write endpoints"""

    INVITATION_PATH = re.compile(r"^/public/profile/[^/]+/invitations/?$")

    def __init__(self, app, redis_client=None):
        super().__init__(app)
        self.redis_client = redis_client
        self.prefix = settings.api_v1_prefix.rstrip("/")

    async def dispatch(self, request: Request, call_next):
        """Process request with rate limiting"""

        # Skip rate limiting if Redis is not available
        if not self.redis_client or not settings.rate_limit_enabled:
            return await call_next(request)

        endpoint_type = self._get_endpoint_type(request)
        if not endpoint_type:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        key = f"rate_limit:{endpoint_type}:{client_ip}"
        limits = RateLimitConfig.get_limits_for_endpoint(endpoint_type)

        is_allowed, retry_after = await self._check_rate_limit(key, limits)
        if not is_allowed:
            logger.warning(f"Rate limit exceeded for key: {key}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Rate limit exceeded",
                    "retry_after": retry_after
                },
                headers={"Retry-After": str(retry_after)}
            )

        response = await call_next(request)
        await self._record_request(key, limits)
        return response

    def _get_endpoint_type(self, request: Request) -> Optional[str]:
        if request.method != "POST":
            return None

        path = request.url.path
        if not path.startswith(self.prefix):
            return None
        path = path[len(self.prefix):]

        if self.INVITATION_PATH.match(path):
            return "invitation"
        if path.startswith("/registrations/"):
            return "registration"
        return None

    async def _check_rate_limit(self, key: str, limits: Dict[str, int]) -> tuple[bool, int]:
        """Check if request is within rate limit"""
        try:
            request_count = await self.redis_client.get(key)
            request_count = int(request_count) if request_count else 0

            if request_count >= limits["requests"]:
                ttl = await self.redis_client.ttl(key)
                retry_after = max(1, ttl) if ttl > 0 else limits["window"]
                return False, retry_after

            return True, 0

        except Exception as e:
            logger.error(f"Error checking rate limit for key {key}: {e}")
            # Allow request if rate limiting fails
            return True, 0

    async def _record_request(self, key: str, limits: Dict[str, int]):
        try:
            count = await self.redis_client.incr(key)
            if count == 1:
                # Window starts with the first request
                await self.redis_client.expire(key, limits["window"])
        except Exception as e:
            logger.error(f"Error recording request for key {key}: {e}")
