"""
Dislink Connect FastAPI Application
Main entry point for the application
"""

import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.core.config import settings

# Sentry integration
if os.getenv("SENTRY_DSN"):
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    from sentry_sdk.integrations.redis import RedisIntegration
    from sentry_sdk.integrations.celery import CeleryIntegration

    sentry_sdk.init(
        dsn=os.getenv("SENTRY_DSN"),
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            RedisIntegration(),
            CeleryIntegration(),
        ],
        traces_sample_rate=0.1,
        environment=settings.app_env,
    )

from app.api.health import router as health_router
from app.api.v1.connection_code import router as connection_code_router
from app.api.v1.connection_requests import router as connection_requests_router
from app.api.v1.invitations import router as invitations_router
from app.api.v1.public_profile import router as public_profile_router
from app.api.v1.registrations import router as registrations_router
from app.core.metrics import REQUEST_COUNT, REQUEST_DURATION, ACTIVE_CONNECTIONS
from app.core.redis_client import redis_client
from app.middleware.rate_limit import RateLimitMiddleware

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Create FastAPI app instance
app = FastAPI(
    title="Dislink Connect API",
    description="QR connection codes, public profile previews and invitations",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add rate limiting middleware
app.add_middleware(RateLimitMiddleware, redis_client=redis_client)


# Add metrics middleware
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()
    ACTIVE_CONNECTIONS.inc()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.time() - start_time
        ACTIVE_CONNECTIONS.dec()

        # Label by route template so codes and tokens never become label values
        route = request.scope.get("route")
        endpoint = getattr(route, "path", "unmatched")

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status=status_code
        ).inc()

        REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(duration)


async def metrics():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.add_api_route("/metrics", metrics, methods=["GET"], include_in_schema=False)
app.add_api_route(f"{settings.api_v1_prefix}/metrics", metrics, methods=["GET"], tags=["health"])

# Include routers
prefix = settings.api_v1_prefix
app.include_router(health_router, prefix=prefix, tags=["health"])
app.include_router(connection_code_router, prefix=f"{prefix}/connection-code", tags=["connection-code"])
app.include_router(invitations_router, prefix=f"{prefix}/invitations", tags=["invitations"])
app.include_router(connection_requests_router, prefix=f"{prefix}/connection-requests", tags=["connection-requests"])
app.include_router(public_profile_router, prefix=f"{prefix}/public", tags=["public"])
app.include_router(registrations_router, prefix=f"{prefix}/registrations", tags=["registrations"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
