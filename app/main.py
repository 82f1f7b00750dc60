"""FastAPI application wiring for the tire marketplace.

This module bootstraps the HTTP API:

- Configures logging, CORS (optional for the web frontend), Prometheus
  metrics, request screening and rate limiting.
- Builds the service container (conversations, channels, notifications,
  marketplace, payments, social) and starts the periodic maintenance task.
- Serves uploaded images and exposes health, version and config endpoints
  next to the feature routers.
"""

import asyncio
import contextlib
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .core.business_middleware import BusinessContextMiddleware
from .core.container import build_container, maintenance_loop
from .routers import (
    accounts,
    dashboard,
    inbound,
    listings,
    messaging,
    notifications,
    payments,
    social,
    uploads,
    yard_sale,
)
from .security.middleware import SecurityMiddleware
from .security.throttling import limiter

load_dotenv()

logger = logging.getLogger(__name__)

services = build_container()
settings = services.settings

os.makedirs(settings.upload_dir, exist_ok=True)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(maintenance_loop(app.state.services))
    logger.info("Maintenance task started (every %ss)", settings.maintenance_interval_seconds)
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


app = FastAPI(title=f"{settings.brand_name} Marketplace", version=__version__, lifespan=lifespan)
init_logging(app)
app.state.limiter = limiter
app.state.services = services
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(BusinessContextMiddleware)
app.add_middleware(SecurityMiddleware)
# Optional CORS for the web frontend
cors_origins = os.getenv("CORS_ORIGINS")
if cors_origins:
    origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")
app.include_router(accounts.router)
app.include_router(listings.router)
app.include_router(yard_sale.router)
app.include_router(uploads.router)
app.include_router(messaging.router)
app.include_router(inbound.router)
app.include_router(notifications.router)
app.include_router(payments.router)
app.include_router(social.router)
app.include_router(dashboard.router)

# Expose Prometheus metrics
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


@app.get("/api/health")
async def health():
    """Liveness/readiness check with a minimal JSON body."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Return version information for the application."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }


@app.get("/api/config")
async def config():
    """Expose selected frontend configuration."""
    return {
        "BRAND_NAME": settings.brand_name,
        "APP_URL": settings.app_url,
        "STRIPE_PUBLISHABLE_KEY": settings.stripe_publishable_key or "",
        "UPLOAD_MAX_SIZE": settings.upload_max_size,
        "SOCIAL_DRY_RUN": settings.social_dry_run,
    }
