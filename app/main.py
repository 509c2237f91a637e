"""
Spontis API - Main application entry point.

Freight-transport marketplace: shippers post transport mandats, approved
transporters claim and deliver them, and platform administrators moderate
companies, mandats and pricing.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import get_settings
from app.api import (
    admin,
    auth,
    company,
    dashboard,
    mandats,
    places,
    transporteur,
)
from app.services.invitation_service import expire_stale_invitations
from app.services.session_cache import SessionCache

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting %s...", settings.app_name)

    app.state.session_cache = SessionCache(
        ttl_seconds=settings.session_cache_ttl_seconds,
        max_entries=settings.session_cache_max_entries,
    )

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        expire_stale_invitations,
        trigger=CronTrigger(hour=3, minute=0),
        id="invitation_cleanup",
        name="Expire stale company invitations",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started: invitation cleanup (03:00 UTC)")

    yield

    # Shutdown
    scheduler.shutdown(wait=False)
    app.state.session_cache.clear()
    logger.info("Shutting down %s...", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="""
    ## Spontis API

    Freight-transport marketplace:

    - **Mandats**: shippers create transport mandats, priced at creation with the active pricing set
    - **Marketplace**: approved transporters claim mandats and report pickup and delivery
    - **Companies**: onboarding, members and invitations
    - **Administration**: moderation of companies and mandats, pricing sets

    ### Authentication
    All endpoints except health and invitation validation require a Supabase access token
    (`Authorization: Bearer <token>`).
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(mandats.router, prefix="/mandats", tags=["Mandats"])
app.include_router(transporteur.router, prefix="/transporteur/mandats", tags=["Transporteur"])
app.include_router(company.router, prefix="/company", tags=["Company"])
app.include_router(admin.router, prefix="/admin", tags=["Administration"])
app.include_router(places.router, prefix="/places", tags=["Places"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": "1.0.0",
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "maps": "available" if settings.google_maps_api_key else "not_configured",
        "email": "available" if settings.sendgrid_api_key else "not_configured",
        "admins_configured": bool(settings.admin_emails),
    }
