"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from listing_tracker.config import settings
from listing_tracker.database import engine, Base
from listing_tracker.routes.listings import router as listings_router
from listing_tracker.tracker import ListingTracker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Listing Tracker...")
    logger.info(f"Environment: {settings.environment}")

    # Create tables (for development; use Alembic migrations in production)
    if settings.environment == "development":
        Base.metadata.create_all(bind=engine)

    tracker = ListingTracker()
    await tracker.start(run_poller=settings.tracker_enabled)
    app.state.tracker = tracker

    yield

    # Shutdown
    logger.info("Shutting down Listing Tracker...")
    await tracker.stop()


# Create FastAPI app
app = FastAPI(
    title="Listing Tracker",
    description="Tracks storefront listings and scores deals against the floor",
    version="1.0.0",
    lifespan=lifespan,
)

# Include routes
app.include_router(listings_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": "Listing Tracker",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    """Detailed health check."""
    tracker = getattr(app.state, "tracker", None)
    return {
        "status": "healthy",
        "environment": settings.environment,
        "tracker": tracker.stats() if tracker else None,
    }
