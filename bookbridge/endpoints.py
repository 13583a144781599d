import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bookbridge import models
from bookbridge.config import configure_logging, settings
from bookbridge.database import engine
from bookbridge.geocoding import close_geocoder
from bookbridge.routes import (
    activity_routes,
    admin_routes,
    books_routes,
    geocoding_routes,
    notifications_routes,
    profiles_routes,
    realtime_routes,
    requests_routes,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown hooks.

    Tables are created on startup; the shared geocoding HTTP client is
    closed on shutdown.
    """
    configure_logging()
    models.Base.metadata.create_all(bind=engine)
    logger.info("%s %s started", settings.app_name, settings.app_version)
    yield
    await close_geocoder()
    logger.info("%s stopped", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Community book sharing: donate, browse, request and hand over books",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(profiles_routes)
app.include_router(books_routes)
app.include_router(requests_routes)
app.include_router(notifications_routes)
app.include_router(activity_routes)
app.include_router(realtime_routes)
app.include_router(geocoding_routes)
app.include_router(admin_routes)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Simple status message indicating the service is running
    """
    return {"status": "healthy", "service": "bookbridge-api"}
