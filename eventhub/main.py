"""
FastAPI Application Entry Point
Main application setup and route registration
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from eventhub.config import settings
from eventhub.database import connect_db, disconnect_db
from eventhub.errors import setup_error_handlers
from eventhub.logging_config import configure_logging
from eventhub.services.scheduler import expiry_sweeper
from eventhub.routes import events

configure_logging()
logger = logging.getLogger(__name__)


def uses_database() -> bool:
    return settings.STORE_BACKEND != "memory"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database and run the expiry sweeper for the app's lifetime"""
    if uses_database():
        await connect_db()
    if settings.EXPIRY_SWEEP_ENABLED:
        expiry_sweeper.start()
    logger.info("%s started in %s mode (%s store)", settings.APP_NAME, settings.APP_ENV, settings.STORE_BACKEND)

    yield

    expiry_sweeper.shutdown()
    if uses_database():
        await disconnect_db()
    logger.info("%s stopped", settings.APP_NAME)


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="University event participation and QR attendance API",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_error_handlers(app)


# Health check endpoint
@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": "1.0.0"
    }


app.include_router(events.router, prefix="/api/events", tags=["Events"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "eventhub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True  # Auto-reload on code changes
    )
