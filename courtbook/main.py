"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courtbook.api import booking
from courtbook.core.config import settings
from courtbook.core.database import engine, init_db
from courtbook.services.scheduler import recovery_sweeper

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting court booking coordinator")
    logger.info(f"Backend: {settings.BACKEND_BASE_URL}, debug mode: {settings.DEBUG}")

    await init_db(engine)
    await recovery_sweeper.start()

    yield

    # Shutdown
    logger.info("Shutting down court booking coordinator")
    await recovery_sweeper.stop()
    await engine.dispose()


# Create FastAPI app
app = FastAPI(
    title="Court Booking Coordinator",
    description="Slot availability and short-term hold reservations for multi-court bookings",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(booking.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "sweeper_running": recovery_sweeper.running,
    }
