"""FastAPI application for the buyers sync backend."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from buyersync import __version__
from buyersync.config import get_settings
from buyersync.database import check_db_ready, init_db
from buyersync.rate_limit import limiter
from buyersync.routers import buyers_router, health_router, settings_router
from buyersync.services.buyers_data import get_buyers_data_service
from buyersync.tasks.scheduler import setup_scheduler, shutdown_scheduler
from buyersync.websocket import websocket_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting buyersync backend...")

    try:
        await init_db()
        await check_db_ready()
        logger.info("Database ready")
    except Exception as e:
        logger.error(f"Database not ready: {e}")
        raise

    service = get_buyers_data_service()
    if await service.load_persisted_settings():
        logger.info("Loaded stored buyers settings")

    # Start scheduler (initial sync) once settings are in place.
    setup_scheduler()

    yield

    # Shutdown
    shutdown_scheduler()
    if service.cancel():
        await service.wait()
    logger.info("buyersync backend shut down")


# Create FastAPI app
app = FastAPI(
    title="buyersync API",
    description="Buyer accounts mirrored from the finance API",
    version=__version__,
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include routers
app.include_router(health_router)
app.include_router(buyers_router, prefix=settings.api_v1_prefix)
app.include_router(settings_router, prefix=settings.api_v1_prefix)
app.include_router(websocket_router)  # WebSocket at /ws/sync


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "buyersync API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "buyersync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
