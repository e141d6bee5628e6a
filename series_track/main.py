"""FastAPI application entry point for series-track."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_database
from .errors import SeriesTrackError
from .routers import shows_router, user_router
from .services.provider import create_provider

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting series-track...")
    init_database()
    logger.info("Database initialized")

    app.state.provider = create_provider(settings)
    logger.info(f"Using metadata provider: {app.state.provider.name}")

    yield

    # Shutdown
    await app.state.provider.close()
    logger.info("Shutting down series-track...")


# Create FastAPI application
app = FastAPI(
    title="Series Track",
    description="TV show metadata cache and per-user watch tracking",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(shows_router)
app.include_router(user_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.exception_handler(SeriesTrackError)
async def series_track_exception_handler(request: Request, exc: SeriesTrackError):
    """Map expected failures to their HTTP status."""
    if exc.http_status >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "series_track.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
