"""
FastAPI application entry point for TyreCheck

Initializes the FastAPI app, registers routers, and sets up startup/shutdown events.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tyrecheck.api.v1.analysis import router as analysis_router
from tyrecheck.core.config import settings
from tyrecheck.core.logging_config import get_logger, setup_logging
from tyrecheck.middleware import RequestLoggingMiddleware

# Application version
APP_VERSION = "1.0.0"

# Initialize structured JSON logging
setup_logging(app_version=APP_VERSION)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown events.

    Nothing is connected at startup: the analysis backend client is created
    on the first dispatch, so a missing API key surfaces per request.
    """
    configured_key = settings.ANTHROPIC_API_KEY if settings.ANALYSIS_PROVIDER == "claude" else settings.OPENAI_API_KEY
    logger.info(
        "Application startup",
        extra={
            "event_type": "app_startup",
            "version": APP_VERSION,
            "provider": settings.ANALYSIS_PROVIDER,
            "api_key_configured": bool(configured_key),
            "dispatch_timeout_seconds": settings.DISPATCH_TIMEOUT_SECONDS,
            "max_frames": settings.MAX_FRAMES,
        }
    )
    if not configured_key:
        logger.warning(
            f"No API key configured for analysis provider '{settings.ANALYSIS_PROVIDER}'",
            extra={"event_type": "app_startup_missing_api_key", "provider": settings.ANALYSIS_PROVIDER}
        )

    yield

    logger.info(
        "Application shutdown complete",
        extra={"event_type": "app_shutdown_complete", "version": APP_VERSION}
    )


# Create FastAPI app
app = FastAPI(
    title="TyreCheck API",
    description="API for tyre tread and sidewall analysis from photos and short videos",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Register API routers
app.include_router(analysis_router, prefix=settings.API_V1_PREFIX)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": APP_VERSION,
        "provider": settings.ANALYSIS_PROVIDER,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
