"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from parcel_editor.config import settings
from parcel_editor.middleware.error_handler import ErrorHandlerMiddleware
from parcel_editor.middleware.rate_limit import limiter
from parcel_editor.api.dependencies import EditorRegistryDep
from parcel_editor.api.v1.routers import editors, geometry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events using the modern FastAPI pattern.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Parcel API: {settings.parcels_api_base_url}")
    logger.info(f"Overlap fallback: shrink {settings.shrink_start_factor} -> {settings.shrink_min_factor} "
                f"by {settings.shrink_step}, last resort {settings.shrink_fallback_factor}")
    logger.info(f"Rate limit: {settings.rate_limit_requests} requests/minute")

    yield

    # Shutdown
    from parcel_editor.infrastructure.parcel_api_client import get_api_client
    logger.info("Shutting down application...")
    client = get_api_client()
    await client.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Land Parcel Editing API

    This API backs a map UI where users draw and edit land parcels. Parcels
    are stored by an external parcel API; this service keeps one editor per
    farm or import batch and checks every committed ring for overlaps.

    ## Features

    - **Drawing and editing**: Point-by-point drawing, vertex dragging with
      throttled live updates, cancel with restore
    - **Overlap workflow**: Overlapping rings raise a warning with a
      computed non-overlapping alternative; the user ignores it, accepts
      the fix, redraws by hand, or cancels
    - **WKT codec**: Polygon and MultiPolygon text in, closed Polygon text out
    - **Optimistic persistence**: Creates and updates apply locally first;
      deletes wait for the parcel API
    - **Rate Limiting**: Protects the geometry endpoints from abuse

    ## Overlap Resolution

    1. Detect visible parcels whose vertices fall inside the ring (or the reverse)
    2. Subtract each overlapped parcel from the ring
    3. Keep the largest remaining fragment
    4. If nothing remains, shrink the ring toward its centroid until it clears
       every obstacle, down to a last-resort 5% copy
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(geometry.router, prefix="/api/v1")
app.include_router(editors.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """Service identity."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": app.docs_url,
    }


@app.get("/health", tags=["health"])
async def health_check(registry: EditorRegistryDep):
    """
    Health check endpoint.

    Returns:
        Health status with the number of editors held in memory
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "open_editors": len(registry),
        "parcel_api": settings.parcels_api_base_url,
    }
