"""
VM Image Registry - Main Application Entry Point.

FastAPI application serving virtual machine image metadata and streaming
image files to and from pluggable storage backends.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vmregistry import __version__
from vmregistry.config import get_settings
from vmregistry.core.exceptions import RegistryException
from vmregistry.api.v1.router import api_router

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting %s", settings.PROJECT_NAME)
    logger.info("Public URL: %s", settings.PUBLIC_URL)
    logger.info("Default store: %s", settings.DEFAULT_STORE)
    logger.info("Debug mode: %s", settings.DEBUG)
    logger.info("Dev mode (bypass auth): %s", settings.DEV_MODE)

    from vmregistry.db.session import AsyncSessionLocal, engine, is_using_sqlite_fallback
    from vmregistry.services.registry import ImageRegistry

    if is_using_sqlite_fallback():
        logger.warning("[DEV MODE] Using SQLite fallback database")
        logger.info("Creating SQLite development tables...")
        from vmregistry.db.base import Base
        # Import all models to register them
        from vmregistry.models import Counter, Image  # noqa: F401
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Development database ready")
    else:
        logger.info("Database: PostgreSQL")

    async with AsyncSessionLocal() as session:
        await ImageRegistry(session).configure_counters("images")
        await session.commit()

    yield

    # Shutdown
    logger.info("Shutting down %s", settings.PROJECT_NAME)
    await engine.dispose()


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
## VM Image Registry

Registry of virtual machine images and the storage systems holding them.

### Features
- **Image metadata**: Register, list, update and delete image records
- **Image files**: Stream image files in and out of the configured stores
- **Multiple stores**: Filesystem, HTTP, Amazon S3, Cumulus, Walrus, Lunacloud and HDFS

### Conventions
- Metadata is sent in `x-image-meta-*` headers on writes
- Image files are sent as raw `application/octet-stream` bodies
    """,
    version=__version__,
    openapi_tags=[
        {"name": "images", "description": "Image metadata and file operations"},
        {"name": "health", "description": "Service health checks"},
    ],
    lifespan=lifespan,
)

# CORS middleware for cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.exception_handler(RegistryException)
async def registry_exception_handler(request: Request, exc: RegistryException) -> JSONResponse:
    """
    Global exception handler for registry exceptions.
    Returns the standardized error body.
    """
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all exception handler for unexpected errors.
    Logs the full error but returns a sanitized response.
    """
    logger.exception("Unexpected error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
        },
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint pointing at the API documentation."""
    return {
        "name": settings.PROJECT_NAME,
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
        "api": settings.API_V1_PREFIX,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vmregistry.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
