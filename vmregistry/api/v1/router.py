"""
API v1 Router - Aggregates all v1 endpoints.
Base Path: /api/v1
"""

from fastapi import APIRouter

from vmregistry.api.v1 import health, images
from vmregistry.schemas.error import ErrorResponse

api_router = APIRouter()

# Error bodies documented for every image route
IMAGE_ERRORS = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 404, 409, 503)
}

# Include endpoint routers
api_router.include_router(health.router, tags=["health"])
api_router.include_router(images.router, prefix="/images", tags=["images"], responses=IMAGE_ERRORS)
