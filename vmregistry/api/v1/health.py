"""
Health endpoint.
No authentication required.
"""

import logging

from fastapi import APIRouter
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from vmregistry.db.session import is_using_sqlite_fallback
from vmregistry.dependencies import DbSession
from vmregistry.models.image import Image

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: DbSession):
    """
    Service health check endpoint.

    Returns:
        {"status": "ok", ...} when the metadata database answers
        {"status": "degraded", "issues": [...]} otherwise
    """
    issues = []
    warnings = []

    if is_using_sqlite_fallback():
        warnings.append("Using SQLite dev fallback - PostgreSQL not available")

    image_count = None
    try:
        await db.execute(text("SELECT 1"))
        image_count = await db.scalar(select(func.count(Image.id)))
    except SQLAlchemyError as e:
        logger.error("Health check database failure: %s", e)
        issues.append(f"Database: {str(e)}")

    if issues:
        return {
            "status": "degraded",
            "issues": issues,
        }

    response = {
        "status": "ok",
        "database": "sqlite (dev fallback)" if is_using_sqlite_fallback() else "postgresql",
        "images": image_count,
    }

    if warnings:
        response["warnings"] = warnings

    return response
