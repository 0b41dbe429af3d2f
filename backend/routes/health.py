"""
Health check endpoint.
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from deps import get_broadcaster, get_db
from services import dispatcher_service
from services.broadcaster import Broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Health check — verifies database connectivity and reports real-time stats."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "database_connected": False,
                "error": "database unavailable",
            },
        )
    return {
        "status": "healthy",
        "database_connected": True,
        "environment": settings.environment,
        "broadcaster": broadcaster.stats(),
        "dispatcher": dispatcher_service.get_status(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
