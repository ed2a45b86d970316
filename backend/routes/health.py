"""
Health check endpoint.
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db, ping_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Health check: verifies order store connectivity."""
    connections = request.app.state.connections
    try:
        await ping_db(db)
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "database_connected": False,
                "error": "order store unreachable",
            },
        )
    return {
        "status": "healthy",
        "database_connected": True,
        "dispatchers_online": connections.dispatcher_count,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
