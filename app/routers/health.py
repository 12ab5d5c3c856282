"""
Health Check Router
Simple health check endpoint
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.core.config import settings
from app.routers.analytics import get_rate_cache
from app.utils.exchange_rates import RateCache

router = APIRouter()


@router.get("/health")
async def health_check(rate_cache: RateCache = Depends(get_rate_cache)):
    """
    Health check endpoint.
    Returns API status and whether exchange rates are cached.
    """
    snapshot = rate_cache.peek()
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "rates_cached": snapshot is not None,
        "rates_fetched_at": snapshot.fetched_at.isoformat() if snapshot else None,
    }
