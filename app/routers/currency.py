import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.config import settings
from app.core.errors import RateUnavailable
from app.models.analytics import RatesResponse
from app.routers.analytics import get_rate_cache
from app.utils.exchange_rates import RateCache

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/rates", response_model=RatesResponse)
async def get_exchange_rates(
    base: str = Query(settings.BASE_CURRENCY, min_length=3, max_length=3),
    rate_cache: RateCache = Depends(get_rate_cache),
):
    try:
        snapshot = await rate_cache.get_rates(base)
    except RateUnavailable as e:
        logger.error(f"Failed to fetch exchange rates for {base}: {str(e)}")
        raise HTTPException(status_code=502, detail="Failed to fetch exchange rates")

    return RatesResponse(base=snapshot.base_currency, rates=dict(snapshot.rates), fetched_at=snapshot.fetched_at)
