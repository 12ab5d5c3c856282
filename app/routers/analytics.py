import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.core.errors import RateUnavailable, RecordFetchFailed
from app.core.security import get_current_user_id
from app.db.dynamo import DynamoExpenseStore, get_expense_store
from app.models.analytics import AggregationQuery, AnalyticsResponse
from app.services.analytics_pipeline import AnalyticsPipeline
from app.utils.exchange_rates import RateCache

router = APIRouter()
logger = logging.getLogger(__name__)


def get_rate_cache(request: Request) -> RateCache:
    return request.app.state.rate_cache


@router.post("", response_model=AnalyticsResponse)
async def aggregate_expenses(
    query: AggregationQuery,
    user_id: str = Depends(get_current_user_id),
    store: DynamoExpenseStore = Depends(get_expense_store),
    rate_cache: RateCache = Depends(get_rate_cache),
):
    """
    Category totals, time series and grand total for the caller's expenses,
    converted to ``display_currency``.
    """
    pipeline = AnalyticsPipeline(user_id, store, rate_cache, query=query)
    try:
        result = await pipeline.refresh()
    except RateUnavailable as e:
        logger.error(f"Analytics for user {user_id} failed, no exchange rates: {str(e)}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Exchange rate service unavailable")
    except RecordFetchFailed as e:
        logger.error(f"Analytics for user {user_id} failed, records unavailable: {str(e)}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not load expenses, retry later")

    logger.info(
        f"Aggregated {result.filtered_count} expenses for user {user_id} "
        f"({query.time_granularity.value}, {query.display_currency})"
    )
    return result.to_dict()
