from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional

from app.core.errors import RateUnavailable, RecordFetchFailed, Unauthenticated
from app.db.dynamo import DynamoExpenseStore
from app.models.analytics import AggregationQuery, AggregationResult, TimeSeriesPoint
from app.models.expense import ExpenseCreate, ExpensePublic, ExpenseUpdate
from app.utils.analyzer import ExpenseAggregator
from app.utils.exchange_rates import RateCache

logger = logging.getLogger(__name__)


class AnalyticsPipeline:
    """
    Keeps one user's analytics view in sync with the record store.

    ``refresh`` loads records and rates concurrently and then aggregates.
    Every refresh takes a ticket from a generation counter; a refresh whose
    ticket is no longer the newest (because a later refresh started or the
    view was invalidated) drops its result instead of overwriting newer data.
    """

    def __init__(
        self,
        user_id: Optional[str],
        store: DynamoExpenseStore,
        rate_cache: RateCache,
        query: Optional[AggregationQuery] = None,
        use_stale_rates: bool = True,
        render_unconverted_on_rate_failure: bool = False,
        aggregator: Optional[ExpenseAggregator] = None,
    ) -> None:
        self.user_id = user_id
        self._store = store
        self._rate_cache = rate_cache
        self._query = query or AggregationQuery()
        self._use_stale_rates = use_stale_rates
        self._render_unconverted = render_unconverted_on_rate_failure
        self._aggregator = aggregator or ExpenseAggregator()

        self._generation = 0
        self._records: Optional[List[ExpensePublic]] = None
        self._rates: Mapping[str, float] = {}
        self._result = AggregationResult(display_currency=self._query.display_currency)
        self.last_error: Optional[Exception] = None

    # Query surface

    @property
    def query(self) -> AggregationQuery:
        return self._query

    @property
    def result(self) -> AggregationResult:
        return self._result

    def set_query(self, query: AggregationQuery) -> AggregationResult:
        """Swap the query and re-aggregate whatever data is already loaded."""
        self._query = query
        if self._records is not None:
            self._result = self._aggregator.aggregate(self._records, self._rates, query)
        return self._result

    def get_category_totals(self) -> Dict[str, float]:
        return dict(self._result.category_totals)

    def get_time_series(self) -> List[TimeSeriesPoint]:
        return list(self._result.time_series)

    def get_grand_total(self) -> float:
        return self._result.grand_total

    def get_filtered_count(self) -> int:
        return self._result.filtered_count

    # Fetching

    def invalidate(self) -> None:
        """Mark any in-flight refresh as stale."""
        self._generation += 1

    async def refresh(self) -> AggregationResult:
        """
        Reload records and rates, then aggregate with the current query.

        On failure the previous result stays in place and the error is raised
        so the caller can offer a retry; the query is left untouched.
        """
        self._require_user()

        self._generation += 1
        ticket = self._generation

        try:
            records, rates = await asyncio.gather(self._load_records(), self._load_rates())
        except Exception as e:
            if ticket == self._generation:
                self.last_error = e
            raise

        if ticket != self._generation:
            logger.info(f"Discarding superseded analytics refresh for user {self.user_id}")
            return self._result

        self._records = records
        self._rates = rates
        self.last_error = None
        self._result = self._aggregator.aggregate(records, rates, self._query)
        return self._result

    async def _load_records(self) -> List[ExpensePublic]:
        try:
            return await asyncio.to_thread(self._store.list_expenses, self.user_id)
        except RecordFetchFailed:
            raise
        except Exception as e:
            logger.error(f"Record fetch failed for user {self.user_id}: {str(e)}")
            raise RecordFetchFailed(f"Could not read expenses for user {self.user_id}") from e

    async def _load_rates(self) -> Mapping[str, float]:
        try:
            snapshot = await self._rate_cache.get_rates()
        except RateUnavailable as e:
            if self._use_stale_rates and e.stale_snapshot is not None:
                logger.warning(
                    f"Using stale exchange rates fetched at {e.stale_snapshot.fetched_at.isoformat()}"
                )
                return e.stale_snapshot.rates
            if self._render_unconverted:
                logger.warning("Exchange rates unavailable, totals stay in source currencies")
                return {}
            raise
        return snapshot.rates

    # Write-through mutations

    async def create_expense(self, expense: ExpenseCreate) -> ExpensePublic:
        self._require_user()
        created = await asyncio.to_thread(self._store.create_expense, self.user_id, expense)
        await self._reload_after_write()
        return created

    async def update_expense(self, expense_id: str, expense: ExpenseUpdate) -> ExpensePublic:
        self._require_user()
        updated = await asyncio.to_thread(self._store.update_expense, self.user_id, expense_id, expense)
        await self._reload_after_write()
        return updated

    async def delete_expense(self, expense_id: str) -> bool:
        self._require_user()
        deleted = await asyncio.to_thread(self._store.delete_expense, self.user_id, expense_id)
        await self._reload_after_write()
        return deleted

    def _require_user(self) -> None:
        if not self.user_id:
            raise Unauthenticated("A user is required to load analytics")

    async def _reload_after_write(self) -> None:
        self.invalidate()
        await self.refresh()
