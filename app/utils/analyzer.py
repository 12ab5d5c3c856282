from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Sequence, Tuple

from app.models.analytics import (
    ALL_CATEGORIES,
    AggregationQuery,
    AggregationResult,
    CategoryInsight,
    TimeGranularity,
    TimeSeriesPoint,
)
from app.models.expense import ExpensePublic
from app.utils.currency import convert


def filter_records(records: Iterable[ExpensePublic], query: AggregationQuery) -> List[ExpensePublic]:
    """
    Keep records matching the category filter and, for Custom granularity with
    both bounds set, the inclusive date range. An incomplete Custom range does
    no date filtering at all.
    """
    check_dates = query.has_custom_range

    def matches(record: ExpensePublic) -> bool:
        in_category = query.category_filter == ALL_CATEGORIES or record.category == query.category_filter
        in_range = not check_dates or query.custom_start <= record.date <= query.custom_end
        return in_category and in_range

    return [record for record in records if matches(record)]


def _day_bucket(moment: datetime) -> Tuple[datetime, str]:
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start.strftime("%b %d, %Y")


def _week_bucket(moment: datetime) -> Tuple[datetime, str]:
    day, _ = _day_bucket(moment)
    monday = day - timedelta(days=day.weekday())
    return monday, f"Week of {monday.strftime('%b %d, %Y')}"


def _month_bucket(moment: datetime) -> Tuple[datetime, str]:
    start = datetime(moment.year, moment.month, 1)
    return start, start.strftime("%b %Y")


def _year_bucket(moment: datetime) -> Tuple[datetime, str]:
    start = datetime(moment.year, 1, 1)
    return start, str(moment.year)


_BUCKETERS: Dict[TimeGranularity, Callable[[datetime], Tuple[datetime, str]]] = {
    TimeGranularity.DAILY: _day_bucket,
    TimeGranularity.WEEKLY: _week_bucket,
    TimeGranularity.MONTHLY: _month_bucket,
    TimeGranularity.YEARLY: _year_bucket,
}


def bucket_for(moment: datetime, granularity: TimeGranularity) -> Tuple[datetime, str]:
    """Return ``(bucket start, label)``; Custom buckets by month."""
    return _BUCKETERS.get(granularity, _month_bucket)(moment)


class ExpenseAggregator:
    """
    Pure aggregation over already-fetched records and rates. Nothing here does
    I/O, so the same instance can back HTTP routes and the in-process pipeline.
    """

    def converted_amounts(
        self,
        records: Sequence[ExpensePublic],
        rates: Mapping[str, float],
        display_currency: str,
    ) -> List[float]:
        return [convert(rec.amount, rec.currency, display_currency, rates) for rec in records]

    def category_totals(
        self,
        records: Sequence[ExpensePublic],
        amounts: Sequence[float],
    ) -> Dict[str, float]:
        totals: Dict[str, float] = defaultdict(float)
        for record, amount in zip(records, amounts):
            totals[record.category.value] += amount
        return dict(totals)

    def time_series(
        self,
        records: Sequence[ExpensePublic],
        amounts: Sequence[float],
        granularity: TimeGranularity,
    ) -> List[TimeSeriesPoint]:
        buckets: Dict[datetime, List] = {}
        for record, amount in zip(records, amounts):
            start, label = bucket_for(record.date, granularity)
            bucket = buckets.setdefault(start, [label, 0.0])
            bucket[1] += amount
        return [
            TimeSeriesPoint(label=label, start=start, total=total)
            for start, (label, total) in sorted(buckets.items())
        ]

    def insights(
        self,
        records: Sequence[ExpensePublic],
        amounts: Sequence[float],
    ) -> List[CategoryInsight]:
        grouped: Dict[str, List[float]] = defaultdict(list)
        for record, amount in zip(records, amounts):
            grouped[record.category.value].append(amount)
        return [
            CategoryInsight(
                category=category,
                total=sum(values),
                average=sum(values) / len(values),
                transaction_count=len(values),
            )
            for category, values in grouped.items()
        ]

    def aggregate(
        self,
        records: Sequence[ExpensePublic],
        rates: Mapping[str, float],
        query: AggregationQuery,
        filtered: bool = False,
    ) -> AggregationResult:
        """
        Filter (unless ``filtered`` says it already happened), convert, and
        group ``records``. Empty input yields an empty result with a 0.0 total.
        """
        if not filtered:
            records = filter_records(records, query)
        if not records:
            return AggregationResult(display_currency=query.display_currency, converted=bool(rates))

        amounts = self.converted_amounts(records, rates, query.display_currency)
        return AggregationResult(
            category_totals=self.category_totals(records, amounts),
            time_series=self.time_series(records, amounts, query.time_granularity),
            grand_total=round(sum(amounts), 2),
            filtered_count=len(records),
            insights=self.insights(records, amounts),
            display_currency=query.display_currency,
            converted=bool(rates),
        )
