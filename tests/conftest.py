from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

import pytest
from botocore.exceptions import ClientError

from app.core.errors import RateUnavailable
from app.db.dynamo import DynamoExpenseStore
from app.models.expense import Category, ExpensePublic
from app.utils.exchange_rates import RateCache


class FakeTable:
    """In-memory stand-in for a boto3 DynamoDB Table keyed by (user_id, expense_id)."""

    def __init__(self, page_size: Optional[int] = None):
        self.items: Dict[Tuple[str, str], dict] = {}
        self.page_size = page_size
        self.fail_reads = False
        self.query_calls = 0

    def query(self, KeyConditionExpression, ExclusiveStartKey=None):
        self.query_calls += 1
        if self.fail_reads:
            raise ClientError(
                {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
                "Query",
            )
        user_id = KeyConditionExpression.get_expression()["values"][1]
        keys = sorted(key for key in self.items if key[0] == user_id)
        if ExclusiveStartKey:
            start = (ExclusiveStartKey["user_id"], ExclusiveStartKey["expense_id"])
            keys = [key for key in keys if key > start]
        response = {}
        if self.page_size is not None and len(keys) > self.page_size:
            keys = keys[: self.page_size]
            response["LastEvaluatedKey"] = {"user_id": keys[-1][0], "expense_id": keys[-1][1]}
        response["Items"] = [dict(self.items[key]) for key in keys]
        return response

    def get_item(self, Key):
        item = self.items.get((Key["user_id"], Key["expense_id"]))
        return {"Item": dict(item)} if item else {}

    def put_item(self, Item, ConditionExpression=None):
        key = (Item["user_id"], Item["expense_id"])
        if ConditionExpression is not None and key not in self.items:
            raise ClientError(
                {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
                "PutItem",
            )
        self.items[key] = dict(Item)
        return {}

    def delete_item(self, Key, ReturnValues=None):
        old = self.items.pop((Key["user_id"], Key["expense_id"]), None)
        return {"Attributes": old} if old else {}


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeRateService:
    """Async rate fetcher that records calls and can be switched off."""

    def __init__(self, rates: Optional[Dict[str, float]] = None):
        self.rates = rates or {"USD": 1.0, "EUR": 0.9, "GBP": 0.8, "AED": 3.6725, "INR": 83.0}
        self.calls = []
        self.available = True

    async def __call__(self, base: str) -> dict:
        self.calls.append(base)
        if not self.available:
            raise RateUnavailable("rate service down")
        return {"base": base, "rates": dict(self.rates), "timestamp": None}


def make_expense(
    amount: float,
    currency: str = "USD",
    category: Category = Category.FOOD,
    date: str = "2024-06-01",
    expense_id: Optional[str] = None,
) -> ExpensePublic:
    return ExpensePublic(
        expense_id=expense_id or f"{category.value}-{date}-{amount}",
        amount=amount,
        category=category,
        currency=currency,
        date=datetime.fromisoformat(date),
    )


@pytest.fixture
def table():
    return FakeTable()


@pytest.fixture
def store(table):
    return DynamoExpenseStore(table)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_service():
    return FakeRateService()


@pytest.fixture
def rate_cache(rate_service, clock):
    return RateCache(rate_service, clock=clock)
