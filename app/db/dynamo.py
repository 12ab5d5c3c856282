import logging
from decimal import Decimal
from functools import lru_cache
from typing import Any, List, Union
from uuid import uuid4

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.errors import NotFound, RecordFetchFailed
from app.models.expense import ExpenseCreate, ExpenseInDB, ExpensePublic, ExpenseUpdate

logger = logging.getLogger(__name__)


class DynamoExpenseStore:
    """
    Expense records keyed by ``user_id`` (partition) and ``expense_id`` (sort).

    Every call returns only after DynamoDB has confirmed the operation, so a
    caller that lists right after a write sees that write.
    """

    def __init__(self, table) -> None:
        self.table = table

    def list_expenses(self, user_id: str) -> List[ExpensePublic]:
        """Query all expenses for a given user, following pagination."""
        items: List[dict] = []
        query_kwargs = {"KeyConditionExpression": Key("user_id").eq(user_id)}
        try:
            while True:
                response = self.table.query(**query_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                query_kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            logger.error(f"list_expenses failed for user {user_id}: {_error_message(e)}")
            raise RecordFetchFailed(f"Could not read expenses for user {user_id}") from e

        logger.info(f"Loaded {len(items)} expenses for user {user_id}")
        return [ExpensePublic(**_from_dynamo(item)) for item in items]

    def get_expense(self, user_id: str, expense_id: str) -> ExpensePublic:
        """Fetch a single expense item."""
        try:
            response = self.table.get_item(Key={"user_id": user_id, "expense_id": expense_id})
        except (ClientError, BotoCoreError) as e:
            logger.error(f"get_expense failed: {_error_message(e)}")
            raise RecordFetchFailed(f"Could not read expense {expense_id}") from e
        item = response.get("Item")
        if not item:
            raise NotFound(user_id, expense_id)
        return ExpensePublic(**_from_dynamo(item))

    def create_expense(self, user_id: str, expense: ExpenseCreate) -> ExpensePublic:
        """Insert a new expense; the store assigns the id."""
        record = ExpenseInDB(user_id=user_id, expense_id=uuid4().hex, **expense.model_dump())
        self.table.put_item(Item=_convert_for_dynamo(record.model_dump(mode="json")))
        logger.info(f"Created expense {record.expense_id} for user {user_id}")
        return ExpensePublic(**record.model_dump(exclude={"user_id"}))

    def update_expense(self, user_id: str, expense_id: str, expense: ExpenseUpdate) -> ExpensePublic:
        """Replace every mutable field of an existing expense."""
        record = ExpenseInDB(user_id=user_id, expense_id=expense_id, **expense.model_dump())
        try:
            self.table.put_item(
                Item=_convert_for_dynamo(record.model_dump(mode="json")),
                ConditionExpression=Attr("expense_id").exists(),
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise NotFound(user_id, expense_id) from e
            raise
        logger.info(f"Updated expense {expense_id} for user {user_id}")
        return ExpensePublic(**record.model_dump(exclude={"user_id"}))

    def delete_expense(self, user_id: str, expense_id: str) -> bool:
        """Delete a specific expense item. Returns False when nothing was there."""
        response = self.table.delete_item(
            Key={"user_id": user_id, "expense_id": expense_id},
            ReturnValues="ALL_OLD",
        )
        deleted = "Attributes" in response
        if deleted:
            logger.info(f"Deleted expense {expense_id} for user {user_id}")
        return deleted


@lru_cache()
def get_expense_store() -> DynamoExpenseStore:
    dynamodb = boto3.resource("dynamodb", region_name=settings.DYNAMO_REGION)
    return DynamoExpenseStore(dynamodb.Table(settings.DYNAMO_EXPENSES_TABLE))


def _error_message(error: Union[ClientError, BotoCoreError]) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Message", str(error))
    return str(error)


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert floats to Decimal for DynamoDB compatibility.
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_for_dynamo(v) for v in obj]
    return obj


def _from_dynamo(obj: Any):
    """
    Recursively convert Decimal instances back to native Python numeric types.
    """
    if isinstance(obj, list):
        return [_from_dynamo(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    return obj
