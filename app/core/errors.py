"""
Domain errors raised by the record store, the rate cache and the analytics
pipeline. Routers translate them into HTTP status codes.
"""
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from app.models.analytics import ExchangeRateSnapshot


class ExpenseTrackerError(Exception):
    """Base class for all expense analytics errors."""


class Unauthenticated(ExpenseTrackerError):
    """No valid user context; aggregation must not run."""


class NotFound(ExpenseTrackerError):
    """An expense id does not exist under the given user."""

    def __init__(self, user_id: str, expense_id: str) -> None:
        super().__init__(f"Expense {expense_id} not found for user {user_id}")
        self.user_id = user_id
        self.expense_id = expense_id


class RecordFetchFailed(ExpenseTrackerError):
    """The document store could not be read."""


class RateUnavailable(ExpenseTrackerError):
    """
    The rate service could not be reached or returned garbage.

    When a previous snapshot exists it is attached as ``stale_snapshot`` so the
    consumer can decide whether to keep going with it.
    """

    def __init__(self, message: str, stale_snapshot: Optional["ExchangeRateSnapshot"] = None) -> None:
        super().__init__(message)
        self.stale_snapshot = stale_snapshot
