import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.errors import NotFound, RecordFetchFailed
from app.core.security import get_current_user_id
from app.db.dynamo import DynamoExpenseStore, get_expense_store
from app.models.expense import ExpenseCreate, ExpensePublic, ExpenseUpdate

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[ExpensePublic])
def list_expenses(
    user_id: str = Depends(get_current_user_id),
    store: DynamoExpenseStore = Depends(get_expense_store),
):
    try:
        return store.list_expenses(user_id)
    except RecordFetchFailed:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to fetch expenses")


@router.post("/", response_model=ExpensePublic, status_code=status.HTTP_201_CREATED)
def create_expense(
    expense: ExpenseCreate,
    user_id: str = Depends(get_current_user_id),
    store: DynamoExpenseStore = Depends(get_expense_store),
):
    return store.create_expense(user_id, expense)


@router.get("/{expense_id}", response_model=ExpensePublic)
def get_expense(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DynamoExpenseStore = Depends(get_expense_store),
):
    try:
        return store.get_expense(user_id, expense_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Expense not found")
    except RecordFetchFailed:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to fetch expense")


@router.put("/{expense_id}", response_model=ExpensePublic)
def update_expense(
    expense_id: str,
    expense: ExpenseUpdate,
    user_id: str = Depends(get_current_user_id),
    store: DynamoExpenseStore = Depends(get_expense_store),
):
    try:
        return store.update_expense(user_id, expense_id, expense)
    except NotFound:
        raise HTTPException(status_code=404, detail="Expense not found")


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DynamoExpenseStore = Depends(get_expense_store),
):
    deleted = store.delete_expense(user_id, expense_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Expense not found")
    return None
