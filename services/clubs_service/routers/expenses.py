"""Expense endpoints. Direct postings are admin-only and not budget-checked."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.clubs_service.schemas import ExpenseCreate, ExpenseResponse, ExpenseUpdate
from services.clubs_service.services import purchasing
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/expenses", tags=["expenses"])


@router.get("", response_model=list[ExpenseResponse])
async def list_expenses(
    club_id: uuid.UUID = Query(...),
    event_id: Optional[uuid.UUID] = Query(None),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    expenses = await purchasing.list_expenses(
        db, user_id=current_user.user_id, club_id=club_id, event_id=event_id
    )
    return [ExpenseResponse.model_validate(e) for e in expenses]


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    payload: ExpenseCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    expense = await purchasing.create_expense(
        db,
        user_id=current_user.user_id,
        club_id=payload.club_id,
        event_id=payload.event_id,
        team_id=payload.team_id,
        description=payload.description,
        category=payload.category,
        amount=payload.amount,
        date=payload.date,
        notes=payload.notes,
    )
    return ExpenseResponse.model_validate(expense)


@router.patch("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: uuid.UUID,
    payload: ExpenseUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    expense = await purchasing.update_expense(
        db,
        user_id=current_user.user_id,
        expense_id=expense_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    return ExpenseResponse.model_validate(expense)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(
    expense_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Also deletes the purchase request the expense came from, if any."""
    await purchasing.delete_expense(
        db, user_id=current_user.user_id, expense_id=expense_id
    )
