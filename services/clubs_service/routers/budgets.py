"""Event budget endpoints."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.clubs_service.schemas import EventBudgetResponse, EventBudgetUpsert
from services.clubs_service.services import budget as budget_service
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/event-budgets", tags=["budgets"])


@router.get("", response_model=list[EventBudgetResponse])
async def list_budgets(
    club_id: uuid.UUID = Query(...),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Budgets visible to the caller with spent / requested / remaining totals."""
    summaries = await budget_service.list_budgets(
        db, user_id=current_user.user_id, club_id=club_id
    )
    return [EventBudgetResponse(**s.as_dict()) for s in summaries]


@router.post("", response_model=EventBudgetResponse)
async def upsert_budget(
    payload: EventBudgetUpsert,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Create or replace the budget for (club, event, team-or-club-wide)."""
    summary = await budget_service.upsert_budget(
        db,
        user_id=current_user.user_id,
        club_id=payload.club_id,
        event_id=payload.event_id,
        team_id=payload.team_id,
        max_budget=payload.max_budget,
    )
    return EventBudgetResponse(**summary.as_dict())


@router.delete("/{budget_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_budget(
    budget_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await budget_service.delete_budget(
        db, user_id=current_user.user_id, budget_id=budget_id
    )
