"""Roster assignment endpoints."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.clubs_service.schemas import (
    RosterAssignmentCreate,
    RosterAssignmentResponse,
)
from services.clubs_service.services import roster as roster_service
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/roster", tags=["roster"])


@router.post(
    "/assignments",
    response_model=RosterAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_assignment(
    payload: RosterAssignmentCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Assign a member to an event for a team (club admin only).

    Rejections carry a ``code``: CLUB_MISMATCH, TEAM_FULL, DUPLICATE_EVENT,
    ALREADY_ASSIGNED or EVENT_CAP_EXCEEDED.
    """
    assignment = await roster_service.create_roster_assignment(
        db,
        user_id=current_user.user_id,
        membership_id=payload.membership_id,
        team_id=payload.team_id,
        event_id=payload.event_id,
    )
    return RosterAssignmentResponse.model_validate(assignment)


@router.get("", response_model=list[RosterAssignmentResponse])
async def list_assignments(
    team_id: uuid.UUID = Query(...),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    assignments = await roster_service.list_roster(
        db, user_id=current_user.user_id, team_id=team_id
    )
    return [RosterAssignmentResponse.model_validate(a) for a in assignments]


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_assignment(
    assignment_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await roster_service.delete_roster_assignment(
        db, user_id=current_user.user_id, assignment_id=assignment_id
    )
