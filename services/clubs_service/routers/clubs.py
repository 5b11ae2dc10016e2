"""Club, team and membership roster endpoints."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.clubs_service.schemas import (
    ClubCreate,
    ClubCreatedResponse,
    ClubResponse,
    MembershipCreate,
    MembershipResponse,
    TeamCreate,
    TeamResponse,
)
from services.clubs_service.services import access
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/clubs", tags=["clubs"])


@router.post(
    "", response_model=ClubCreatedResponse, status_code=status.HTTP_201_CREATED
)
async def create_club(
    payload: ClubCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Create a club; the caller becomes its first admin."""
    club, membership = await access.create_club(
        db,
        user_id=current_user.user_id,
        name=payload.name,
        division=payload.division,
        email=current_user.email,
        display_name=payload.display_name or current_user.name,
    )
    return ClubCreatedResponse(
        club=ClubResponse.model_validate(club),
        membership=MembershipResponse.model_validate(membership),
    )


@router.delete("/{club_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_club(
    club_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await access.delete_club(db, user_id=current_user.user_id, club_id=club_id)


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


@router.post(
    "/{club_id}/teams",
    response_model=TeamResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_team(
    club_id: uuid.UUID,
    payload: TeamCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    team = await access.create_team(
        db, user_id=current_user.user_id, club_id=club_id, name=payload.name
    )
    return TeamResponse.model_validate(team)


@router.get("/{club_id}/teams", response_model=list[TeamResponse])
async def list_teams(
    club_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Teams with their current member counts."""
    rows = await access.list_teams(db, user_id=current_user.user_id, club_id=club_id)
    return [
        TeamResponse.model_validate(team).model_copy(update={"member_count": count})
        for team, count in rows
    ]


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


@router.post(
    "/{club_id}/memberships",
    response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_membership(
    club_id: uuid.UUID,
    payload: MembershipCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    membership = await access.add_membership(
        db,
        actor_user_id=current_user.user_id,
        club_id=club_id,
        user_id=payload.user_id,
        email=payload.email,
        display_name=payload.display_name,
        team_id=payload.team_id,
        role=payload.role,
        roles=payload.roles,
    )
    return MembershipResponse.model_validate(membership)


@router.get("/{club_id}/memberships", response_model=list[MembershipResponse])
async def list_memberships(
    club_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    memberships = await access.list_memberships(
        db, user_id=current_user.user_id, club_id=club_id
    )
    return [MembershipResponse.model_validate(m) for m in memberships]
