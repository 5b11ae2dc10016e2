"""Tournament and registration endpoints."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.clubs_service.schemas import (
    RegistrationCreate,
    RegistrationResponse,
    RegistrationUpdate,
    TournamentCreate,
    TournamentResponse,
)
from services.clubs_service.services import exams
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/tournaments", tags=["tournaments"])


@router.post(
    "", response_model=TournamentResponse, status_code=status.HTTP_201_CREATED
)
async def create_tournament(
    payload: TournamentCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Create a tournament; the caller becomes its admin."""
    tournament = await exams.create_tournament(
        db, user_id=current_user.user_id, name=payload.name, ends_at=payload.ends_at
    )
    return TournamentResponse.model_validate(tournament)


@router.post(
    "/{tournament_id}/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_club(
    tournament_id: uuid.UUID,
    payload: RegistrationCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    registration = await exams.register_club(
        db,
        user_id=current_user.user_id,
        tournament_id=tournament_id,
        club_id=payload.club_id,
        team_id=payload.team_id,
    )
    return RegistrationResponse.model_validate(registration)


@router.patch(
    "/{tournament_id}/registrations/{registration_id}",
    response_model=RegistrationResponse,
)
async def update_registration(
    tournament_id: uuid.UUID,
    registration_id: uuid.UUID,
    payload: RegistrationUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Confirm, waitlist or cancel a registration (tournament admins)."""
    registration = await exams.update_registration(
        db,
        user_id=current_user.user_id,
        tournament_id=tournament_id,
        registration_id=registration_id,
        status=payload.status,
    )
    return RegistrationResponse.model_validate(registration)
