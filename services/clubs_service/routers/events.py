"""Event catalog endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user, require_platform_admin
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.clubs_service.models import Division
from services.clubs_service.schemas import EventCreate, EventResponse
from services.clubs_service.services import roster
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/events", tags=["events"])


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    payload: EventCreate,
    _admin: AuthUser = Depends(require_platform_admin),
    db: AsyncSession = Depends(get_async_db),
):
    event = await roster.create_event(
        db, name=payload.name, slug=payload.slug, division=payload.division
    )
    return EventResponse.model_validate(event)


@router.get("", response_model=list[EventResponse])
async def list_events(
    division: Optional[Division] = Query(None),
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    events = await roster.list_events(db, division=division)
    return [EventResponse.model_validate(e) for e in events]
