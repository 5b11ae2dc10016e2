"""Membership update and removal endpoints."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.clubs_service.schemas import MembershipResponse, MembershipUpdate
from services.clubs_service.services import access
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/memberships", tags=["memberships"])


@router.delete("/me")
async def leave_all_clubs(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
) -> dict[str, int]:
    """Remove the caller from every club (account deletion).

    Clubs the caller owns or runs alone are handed to another member first.
    """
    removed = await access.delete_user_memberships(db, user_id=current_user.user_id)
    return {"removed": removed}


@router.patch("/{membership_id}", response_model=MembershipResponse)
async def update_membership(
    membership_id: uuid.UUID,
    payload: MembershipUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Change team, role or sub-roles. Demoting the last admin fails."""
    membership = await access.update_membership(
        db,
        actor_user_id=current_user.user_id,
        membership_id=membership_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    return MembershipResponse.model_validate(membership)


@router.delete("/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_membership(
    membership_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await access.remove_membership(
        db, actor_user_id=current_user.user_id, membership_id=membership_id
    )
