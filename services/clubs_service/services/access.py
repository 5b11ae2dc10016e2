"""Membership and role resolution.

Every club-scoped operation starts here: ``require_member`` /
``require_admin`` turn an authenticated user id into the caller's
``Membership`` or raise ``AccessDenied`` before any domain state is read.

Mutations that can remove an ADMIN (demotion, removal, user deletion) lock
the club's admin rows and count them inside the same transaction as the
change, so two concurrent demotions cannot both see a second admin.
"""

import uuid
from typing import Any, Optional

from libs.common.config import get_settings
from libs.common.errors import (
    AccessDenied,
    ClubOpsError,
    ConflictError,
    LastAdminError,
    NotFoundError,
)
from libs.common.logging import get_logger
from services.clubs_service.models import (
    Club,
    Division,
    Membership,
    RosterAssignment,
    Role,
    SubRole,
    Team,
)
from sqlalchemy import delete, func, select, union
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


async def get_membership(
    db: AsyncSession, *, user_id: str, club_id: uuid.UUID
) -> Optional[Membership]:
    result = await db.execute(
        select(Membership).where(
            Membership.user_id == user_id, Membership.club_id == club_id
        )
    )
    return result.scalar_one_or_none()


async def is_admin(db: AsyncSession, *, user_id: str, club_id: uuid.UUID) -> bool:
    membership = await get_membership(db, user_id=user_id, club_id=club_id)
    return membership is not None and membership.role == Role.ADMIN


async def require_member(
    db: AsyncSession, *, user_id: str, club_id: uuid.UUID
) -> Membership:
    """Return the caller's membership or raise ``UNAUTHORIZED``."""
    membership = await get_membership(db, user_id=user_id, club_id=club_id)
    if membership is None:
        raise AccessDenied("You are not a member of this club")
    return membership


async def require_admin(
    db: AsyncSession, *, user_id: str, club_id: uuid.UUID
) -> Membership:
    """Return the caller's membership if it is ADMIN, else raise ``UNAUTHORIZED``."""
    membership = await get_membership(db, user_id=user_id, club_id=club_id)
    if membership is None or membership.role != Role.ADMIN:
        raise AccessDenied("Only club admins can do this")
    return membership


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_club(db: AsyncSession, club_id: uuid.UUID) -> Club:
    club = await db.get(Club, club_id)
    if club is None:
        raise NotFoundError("Club not found")
    return club


async def get_team(db: AsyncSession, team_id: uuid.UUID) -> Team:
    team = await db.get(Team, team_id)
    if team is None:
        raise NotFoundError("Team not found")
    return team


async def get_membership_by_id(
    db: AsyncSession, membership_id: uuid.UUID, *, for_update: bool = False
) -> Membership:
    query = select(Membership).where(Membership.id == membership_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    membership = (await db.execute(query)).scalar_one_or_none()
    if membership is None:
        raise NotFoundError("Membership not found")
    return membership


async def team_member_count(db: AsyncSession, team_id: uuid.UUID) -> int:
    """Distinct memberships on the team or rostered for it."""
    members = union(
        select(Membership.id).where(Membership.team_id == team_id),
        select(RosterAssignment.membership_id).where(
            RosterAssignment.team_id == team_id
        ),
    ).subquery()
    result = await db.execute(select(func.count()).select_from(members))
    return result.scalar_one()


async def is_counted_on_team(
    db: AsyncSession, *, membership: Membership, team_id: uuid.UUID
) -> bool:
    if membership.team_id == team_id:
        return True
    result = await db.execute(
        select(RosterAssignment.id)
        .where(
            RosterAssignment.team_id == team_id,
            RosterAssignment.membership_id == membership.id,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _ensure_team_has_room(
    db: AsyncSession, *, membership: Optional[Membership], team: Team
) -> None:
    if membership is not None and await is_counted_on_team(
        db, membership=membership, team_id=team.id
    ):
        return
    limit = get_settings().TEAM_MAX_MEMBERS
    if await team_member_count(db, team.id) >= limit:
        raise ClubOpsError(f"Team is full ({limit} members max)", "TEAM_FULL")


async def _locked_admins(db: AsyncSession, club_id: uuid.UUID) -> list[Membership]:
    result = await db.execute(
        select(Membership)
        .where(Membership.club_id == club_id, Membership.role == Role.ADMIN)
        .order_by(Membership.created_at)
        .with_for_update()
    )
    return list(result.scalars().all())


async def _guard_last_admin(db: AsyncSession, membership: Membership) -> None:
    """Raise LAST_ADMIN if ``membership`` is its club's only admin."""
    if membership.role != Role.ADMIN:
        return
    admins = await _locked_admins(db, membership.club_id)
    if len(admins) <= 1:
        raise LastAdminError("A club must keep at least one admin")


# ---------------------------------------------------------------------------
# Clubs and teams
# ---------------------------------------------------------------------------


async def create_club(
    db: AsyncSession,
    *,
    user_id: str,
    name: str,
    division: Division,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
) -> tuple[Club, Membership]:
    """Create a club and its creator's ADMIN membership in one transaction."""
    club = Club(name=name, division=division, created_by_id=user_id)
    db.add(club)
    await db.flush()

    membership = Membership(
        user_id=user_id,
        club_id=club.id,
        role=Role.ADMIN,
        roles=[],
        email=email,
        display_name=display_name,
    )
    db.add(membership)
    await db.commit()
    await db.refresh(club)
    await db.refresh(membership)

    logger.info("Created club %s (%s) owned by %s", club.id, club.name, user_id)
    return club, membership


async def delete_club(db: AsyncSession, *, user_id: str, club_id: uuid.UUID) -> None:
    """Delete a club outright; the only path that removes its last admin."""
    club = await get_club(db, club_id)
    await require_admin(db, user_id=user_id, club_id=club_id)
    await db.delete(club)
    await db.commit()
    logger.info("Club %s deleted by %s", club_id, user_id)


async def create_team(
    db: AsyncSession, *, user_id: str, club_id: uuid.UUID, name: str
) -> Team:
    await get_club(db, club_id)
    await require_admin(db, user_id=user_id, club_id=club_id)
    team = Team(club_id=club_id, name=name)
    db.add(team)
    await db.commit()
    await db.refresh(team)
    logger.info("Created team %s in club %s", team.id, club_id)
    return team


async def list_teams(
    db: AsyncSession, *, user_id: str, club_id: uuid.UUID
) -> list[tuple[Team, int]]:
    await get_club(db, club_id)
    await require_member(db, user_id=user_id, club_id=club_id)
    result = await db.execute(
        select(Team).where(Team.club_id == club_id).order_by(Team.created_at)
    )
    teams = list(result.scalars().all())
    return [(team, await team_member_count(db, team.id)) for team in teams]


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


async def add_membership(
    db: AsyncSession,
    *,
    actor_user_id: str,
    club_id: uuid.UUID,
    user_id: str,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
    team_id: Optional[uuid.UUID] = None,
    role: Role = Role.MEMBER,
    roles: Optional[list[SubRole]] = None,
) -> Membership:
    await get_club(db, club_id)
    await require_admin(db, user_id=actor_user_id, club_id=club_id)

    if team_id is not None:
        team = await get_team(db, team_id)
        if team.club_id != club_id:
            raise ClubOpsError("Team belongs to a different club", "CLUB_MISMATCH")
        await _ensure_team_has_room(db, membership=None, team=team)

    membership = Membership(
        user_id=user_id,
        club_id=club_id,
        team_id=team_id,
        role=role,
        roles=[r.value for r in roles or []],
        email=email,
        display_name=display_name,
    )
    db.add(membership)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("User is already a member of this club")
    await db.refresh(membership)

    logger.info("Added %s to club %s as %s", user_id, club_id, role.value)
    return membership


async def update_membership(
    db: AsyncSession,
    *,
    actor_user_id: str,
    membership_id: uuid.UUID,
    changes: dict[str, Any],
) -> Membership:
    """Apply an admin's changes to a membership.

    ``changes`` holds only the fields the client sent; ``team_id: None``
    removes the member from their team.
    """
    target = await get_membership_by_id(db, membership_id)
    await require_admin(db, user_id=actor_user_id, club_id=target.club_id)

    try:
        target = await get_membership_by_id(db, membership_id, for_update=True)

        if "team_id" in changes and changes["team_id"] != target.team_id:
            new_team_id = changes["team_id"]
            if new_team_id is not None:
                team = await get_team(db, new_team_id)
                if team.club_id != target.club_id:
                    raise ClubOpsError(
                        "Team belongs to a different club", "CLUB_MISMATCH"
                    )
                await _ensure_team_has_room(db, membership=target, team=team)
            target.team_id = new_team_id

        new_role = changes.get("role")
        if new_role is not None and new_role != target.role:
            if new_role == Role.MEMBER:
                await _guard_last_admin(db, target)
            target.role = new_role

        if changes.get("roles") is not None:
            target.roles = [SubRole(r).value for r in changes["roles"]]
        if "display_name" in changes:
            target.display_name = changes["display_name"]

        await db.commit()
    except ClubOpsError:
        await db.rollback()
        raise

    await db.refresh(target)
    logger.info(
        "Membership %s updated by %s (role=%s, team=%s)",
        target.id,
        actor_user_id,
        target.role.value,
        target.team_id,
    )
    return target


async def remove_membership(
    db: AsyncSession, *, actor_user_id: str, membership_id: uuid.UUID
) -> None:
    """Admins may remove anyone; members may remove themselves."""
    target = await get_membership_by_id(db, membership_id)
    if target.user_id != actor_user_id:
        await require_admin(db, user_id=actor_user_id, club_id=target.club_id)

    try:
        await _guard_last_admin(db, target)
        await db.delete(target)
        await db.commit()
    except ClubOpsError:
        await db.rollback()
        raise

    logger.info("Membership %s removed by %s", membership_id, actor_user_id)


async def delete_user_memberships(db: AsyncSession, *, user_id: str) -> int:
    """Remove a user from every club, handing off clubs they own or run.

    Ownership passes to the longest-standing other admin; when there is none,
    the longest-standing remaining member is promoted to ADMIN. A club the user
    is the only member of cannot be handed off and fails the whole operation
    with CONFLICT. Returns the number of memberships removed.
    """
    result = await db.execute(select(Membership).where(Membership.user_id == user_id))
    memberships = list(result.scalars().all())

    try:
        for membership in memberships:
            club = (
                await db.execute(
                    select(Club).where(Club.id == membership.club_id).with_for_update()
                )
            ).scalar_one()
            admins = [
                m for m in await _locked_admins(db, club.id) if m.user_id != user_id
            ]
            successor = admins[0] if admins else None
            if successor is None:
                others = await db.execute(
                    select(Membership)
                    .where(
                        Membership.club_id == club.id, Membership.user_id != user_id
                    )
                    .order_by(Membership.created_at)
                    .limit(1)
                    .with_for_update()
                )
                successor = others.scalar_one_or_none()
                if successor is None:
                    raise ConflictError(
                        f"Club {club.name!r} has no other members to take it over",
                        extra={"club_id": str(club.id)},
                    )
                if membership.role == Role.ADMIN:
                    successor.role = Role.ADMIN
                    logger.info(
                        "Promoted %s to admin of club %s", successor.user_id, club.id
                    )
            if club.created_by_id == user_id:
                club.created_by_id = successor.user_id
                logger.info(
                    "Transferred club %s ownership to %s", club.id, successor.user_id
                )

        await db.execute(delete(Membership).where(Membership.user_id == user_id))
        await db.commit()
    except ClubOpsError:
        await db.rollback()
        raise
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Club membership changed concurrently; try again")

    logger.info("Removed user %s from %d clubs", user_id, len(memberships))
    return len(memberships)


async def list_memberships(
    db: AsyncSession, *, user_id: str, club_id: uuid.UUID
) -> list[Membership]:
    await get_club(db, club_id)
    await require_member(db, user_id=user_id, club_id=club_id)
    result = await db.execute(
        select(Membership)
        .where(Membership.club_id == club_id)
        .order_by(Membership.created_at)
    )
    return list(result.scalars().all())
