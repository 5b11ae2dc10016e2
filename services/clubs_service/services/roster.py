"""Roster conflict validation and assignment persistence."""

import uuid
from dataclasses import dataclass
from typing import Optional

from libs.common.config import get_settings
from libs.common.errors import ClubOpsError, ConflictError, NotFoundError
from libs.common.logging import get_logger
from services.clubs_service.models import Event, Membership, RosterAssignment, Team
from services.clubs_service.services.access import (
    get_team,
    is_counted_on_team,
    require_admin,
    require_member,
    team_member_count,
)
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class RosterValidation:
    valid: bool
    code: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "RosterValidation":
        return cls(valid=True)

    @classmethod
    def reject(cls, code: str, error: str) -> "RosterValidation":
        return cls(valid=False, code=code, error=error)


async def validate_roster_assignment(
    db: AsyncSession,
    *,
    membership_id: uuid.UUID,
    team_id: uuid.UUID,
    event_id: uuid.UUID,
    max_team_members: Optional[int] = None,
    max_events_per_member: Optional[int] = None,
) -> RosterValidation:
    """Decide whether ``membership`` may compete in ``event`` for ``team``.

    Rules run in order and the first failure wins:

    1. membership and team are in the same club (CLUB_MISMATCH)
    2. the team has room if this assignment brings a new member onto it
       (TEAM_FULL)
    3. the membership is not in this event for another team (DUPLICATE_EVENT)
    4. the assignment does not already exist (ALREADY_ASSIGNED)
    5. the per-member event cap, when configured (EVENT_CAP_EXCEEDED)

    Reads only; the caller inserts. Limits default to the configured values.
    """
    settings = get_settings()
    if max_team_members is None:
        max_team_members = settings.TEAM_MAX_MEMBERS
    if max_events_per_member is None:
        max_events_per_member = settings.ROSTER_MAX_EVENTS_PER_MEMBER

    membership = await db.get(Membership, membership_id)
    if membership is None:
        return RosterValidation.reject("NOT_FOUND", "Membership not found")
    team = await db.get(Team, team_id)
    if team is None:
        return RosterValidation.reject("NOT_FOUND", "Team not found")
    if await db.get(Event, event_id) is None:
        return RosterValidation.reject("NOT_FOUND", "Event not found")

    if membership.club_id != team.club_id:
        return RosterValidation.reject(
            "CLUB_MISMATCH", "Member and team belong to different clubs"
        )

    if not await is_counted_on_team(db, membership=membership, team_id=team_id):
        if await team_member_count(db, team_id) >= max_team_members:
            return RosterValidation.reject(
                "TEAM_FULL", f"Team already has {max_team_members} members"
            )

    existing = await db.execute(
        select(RosterAssignment.team_id).where(
            RosterAssignment.membership_id == membership_id,
            RosterAssignment.event_id == event_id,
        )
    )
    assigned_team_ids = set(existing.scalars().all())
    if assigned_team_ids - {team_id}:
        return RosterValidation.reject(
            "DUPLICATE_EVENT",
            "Member is already assigned to this event on another team",
        )
    if team_id in assigned_team_ids:
        return RosterValidation.reject(
            "ALREADY_ASSIGNED", "Member is already assigned to this event"
        )

    if max_events_per_member is not None:
        count = await db.execute(
            select(func.count())
            .select_from(RosterAssignment)
            .where(
                RosterAssignment.team_id == team_id,
                RosterAssignment.membership_id == membership_id,
            )
        )
        if count.scalar_one() >= max_events_per_member:
            return RosterValidation.reject(
                "EVENT_CAP_EXCEEDED",
                f"Member already has {max_events_per_member} events on this team",
            )

    return RosterValidation.ok()


async def create_roster_assignment(
    db: AsyncSession,
    *,
    user_id: str,
    membership_id: uuid.UUID,
    team_id: uuid.UUID,
    event_id: uuid.UUID,
) -> RosterAssignment:
    """Validate and insert an assignment in one transaction.

    The unique (team, membership, event) constraint catches a concurrent
    insert that passed validation at the same time; that surfaces as CONFLICT.
    """
    team = await get_team(db, team_id)
    await require_admin(db, user_id=user_id, club_id=team.club_id)

    validation = await validate_roster_assignment(
        db, membership_id=membership_id, team_id=team_id, event_id=event_id
    )
    if not validation.valid:
        logger.info(
            "Roster assignment rejected (%s): membership=%s team=%s event=%s",
            validation.code,
            membership_id,
            team_id,
            event_id,
        )
        if validation.code == "NOT_FOUND":
            raise NotFoundError(validation.error)
        raise ClubOpsError(validation.error, validation.code)

    assignment = RosterAssignment(
        team_id=team_id, membership_id=membership_id, event_id=event_id
    )
    db.add(assignment)

    membership = await db.get(Membership, membership_id)
    if membership.team_id is None:
        membership.team_id = team_id

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Roster changed while saving; please retry")
    await db.refresh(assignment)

    logger.info(
        "Assigned membership %s to event %s on team %s",
        membership_id,
        event_id,
        team_id,
    )
    return assignment


async def list_roster(
    db: AsyncSession, *, user_id: str, team_id: uuid.UUID
) -> list[RosterAssignment]:
    team = await get_team(db, team_id)
    await require_member(db, user_id=user_id, club_id=team.club_id)
    result = await db.execute(
        select(RosterAssignment)
        .where(RosterAssignment.team_id == team_id)
        .order_by(RosterAssignment.created_at)
    )
    return list(result.scalars().all())


async def delete_roster_assignment(
    db: AsyncSession, *, user_id: str, assignment_id: uuid.UUID
) -> None:
    assignment = await db.get(RosterAssignment, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")
    team = await get_team(db, assignment.team_id)
    await require_admin(db, user_id=user_id, club_id=team.club_id)

    await db.delete(assignment)
    await db.commit()
    logger.info("Removed roster assignment %s", assignment_id)


async def create_event(db: AsyncSession, *, name: str, slug: str, division) -> Event:
    event = Event(name=name, slug=slug, division=division)
    db.add(event)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"An event with slug {slug!r} already exists")
    await db.refresh(event)
    return event


async def list_events(db: AsyncSession, *, division=None) -> list[Event]:
    query = select(Event).order_by(Event.name)
    if division is not None:
        query = query.where(Event.division == division)
    result = await db.execute(query)
    return list(result.scalars().all())
