"""Unit tests for roster conflict validation."""

import uuid

import pytest
from libs.common.errors import AccessDenied, ClubOpsError
from services.clubs_service.models import Membership, RosterAssignment, Role
from services.clubs_service.services.roster import (
    create_roster_assignment,
    validate_roster_assignment,
)
from sqlalchemy import func, select
from tests.factories import (
    ClubFactory,
    EventFactory,
    MembershipFactory,
    RosterAssignmentFactory,
    TeamFactory,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _seed(db):
    club = ClubFactory.create()
    db.add(club)
    await db.flush()

    team_a = TeamFactory.create(club_id=club.id, name="Team A")
    team_b = TeamFactory.create(club_id=club.id, name="Team B")
    anatomy = EventFactory.create(name="Anatomy and Physiology")
    optics = EventFactory.create(name="Optics", slug=f"optics-{uuid.uuid4().hex[:8]}")
    db.add_all([team_a, team_b, anatomy, optics])
    await db.flush()

    admin = MembershipFactory.create(club_id=club.id, role=Role.ADMIN)
    student = MembershipFactory.create(club_id=club.id, team_id=team_a.id)
    db.add_all([admin, student])
    await db.commit()
    return club, team_a, team_b, anatomy, optics, admin, student


async def _fill_team(db, club_id, team_id, count):
    for _ in range(count):
        db.add(MembershipFactory.create(club_id=club_id, team_id=team_id))
    await db.commit()


async def _assignment_count(db) -> int:
    result = await db.execute(select(func.count()).select_from(RosterAssignment))
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_same_event_on_another_team_is_a_duplicate(db_session):
    _, team_a, team_b, anatomy, _, admin, student = await _seed(db_session)
    await create_roster_assignment(
        db_session,
        user_id=admin.user_id,
        membership_id=student.id,
        team_id=team_a.id,
        event_id=anatomy.id,
    )

    result = await validate_roster_assignment(
        db_session, membership_id=student.id, team_id=team_b.id, event_id=anatomy.id
    )

    assert result.valid is False
    assert result.code == "DUPLICATE_EVENT"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_same_assignment_twice_is_already_assigned(db_session):
    _, team_a, _, anatomy, _, admin, student = await _seed(db_session)
    await create_roster_assignment(
        db_session,
        user_id=admin.user_id,
        membership_id=student.id,
        team_id=team_a.id,
        event_id=anatomy.id,
    )

    result = await validate_roster_assignment(
        db_session, membership_id=student.id, team_id=team_a.id, event_id=anatomy.id
    )

    assert result.code == "ALREADY_ASSIGNED"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_different_event_on_second_team_is_allowed(db_session):
    _, team_a, team_b, anatomy, optics, admin, student = await _seed(db_session)
    await create_roster_assignment(
        db_session,
        user_id=admin.user_id,
        membership_id=student.id,
        team_id=team_a.id,
        event_id=anatomy.id,
    )

    result = await validate_roster_assignment(
        db_session, membership_id=student.id, team_id=team_b.id, event_id=optics.id
    )

    assert result.valid is True
    assert result.code is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_team_from_another_club_is_a_mismatch(db_session):
    _, _, _, anatomy, _, _, student = await _seed(db_session)
    other_club = ClubFactory.create(name="Rival Club")
    db_session.add(other_club)
    await db_session.flush()
    other_team = TeamFactory.create(club_id=other_club.id)
    db_session.add(other_team)
    await db_session.commit()

    result = await validate_roster_assignment(
        db_session,
        membership_id=student.id,
        team_id=other_team.id,
        event_id=anatomy.id,
    )

    assert result.code == "CLUB_MISMATCH"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_event_is_not_found(db_session):
    _, team_a, _, _, _, _, student = await _seed(db_session)

    result = await validate_roster_assignment(
        db_session, membership_id=student.id, team_id=team_a.id, event_id=uuid.uuid4()
    )

    assert result.code == "NOT_FOUND"


# ---------------------------------------------------------------------------
# Team capacity
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_full_team_rejects_a_new_member(db_session):
    club, _, team_b, anatomy, _, _, _ = await _seed(db_session)
    await _fill_team(db_session, club.id, team_b.id, 15)
    newcomer = MembershipFactory.create(club_id=club.id)
    db_session.add(newcomer)
    await db_session.commit()

    result = await validate_roster_assignment(
        db_session, membership_id=newcomer.id, team_id=team_b.id, event_id=anatomy.id
    )

    assert result.code == "TEAM_FULL"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_full_team_still_takes_events_for_its_own_members(db_session):
    club, team_a, _, anatomy, _, _, student = await _seed(db_session)
    await _fill_team(db_session, club.id, team_a.id, 14)

    result = await validate_roster_assignment(
        db_session, membership_id=student.id, team_id=team_a.id, event_id=anatomy.id
    )

    assert result.valid is True


@pytest.mark.asyncio
@pytest.mark.unit
async def test_rostered_members_count_toward_capacity(db_session):
    """A member rostered from another team occupies a seat."""
    club, team_a, team_b, anatomy, optics, _, student = await _seed(db_session)
    db_session.add(
        RosterAssignmentFactory.create(
            team_id=team_b.id, membership_id=student.id, event_id=optics.id
        )
    )
    await db_session.commit()
    await _fill_team(db_session, club.id, team_b.id, 1)
    newcomer = MembershipFactory.create(club_id=club.id)
    db_session.add(newcomer)
    await db_session.commit()

    result = await validate_roster_assignment(
        db_session,
        membership_id=newcomer.id,
        team_id=team_b.id,
        event_id=anatomy.id,
        max_team_members=2,
    )

    assert result.code == "TEAM_FULL"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_event_cap_per_member(db_session):
    _, team_a, _, anatomy, optics, admin, student = await _seed(db_session)
    await create_roster_assignment(
        db_session,
        user_id=admin.user_id,
        membership_id=student.id,
        team_id=team_a.id,
        event_id=anatomy.id,
    )

    result = await validate_roster_assignment(
        db_session,
        membership_id=student.id,
        team_id=team_a.id,
        event_id=optics.id,
        max_events_per_member=1,
    )

    assert result.code == "EVENT_CAP_EXCEEDED"


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_validation_has_no_side_effects(db_session):
    _, team_a, _, anatomy, _, _, student = await _seed(db_session)

    for _ in range(2):
        result = await validate_roster_assignment(
            db_session,
            membership_id=student.id,
            team_id=team_a.id,
            event_id=anatomy.id,
        )
        assert result.valid is True

    assert await _assignment_count(db_session) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_rejected_assignment_raises_with_its_code(db_session):
    _, team_a, team_b, anatomy, _, admin, student = await _seed(db_session)
    await create_roster_assignment(
        db_session,
        user_id=admin.user_id,
        membership_id=student.id,
        team_id=team_a.id,
        event_id=anatomy.id,
    )

    with pytest.raises(ClubOpsError) as exc_info:
        await create_roster_assignment(
            db_session,
            user_id=admin.user_id,
            membership_id=student.id,
            team_id=team_b.id,
            event_id=anatomy.id,
        )

    assert exc_info.value.code == "DUPLICATE_EVENT"
    assert await _assignment_count(db_session) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_first_assignment_places_teamless_member_on_team(db_session):
    club, _, team_b, anatomy, _, admin, _ = await _seed(db_session)
    newcomer = MembershipFactory.create(club_id=club.id)
    db_session.add(newcomer)
    await db_session.commit()
    newcomer_id = newcomer.id

    await create_roster_assignment(
        db_session,
        user_id=admin.user_id,
        membership_id=newcomer_id,
        team_id=team_b.id,
        event_id=anatomy.id,
    )

    membership = await db_session.get(Membership, newcomer_id)
    assert membership.team_id == team_b.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_only_admins_can_assign(db_session):
    _, team_a, _, anatomy, _, _, student = await _seed(db_session)

    with pytest.raises(AccessDenied):
        await create_roster_assignment(
            db_session,
            user_id=student.user_id,
            membership_id=student.id,
            team_id=team_a.id,
            event_id=anatomy.id,
        )
