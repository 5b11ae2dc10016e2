"""Unit tests for the purchase request lifecycle.

Approval with ``add_to_expenses`` must flip the request to COMPLETED and
insert its expense together or not at all.
"""

from decimal import Decimal

import pytest
from libs.common.errors import AccessDenied, ClubOpsError, ConflictError
from services.clubs_service.models import (
    Expense,
    PurchaseRequest,
    PurchaseRequestStatus,
    Role,
)
from services.clubs_service.services import budget as budget_service
from services.clubs_service.services.purchasing import (
    create_purchase_request,
    delete_expense,
    delete_purchase_request,
    get_purchase_request,
    review_purchase_request,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tests.factories import (
    ClubFactory,
    EventBudgetFactory,
    EventFactory,
    ExpenseFactory,
    MembershipFactory,
    PurchaseRequestFactory,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _seed(db, *, amount="25.00", event=False, budget=None):
    club = ClubFactory.create()
    db.add(club)
    await db.flush()
    catalog_event = EventFactory.create() if event else None
    if catalog_event is not None:
        db.add(catalog_event)
    admin = MembershipFactory.create(club_id=club.id, role=Role.ADMIN)
    member = MembershipFactory.create(club_id=club.id)
    db.add_all([admin, member])
    await db.flush()
    if budget is not None:
        db.add(
            EventBudgetFactory.create(
                club_id=club.id,
                event_id=catalog_event.id,
                max_budget=Decimal(budget),
            )
        )
    request = PurchaseRequestFactory.create(
        club_id=club.id,
        requester_id=member.id,
        event_id=catalog_event.id if catalog_event else None,
        estimated_amount=Decimal(amount),
    )
    db.add(request)
    await db.commit()
    return club, admin, member, request


async def _load_request(db, request_id) -> PurchaseRequest:
    result = await db.execute(
        select(PurchaseRequest)
        .where(PurchaseRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _expense_count(db, request_id) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Expense)
        .where(Expense.purchase_request_id == request_id)
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approve_with_expense_completes_request(db_session):
    _, admin, _, request = await _seed(db_session)

    updated, expense = await review_purchase_request(
        db_session,
        user_id=admin.user_id,
        request_id=request.id,
        status=PurchaseRequestStatus.APPROVED,
        add_to_expenses=True,
        actual_amount=Decimal("23.50"),
    )

    assert updated.status == PurchaseRequestStatus.COMPLETED
    assert updated.reviewed_by_id == admin.id
    assert expense.purchase_request_id == request.id
    assert expense.amount == Decimal("23.50")
    assert await _expense_count(db_session, request.id) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_expense_insert_leaves_request_pending(db_session):
    """A rejected expense row rolls back the status change as well."""
    _, admin, _, request = await _seed(db_session)
    request_id, admin_user_id = request.id, admin.user_id

    with pytest.raises(ConflictError):
        await review_purchase_request(
            db_session,
            user_id=admin_user_id,
            request_id=request_id,
            status=PurchaseRequestStatus.APPROVED,
            add_to_expenses=True,
            # violates the non-negative amount constraint at commit
            actual_amount=Decimal("-1"),
        )

    reloaded = await _load_request(db_session, request_id)
    assert reloaded.status == PurchaseRequestStatus.PENDING
    assert reloaded.reviewed_at is None
    assert await _expense_count(db_session, request_id) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approve_without_expense_stays_approved(db_session):
    _, admin, _, request = await _seed(db_session)

    updated, expense = await review_purchase_request(
        db_session,
        user_id=admin.user_id,
        request_id=request.id,
        status=PurchaseRequestStatus.APPROVED,
    )

    assert updated.status == PurchaseRequestStatus.APPROVED
    assert expense is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_completed_request_cannot_be_reviewed_again(db_session):
    _, admin, _, request = await _seed(db_session)
    await review_purchase_request(
        db_session,
        user_id=admin.user_id,
        request_id=request.id,
        status=PurchaseRequestStatus.APPROVED,
        add_to_expenses=True,
    )

    with pytest.raises(ClubOpsError) as exc_info:
        await review_purchase_request(
            db_session,
            user_id=admin.user_id,
            request_id=request.id,
            status=PurchaseRequestStatus.DENIED,
        )

    assert exc_info.value.code == "INVALID_STATUS"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_review_sees_completion_from_another_session(db_session, test_engine):
    """A request completed elsewhere after this session read it stays completed."""
    _, admin, _, request = await _seed(db_session)
    request_id, admin_user_id = request.id, admin.user_id

    cached = await get_purchase_request(db_session, request_id)
    assert cached.status == PurchaseRequestStatus.PENDING

    other_factory = async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with other_factory() as other:
        completed, _ = await review_purchase_request(
            other,
            user_id=admin_user_id,
            request_id=request_id,
            status=PurchaseRequestStatus.APPROVED,
            add_to_expenses=True,
        )
        assert completed.status == PurchaseRequestStatus.COMPLETED

    with pytest.raises(ClubOpsError) as exc_info:
        await review_purchase_request(
            db_session,
            user_id=admin_user_id,
            request_id=request_id,
            status=PurchaseRequestStatus.DENIED,
        )

    assert exc_info.value.code == "INVALID_STATUS"
    reloaded = await _load_request(db_session, request_id)
    assert reloaded.status == PurchaseRequestStatus.COMPLETED
    assert await _expense_count(db_session, request_id) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_members_cannot_review(db_session):
    _, _, member, request = await _seed(db_session)

    with pytest.raises(AccessDenied):
        await review_purchase_request(
            db_session,
            user_id=member.user_id,
            request_id=request.id,
            status=PurchaseRequestStatus.APPROVED,
        )


# ---------------------------------------------------------------------------
# Budget re-check on approval
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approval_rechecks_budget(db_session):
    club, admin, _, request = await _seed(
        db_session, amount="60.00", event=True, budget="100.00"
    )
    db_session.add(
        ExpenseFactory.create(
            club_id=club.id, event_id=request.event_id, amount=Decimal("50")
        )
    )
    await db_session.commit()
    request_id, admin_user_id = request.id, admin.user_id

    with pytest.raises(ClubOpsError) as exc_info:
        await review_purchase_request(
            db_session,
            user_id=admin_user_id,
            request_id=request_id,
            status=PurchaseRequestStatus.APPROVED,
        )
    assert exc_info.value.code == "BUDGET_EXCEEDED"
    assert exc_info.value.message.startswith("Approval exceeds remaining budget")

    updated, _ = await review_purchase_request(
        db_session,
        user_id=admin_user_id,
        request_id=request_id,
        status=PurchaseRequestStatus.APPROVED,
        admin_override=True,
    )
    assert updated.status == PurchaseRequestStatus.APPROVED
    assert updated.admin_override is True


@pytest.mark.asyncio
@pytest.mark.unit
async def test_budget_row_is_locked_for_creation_and_approval(db_session, monkeypatch):
    club, admin, member, request = await _seed(
        db_session, amount="10.00", event=True, budget="100.00"
    )
    club_id, event_id, request_id = club.id, request.event_id, request.id
    admin_user_id, member_user_id = admin.user_id, member.user_id

    locks = []
    resolve = budget_service.resolve_budget

    async def recording_resolve(db, **kwargs):
        locks.append(kwargs.get("for_update", False))
        return await resolve(db, **kwargs)

    monkeypatch.setattr(budget_service, "resolve_budget", recording_resolve)

    await create_purchase_request(
        db_session,
        user_id=member_user_id,
        club_id=club_id,
        event_id=event_id,
        description="Pipettes",
        estimated_amount=Decimal("5.00"),
    )
    await review_purchase_request(
        db_session,
        user_id=admin_user_id,
        request_id=request_id,
        status=PurchaseRequestStatus.APPROVED,
    )

    assert locks == [True, True]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_denial_skips_the_budget(db_session):
    _, admin, _, request = await _seed(
        db_session, amount="500.00", event=True, budget="10.00"
    )

    updated, _ = await review_purchase_request(
        db_session,
        user_id=admin.user_id,
        request_id=request.id,
        status=PurchaseRequestStatus.DENIED,
        review_note="Not this season",
    )

    assert updated.status == PurchaseRequestStatus.DENIED
    assert updated.review_note == "Not this season"


# ---------------------------------------------------------------------------
# Linked deletes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_deleting_completed_request_deletes_its_expense(db_session):
    _, admin, member, request = await _seed(db_session)
    await review_purchase_request(
        db_session,
        user_id=admin.user_id,
        request_id=request.id,
        status=PurchaseRequestStatus.APPROVED,
        add_to_expenses=True,
    )
    request_id = request.id

    await delete_purchase_request(
        db_session, user_id=member.user_id, request_id=request_id
    )

    assert await _expense_count(db_session, request_id) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_deleting_linked_expense_deletes_its_request(db_session):
    _, admin, _, request = await _seed(db_session)
    _, expense = await review_purchase_request(
        db_session,
        user_id=admin.user_id,
        request_id=request.id,
        status=PurchaseRequestStatus.APPROVED,
        add_to_expenses=True,
    )
    request_id = request.id

    await delete_expense(db_session, user_id=admin.user_id, expense_id=expense.id)

    result = await db_session.execute(
        select(PurchaseRequest.id).where(PurchaseRequest.id == request_id)
    )
    assert result.scalar_one_or_none() is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_only_requester_or_admin_can_delete(db_session):
    club, _, _, request = await _seed(db_session)
    bystander = MembershipFactory.create(club_id=club.id)
    db_session.add(bystander)
    await db_session.commit()

    with pytest.raises(AccessDenied):
        await delete_purchase_request(
            db_session, user_id=bystander.user_id, request_id=request.id
        )
