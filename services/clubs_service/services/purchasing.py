"""Purchase request lifecycle and expense bookkeeping.

PENDING -> APPROVED | DENIED -> (approved with add_to_expenses) COMPLETED.
Approval re-runs the budget check inside the same transaction that writes
the status, and the COMPLETED flip shares that transaction with the expense
insert, so a request is never COMPLETED without its expense.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from libs.common.currency import to_money
from libs.common.datetime_utils import utc_now
from libs.common.errors import (
    AccessDenied,
    ClubOpsError,
    ConflictError,
    NotFoundError,
)
from libs.common.logging import get_logger
from services.clubs_service.models import (
    Event,
    Expense,
    PurchaseRequest,
    PurchaseRequestStatus,
    Role,
)
from services.clubs_service.services.access import (
    get_club,
    get_team,
    require_admin,
    require_member,
)
from services.clubs_service.services.budget import check_budget
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def _ensure_event(db: AsyncSession, event_id: Optional[uuid.UUID]) -> None:
    if event_id is not None and await db.get(Event, event_id) is None:
        raise NotFoundError("Event not found")


async def _ensure_team_in_club(
    db: AsyncSession, team_id: Optional[uuid.UUID], club_id: uuid.UUID
) -> None:
    if team_id is None:
        return
    team = await get_team(db, team_id)
    if team.club_id != club_id:
        raise ClubOpsError("Team belongs to a different club", "CLUB_MISMATCH")


async def get_purchase_request(
    db: AsyncSession, request_id: uuid.UUID, *, for_update: bool = False
) -> PurchaseRequest:
    query = select(PurchaseRequest).where(PurchaseRequest.id == request_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    request = (await db.execute(query)).scalar_one_or_none()
    if request is None:
        raise NotFoundError("Purchase request not found")
    return request


# ---------------------------------------------------------------------------
# Purchase requests
# ---------------------------------------------------------------------------


async def create_purchase_request(
    db: AsyncSession,
    *,
    user_id: str,
    club_id: uuid.UUID,
    description: str,
    estimated_amount: Decimal,
    event_id: Optional[uuid.UUID] = None,
    category: Optional[str] = None,
    justification: Optional[str] = None,
    admin_override: bool = False,
) -> PurchaseRequest:
    """File a request against the requester's team scope.

    Requests tied to an event go through the budget pre-check; requests with
    no event have no ceiling to check against.
    """
    await get_club(db, club_id)
    membership = await require_member(db, user_id=user_id, club_id=club_id)
    await _ensure_event(db, event_id)

    override_used = False
    if event_id is not None:
        decision = await check_budget(
            db,
            club_id=club_id,
            event_id=event_id,
            scope_team_id=membership.team_id,
            requested_amount=estimated_amount,
            is_admin=membership.role == Role.ADMIN,
            admin_override=admin_override,
            lock=True,
        )
        if not decision.allowed:
            logger.info(
                "Purchase request by %s rejected (%s): requested=%s remaining=%s",
                membership.id,
                decision.code,
                decision.requested,
                decision.remaining,
            )
            await db.rollback()
            raise decision.to_error()
        override_used = decision.override_used

    request = PurchaseRequest(
        club_id=club_id,
        event_id=event_id,
        team_id=membership.team_id,
        requester_id=membership.id,
        description=description,
        category=category,
        justification=justification,
        estimated_amount=to_money(estimated_amount),
        status=PurchaseRequestStatus.PENDING,
        admin_override=override_used,
    )
    db.add(request)
    await db.commit()
    await db.refresh(request)

    logger.info(
        "Purchase request %s created by %s for %s",
        request.id,
        membership.id,
        request.estimated_amount,
    )
    return request


async def list_purchase_requests(
    db: AsyncSession,
    *,
    user_id: str,
    club_id: uuid.UUID,
    status: Optional[PurchaseRequestStatus] = None,
) -> list[PurchaseRequest]:
    await require_member(db, user_id=user_id, club_id=club_id)
    query = select(PurchaseRequest).where(PurchaseRequest.club_id == club_id)
    if status is not None:
        query = query.where(PurchaseRequest.status == status)
    result = await db.execute(query.order_by(PurchaseRequest.created_at.desc()))
    return list(result.scalars().all())


async def review_purchase_request(
    db: AsyncSession,
    *,
    user_id: str,
    request_id: uuid.UUID,
    status: PurchaseRequestStatus,
    review_note: Optional[str] = None,
    admin_override: bool = False,
    add_to_expenses: bool = False,
    actual_amount: Optional[Decimal] = None,
    expense_date: Optional[datetime] = None,
    expense_category: Optional[str] = None,
    expense_notes: Optional[str] = None,
) -> tuple[PurchaseRequest, Optional[Expense]]:
    """Approve or deny a request, optionally posting it as an expense.

    Everything from the budget re-check to the expense insert commits or
    rolls back together.
    """
    if status not in (PurchaseRequestStatus.APPROVED, PurchaseRequestStatus.DENIED):
        raise ClubOpsError("Reviews must approve or deny", "INVALID_STATUS")

    request = await get_purchase_request(db, request_id)
    reviewer = await require_admin(db, user_id=user_id, club_id=request.club_id)

    try:
        request = await get_purchase_request(db, request_id, for_update=True)
        if request.status == PurchaseRequestStatus.COMPLETED:
            raise ClubOpsError(
                "Completed requests cannot be reviewed again", "INVALID_STATUS"
            )

        approving = status == PurchaseRequestStatus.APPROVED
        amount = to_money(
            actual_amount if actual_amount is not None else request.estimated_amount
        )

        override_used = False
        if approving and request.event_id is not None:
            decision = await check_budget(
                db,
                club_id=request.club_id,
                event_id=request.event_id,
                scope_team_id=request.team_id,
                requested_amount=amount,
                is_admin=True,
                admin_override=admin_override,
                lock=True,
            )
            if not decision.allowed:
                raise decision.to_error(action="Approval")
            override_used = decision.override_used

        request.status = status
        request.review_note = review_note
        request.reviewed_by_id = reviewer.id
        request.reviewed_at = utc_now()
        request.admin_override = override_used

        expense = None
        if approving and add_to_expenses:
            expense = Expense(
                club_id=request.club_id,
                event_id=request.event_id,
                team_id=request.team_id,
                description=request.description,
                category=expense_category or request.category,
                amount=amount,
                date=expense_date or utc_now(),
                notes=expense_notes,
                added_by_id=reviewer.id,
                purchase_request_id=request.id,
            )
            db.add(expense)
            request.status = PurchaseRequestStatus.COMPLETED

        await db.commit()
    except ClubOpsError:
        await db.rollback()
        raise
    except IntegrityError:
        await db.rollback()
        logger.warning("Review of purchase request %s rolled back", request_id)
        raise ConflictError("Purchase request changed while reviewing; please retry")

    await db.refresh(request)
    if expense is not None:
        await db.refresh(expense)

    logger.info(
        "Purchase request %s reviewed by %s: %s%s",
        request.id,
        reviewer.id,
        request.status.value,
        " (budget override)" if override_used else "",
    )
    return request, expense


async def delete_purchase_request(
    db: AsyncSession, *, user_id: str, request_id: uuid.UUID
) -> None:
    """Requester or admin only; a completed request takes its expense with it."""
    request = await get_purchase_request(db, request_id)
    membership = await require_member(db, user_id=user_id, club_id=request.club_id)
    if membership.role != Role.ADMIN and request.requester_id != membership.id:
        raise AccessDenied("Only the requester or an admin can delete this request")

    await db.execute(delete(Expense).where(Expense.purchase_request_id == request.id))
    await db.delete(request)
    await db.commit()
    logger.info("Purchase request %s deleted by %s", request_id, membership.id)


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


async def list_expenses(
    db: AsyncSession,
    *,
    user_id: str,
    club_id: uuid.UUID,
    event_id: Optional[uuid.UUID] = None,
) -> list[Expense]:
    await require_member(db, user_id=user_id, club_id=club_id)
    query = select(Expense).where(Expense.club_id == club_id)
    if event_id is not None:
        query = query.where(Expense.event_id == event_id)
    result = await db.execute(query.order_by(Expense.date.desc()))
    return list(result.scalars().all())


async def create_expense(
    db: AsyncSession,
    *,
    user_id: str,
    club_id: uuid.UUID,
    description: str,
    amount: Decimal,
    event_id: Optional[uuid.UUID] = None,
    team_id: Optional[uuid.UUID] = None,
    category: Optional[str] = None,
    date: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Expense:
    """Admin posts spend directly; budgets are reported against, not enforced."""
    await get_club(db, club_id)
    admin = await require_admin(db, user_id=user_id, club_id=club_id)
    await _ensure_event(db, event_id)
    await _ensure_team_in_club(db, team_id, club_id)

    expense = Expense(
        club_id=club_id,
        event_id=event_id,
        team_id=team_id,
        description=description,
        category=category,
        amount=to_money(amount),
        date=date or utc_now(),
        notes=notes,
        added_by_id=admin.id,
    )
    db.add(expense)
    await db.commit()
    await db.refresh(expense)

    logger.info("Expense %s of %s posted by %s", expense.id, expense.amount, admin.id)
    return expense


async def update_expense(
    db: AsyncSession,
    *,
    user_id: str,
    expense_id: uuid.UUID,
    changes: dict[str, Any],
) -> Expense:
    expense = await db.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError("Expense not found")
    await require_admin(db, user_id=user_id, club_id=expense.club_id)

    if "event_id" in changes:
        await _ensure_event(db, changes["event_id"])
    if "team_id" in changes:
        await _ensure_team_in_club(db, changes["team_id"], expense.club_id)
    if changes.get("amount") is not None:
        changes["amount"] = to_money(changes["amount"])

    for field in ("event_id", "team_id", "category", "notes"):
        if field in changes:
            setattr(expense, field, changes[field])
    # Required columns ignore explicit nulls.
    for field in ("description", "amount", "date"):
        if changes.get(field) is not None:
            setattr(expense, field, changes[field])

    await db.commit()
    await db.refresh(expense)
    logger.info("Expense %s updated", expense_id)
    return expense


async def delete_expense(db: AsyncSession, *, user_id: str, expense_id: uuid.UUID) -> None:
    """Deleting a request-linked expense deletes the request as well."""
    expense = await db.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError("Expense not found")
    await require_admin(db, user_id=user_id, club_id=expense.club_id)

    request_id = expense.purchase_request_id
    await db.delete(expense)
    await db.flush()
    if request_id is not None:
        await db.execute(delete(PurchaseRequest).where(PurchaseRequest.id == request_id))
    await db.commit()
    logger.info(
        "Expense %s deleted%s",
        expense_id,
        f" with purchase request {request_id}" if request_id else "",
    )
