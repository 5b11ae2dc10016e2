"""Budget enforcement for event spending.

A budget applies to exactly one scope. ``resolve_budget`` picks it once:
the requester's team budget when one exists, otherwise the club-wide
budget. Team and club-wide budgets are separate ceilings; headroom in one
never covers spending against the other.

Only posted expenses count against a ceiling. Pending requests are summed
for display (``total_requested``) but do not reduce ``remaining``.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from libs.common.currency import format_usd, sum_money, to_money
from libs.common.errors import ClubOpsError, NotFoundError
from libs.common.logging import get_logger
from services.clubs_service.models import (
    Event,
    EventBudget,
    Expense,
    Membership,
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
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClubWide:
    """Budget covering every team's spending on the event."""


@dataclass(frozen=True)
class TeamSpecific:
    team_id: uuid.UUID


BudgetScope = Union[ClubWide, TeamSpecific]

CLUB_WIDE = ClubWide()


def scope_of(budget: EventBudget) -> BudgetScope:
    if budget.team_id is None:
        return CLUB_WIDE
    return TeamSpecific(budget.team_id)


def _scope_conditions(model, scope: BudgetScope) -> list:
    if isinstance(scope, TeamSpecific):
        return [model.team_id == scope.team_id]
    return []


@dataclass(frozen=True)
class ResolvedBudget:
    budget: EventBudget
    scope: BudgetScope

    @property
    def max_budget(self) -> Decimal:
        return to_money(self.budget.max_budget)


async def _find_budget(
    db: AsyncSession,
    *,
    club_id: uuid.UUID,
    event_id: uuid.UUID,
    scope: BudgetScope,
    for_update: bool = False,
) -> Optional[EventBudget]:
    if isinstance(scope, TeamSpecific):
        scope_clause = EventBudget.team_id == scope.team_id
    else:
        scope_clause = EventBudget.team_id.is_(None)
    query = select(EventBudget).where(
        EventBudget.club_id == club_id,
        EventBudget.event_id == event_id,
        scope_clause,
    )
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(query)).scalar_one_or_none()


async def resolve_budget(
    db: AsyncSession,
    *,
    club_id: uuid.UUID,
    event_id: uuid.UUID,
    team_id: Optional[uuid.UUID],
    for_update: bool = False,
) -> Optional[ResolvedBudget]:
    """Team budget for ``team_id`` if defined, else the club-wide one, else None.

    With ``for_update`` the chosen budget row stays locked until the caller
    commits, so concurrent checks against one ceiling run one at a time.
    """
    if team_id is not None:
        budget = await _find_budget(
            db,
            club_id=club_id,
            event_id=event_id,
            scope=TeamSpecific(team_id),
            for_update=for_update,
        )
        if budget is not None:
            return ResolvedBudget(budget, TeamSpecific(team_id))
    budget = await _find_budget(
        db, club_id=club_id, event_id=event_id, scope=CLUB_WIDE, for_update=for_update
    )
    if budget is not None:
        return ResolvedBudget(budget, CLUB_WIDE)
    return None


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


async def total_spent(
    db: AsyncSession, *, club_id: uuid.UUID, event_id: uuid.UUID, scope: BudgetScope
) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Expense.amount), 0)).where(
            Expense.club_id == club_id,
            Expense.event_id == event_id,
            *_scope_conditions(Expense, scope),
        )
    )
    return to_money(result.scalar_one())


async def total_requested(
    db: AsyncSession, *, club_id: uuid.UUID, event_id: uuid.UUID, scope: BudgetScope
) -> Decimal:
    """Sum of PENDING request estimates in scope."""
    result = await db.execute(
        select(PurchaseRequest.estimated_amount).where(
            PurchaseRequest.club_id == club_id,
            PurchaseRequest.event_id == event_id,
            PurchaseRequest.status == PurchaseRequestStatus.PENDING,
            *_scope_conditions(PurchaseRequest, scope),
        )
    )
    return sum_money(result.scalars().all())


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetDecision:
    allowed: bool
    code: Optional[str] = None
    remaining: Optional[Decimal] = None
    requested: Optional[Decimal] = None
    scope: Optional[BudgetScope] = None
    # True when an admin went past the ceiling with admin_override.
    override_used: bool = False

    def to_error(self, *, action: str = "Request") -> ClubOpsError:
        if self.code == "NO_BUDGET":
            return ClubOpsError(
                "No budget available for this event. Ask an admin to set up a "
                "budget for your team.",
                "NO_BUDGET",
            )
        return ClubOpsError(
            f"{action} exceeds remaining budget. Remaining: "
            f"{format_usd(self.remaining)}, Requested: {format_usd(self.requested)}.",
            "BUDGET_EXCEEDED",
            extra={"remaining": self.remaining, "requested": self.requested},
        )


async def check_budget(
    db: AsyncSession,
    *,
    club_id: uuid.UUID,
    event_id: uuid.UUID,
    scope_team_id: Optional[uuid.UUID],
    requested_amount: Decimal,
    is_admin: bool,
    admin_override: bool = False,
    lock: bool = False,
) -> BudgetDecision:
    """Decide whether ``requested_amount`` fits under the applicable ceiling.

    Admins are unconstrained when no budget exists, and may exceed one only
    with ``admin_override``.

    ``lock`` holds the budget row until the caller commits.
    """
    requested = to_money(requested_amount)
    resolved = await resolve_budget(
        db, club_id=club_id, event_id=event_id, team_id=scope_team_id, for_update=lock
    )
    if resolved is None:
        if is_admin:
            return BudgetDecision(allowed=True, requested=requested)
        return BudgetDecision(allowed=False, code="NO_BUDGET", requested=requested)

    spent = await total_spent(
        db, club_id=club_id, event_id=event_id, scope=resolved.scope
    )
    remaining = resolved.max_budget - spent

    if requested <= remaining:
        return BudgetDecision(
            allowed=True, remaining=remaining, requested=requested, scope=resolved.scope
        )
    if is_admin and admin_override:
        return BudgetDecision(
            allowed=True,
            remaining=remaining,
            requested=requested,
            scope=resolved.scope,
            override_used=True,
        )
    return BudgetDecision(
        allowed=False,
        code="BUDGET_EXCEEDED",
        remaining=remaining,
        requested=requested,
        scope=resolved.scope,
    )


# ---------------------------------------------------------------------------
# Budget management
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetSummary:
    budget: EventBudget
    total_spent: Decimal
    total_requested: Decimal

    @property
    def remaining(self) -> Decimal:
        return to_money(self.budget.max_budget) - self.total_spent

    def as_dict(self) -> dict:
        return {
            "id": self.budget.id,
            "club_id": self.budget.club_id,
            "event_id": self.budget.event_id,
            "team_id": self.budget.team_id,
            "max_budget": to_money(self.budget.max_budget),
            "total_spent": self.total_spent,
            "total_requested": self.total_requested,
            "remaining": self.remaining,
        }


async def summarize_budget(db: AsyncSession, budget: EventBudget) -> BudgetSummary:
    scope = scope_of(budget)
    return BudgetSummary(
        budget=budget,
        total_spent=await total_spent(
            db, club_id=budget.club_id, event_id=budget.event_id, scope=scope
        ),
        total_requested=await total_requested(
            db, club_id=budget.club_id, event_id=budget.event_id, scope=scope
        ),
    )


async def list_budgets(
    db: AsyncSession, *, user_id: str, club_id: uuid.UUID
) -> list[BudgetSummary]:
    """Admins see every budget; members see club-wide ones plus their team's."""
    membership: Membership = await require_member(db, user_id=user_id, club_id=club_id)

    query = select(EventBudget).where(EventBudget.club_id == club_id)
    if membership.role != Role.ADMIN:
        if membership.team_id is None:
            query = query.where(EventBudget.team_id.is_(None))
        else:
            query = query.where(
                EventBudget.team_id.is_(None)
                | (EventBudget.team_id == membership.team_id)
            )
    result = await db.execute(query.order_by(EventBudget.created_at))
    return [await summarize_budget(db, budget) for budget in result.scalars().all()]


async def upsert_budget(
    db: AsyncSession,
    *,
    user_id: str,
    club_id: uuid.UUID,
    event_id: uuid.UUID,
    team_id: Optional[uuid.UUID],
    max_budget: Decimal,
) -> BudgetSummary:
    """Create or replace the budget for one (club, event, scope)."""
    await get_club(db, club_id)
    await require_admin(db, user_id=user_id, club_id=club_id)
    if await db.get(Event, event_id) is None:
        raise NotFoundError("Event not found")
    if team_id is not None:
        team = await get_team(db, team_id)
        if team.club_id != club_id:
            raise ClubOpsError("Team belongs to a different club", "CLUB_MISMATCH")

    scope: BudgetScope = CLUB_WIDE if team_id is None else TeamSpecific(team_id)
    budget = await _find_budget(db, club_id=club_id, event_id=event_id, scope=scope)
    if budget is None:
        budget = EventBudget(club_id=club_id, event_id=event_id, team_id=team_id)
        db.add(budget)
    budget.max_budget = to_money(max_budget)

    await db.commit()
    await db.refresh(budget)
    logger.info(
        "Budget for club %s event %s (%s) set to %s",
        club_id,
        event_id,
        "club-wide" if team_id is None else f"team {team_id}",
        budget.max_budget,
    )
    return await summarize_budget(db, budget)


async def delete_budget(
    db: AsyncSession, *, user_id: str, budget_id: uuid.UUID
) -> None:
    budget = await db.get(EventBudget, budget_id)
    if budget is None:
        raise NotFoundError("Budget not found")
    await require_admin(db, user_id=user_id, club_id=budget.club_id)
    await db.delete(budget)
    await db.commit()
    logger.info("Deleted budget %s", budget_id)

