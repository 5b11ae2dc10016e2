"""Purchase request endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.rate_limit import write_limit
from libs.db.session import get_async_db
from services.clubs_service.models import PurchaseRequestStatus
from services.clubs_service.schemas import (
    ExpenseResponse,
    PurchaseRequestCreate,
    PurchaseRequestResponse,
    PurchaseRequestReview,
    ReviewResultResponse,
)
from services.clubs_service.services import purchasing
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/purchase-requests", tags=["purchase-requests"])


@router.get("", response_model=list[PurchaseRequestResponse])
async def list_purchase_requests(
    club_id: uuid.UUID = Query(...),
    request_status: Optional[PurchaseRequestStatus] = Query(None, alias="status"),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    requests = await purchasing.list_purchase_requests(
        db, user_id=current_user.user_id, club_id=club_id, status=request_status
    )
    return [PurchaseRequestResponse.model_validate(r) for r in requests]


@router.post(
    "",
    response_model=PurchaseRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
@write_limit
async def create_purchase_request(
    request: Request,
    payload: PurchaseRequestCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """File a request. Event-linked requests must fit the applicable budget.

    400 with ``code`` NO_BUDGET, or BUDGET_EXCEEDED plus ``remaining`` and
    ``requested``.
    """
    purchase_request = await purchasing.create_purchase_request(
        db,
        user_id=current_user.user_id,
        club_id=payload.club_id,
        event_id=payload.event_id,
        description=payload.description,
        category=payload.category,
        justification=payload.justification,
        estimated_amount=payload.estimated_amount,
        admin_override=payload.admin_override,
    )
    return PurchaseRequestResponse.model_validate(purchase_request)


@router.patch("/{request_id}", response_model=ReviewResultResponse)
async def review_purchase_request(
    request_id: uuid.UUID,
    payload: PurchaseRequestReview,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Approve or deny (admins). ``add_to_expenses`` completes it in one step."""
    purchase_request, expense = await purchasing.review_purchase_request(
        db,
        user_id=current_user.user_id,
        request_id=request_id,
        status=payload.status,
        review_note=payload.review_note,
        admin_override=payload.admin_override,
        add_to_expenses=payload.add_to_expenses,
        actual_amount=payload.actual_amount,
        expense_date=payload.expense_date,
        expense_category=payload.expense_category,
        expense_notes=payload.expense_notes,
    )
    return ReviewResultResponse(
        purchase_request=PurchaseRequestResponse.model_validate(purchase_request),
        expense=ExpenseResponse.model_validate(expense) if expense else None,
    )


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_purchase_request(
    request_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await purchasing.delete_purchase_request(
        db, user_id=current_user.user_id, request_id=request_id
    )
