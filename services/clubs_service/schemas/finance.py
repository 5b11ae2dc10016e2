"""Budget, expense and purchase request schemas.

All amounts are dollars with at most two decimal places.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from services.clubs_service.models.enums import PurchaseRequestStatus

Money = Decimal


class EventBudgetUpsert(BaseModel):
    club_id: uuid.UUID
    event_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None
    max_budget: Money = Field(..., ge=0, max_digits=12, decimal_places=2)


class EventBudgetResponse(BaseModel):
    id: uuid.UUID
    club_id: uuid.UUID
    event_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None
    max_budget: Money
    total_spent: Money
    total_requested: Money
    remaining: Money


class ExpenseCreate(BaseModel):
    club_id: uuid.UUID
    event_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    description: str = Field(..., min_length=1, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    amount: Money = Field(..., ge=0, max_digits=12, decimal_places=2)
    date: Optional[datetime] = None
    notes: Optional[str] = None


class ExpenseUpdate(BaseModel):
    event_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    amount: Optional[Money] = Field(None, ge=0, max_digits=12, decimal_places=2)
    date: Optional[datetime] = None
    notes: Optional[str] = None


class ExpenseResponse(BaseModel):
    id: uuid.UUID
    club_id: uuid.UUID
    event_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    description: str
    category: Optional[str] = None
    amount: Money
    date: datetime
    notes: Optional[str] = None
    added_by_id: Optional[uuid.UUID] = None
    purchase_request_id: Optional[uuid.UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PurchaseRequestCreate(BaseModel):
    club_id: uuid.UUID
    event_id: Optional[uuid.UUID] = None
    description: str = Field(..., min_length=1, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    justification: Optional[str] = None
    estimated_amount: Money = Field(..., ge=0, max_digits=12, decimal_places=2)
    admin_override: bool = False


class PurchaseRequestReview(BaseModel):
    status: PurchaseRequestStatus
    review_note: Optional[str] = None
    admin_override: bool = False
    add_to_expenses: bool = False
    actual_amount: Optional[Money] = Field(
        None, ge=0, max_digits=12, decimal_places=2
    )
    expense_date: Optional[datetime] = None
    expense_category: Optional[str] = Field(None, max_length=100)
    expense_notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def status_must_be_decision(cls, value: PurchaseRequestStatus):
        if value not in (PurchaseRequestStatus.APPROVED, PurchaseRequestStatus.DENIED):
            raise ValueError("status must be APPROVED or DENIED")
        return value


class PurchaseRequestResponse(BaseModel):
    id: uuid.UUID
    club_id: uuid.UUID
    event_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    requester_id: uuid.UUID
    description: str
    category: Optional[str] = None
    justification: Optional[str] = None
    estimated_amount: Money
    status: PurchaseRequestStatus
    admin_override: bool
    review_note: Optional[str] = None
    reviewed_by_id: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReviewResultResponse(BaseModel):
    purchase_request: PurchaseRequestResponse
    expense: Optional[ExpenseResponse] = None
