"""Club, team and membership request/response schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from services.clubs_service.models.enums import Division, Role, SubRole


class ClubCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    division: Division
    display_name: Optional[str] = Field(None, max_length=200)


class ClubResponse(BaseModel):
    id: uuid.UUID
    name: str
    division: Division
    created_by_id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class TeamResponse(BaseModel):
    id: uuid.UUID
    club_id: uuid.UUID
    name: str
    created_at: datetime
    member_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class MembershipCreate(BaseModel):
    """Admin adds a user (by auth provider id) to the club."""

    user_id: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    display_name: Optional[str] = Field(None, max_length=200)
    team_id: Optional[uuid.UUID] = None
    role: Role = Role.MEMBER
    roles: list[SubRole] = Field(default_factory=list)


class MembershipUpdate(BaseModel):
    """Partial update.

    ``team_id`` explicitly set to null removes the member from their team;
    omitting it leaves the team unchanged.
    """

    team_id: Optional[uuid.UUID] = None
    role: Optional[Role] = None
    roles: Optional[list[SubRole]] = None
    display_name: Optional[str] = Field(None, max_length=200)


class MembershipResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    club_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None
    role: Role
    roles: list[SubRole] = Field(default_factory=list)
    display_name: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClubCreatedResponse(BaseModel):
    club: ClubResponse
    membership: MembershipResponse
