"""Event catalog and roster schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from services.clubs_service.models.enums import Division


class EventCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-z0-9-]+$")
    division: Division


class EventResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    division: Division

    model_config = ConfigDict(from_attributes=True)


class RosterAssignmentCreate(BaseModel):
    membership_id: uuid.UUID
    team_id: uuid.UUID
    event_id: uuid.UUID


class RosterAssignmentResponse(BaseModel):
    id: uuid.UUID
    team_id: uuid.UUID
    membership_id: uuid.UUID
    event_id: uuid.UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
