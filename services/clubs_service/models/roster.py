"""Event catalog and roster assignment models."""

import uuid
from datetime import datetime

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.clubs_service.models.enums import Division, enum_values
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column


class Event(Base):
    """Static catalog entry (e.g. "Anatomy and Physiology", division C)."""

    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    division: Mapped[Division] = mapped_column(
        SAEnum(
            Division,
            name="division_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Event {self.slug} ({self.division})>"


class RosterAssignment(Base):
    """One student competing in one event for one team."""

    __tablename__ = "roster_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    team_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("teams.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    membership_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("memberships.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    # Backstop for concurrent inserts racing past the validator.
    __table_args__ = (
        UniqueConstraint(
            "team_id",
            "membership_id",
            "event_id",
            name="uq_roster_assignments_team_membership_event",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<RosterAssignment team={self.team_id} "
            f"membership={self.membership_id} event={self.event_id}>"
        )
