"""Exam models for club tests and tournament (event supervisor) tests.

Club tests (``Test``) belong to a club; tournament tests (``ESTest``) belong
to a tournament. Both share the same columns through mixins so grading and
score release can treat them uniformly.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.clubs_service.models.enums import (
    AttemptStatus,
    QuestionType,
    RegistrationStatus,
    ScoreReleaseMode,
    TestStatus,
    enum_values,
)
from sqlalchemy import JSON, Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

POINTS = Numeric(8, 2)


# ---------------------------------------------------------------------------
# Shared columns
# ---------------------------------------------------------------------------


class ReleaseSettingsMixin:
    """Columns controlling how much of a graded attempt its owner may see."""

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[TestStatus] = mapped_column(
        SAEnum(
            TestStatus,
            name="test_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=TestStatus.DRAFT,
        nullable=False,
    )
    score_release_mode: Mapped[ScoreReleaseMode] = mapped_column(
        SAEnum(
            ScoreReleaseMode,
            name="score_release_mode_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=ScoreReleaseMode.FULL_TEST,
        nullable=False,
    )
    release_scores_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Manual release flag; wins over release_scores_at.
    scores_released: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class QuestionColumnsMixin:
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    type: Mapped[QuestionType] = mapped_column(
        SAEnum(
            QuestionType,
            name="question_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    prompt_md: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[Decimal] = mapped_column(POINTS, nullable=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    correct_numeric_answer: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(18, 6), nullable=True
    )
    numeric_tolerance: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(18, 6), nullable=True
    )


class OptionColumnsMixin:
    label: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class AttemptColumnsMixin:
    status: Mapped[AttemptStatus] = mapped_column(
        SAEnum(
            AttemptStatus,
            name="attempt_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=AttemptStatus.IN_PROGRESS,
        nullable=False,
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    grade_earned: Mapped[Optional[Decimal]] = mapped_column(POINTS, nullable=True)
    proctoring_score: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2), nullable=True
    )
    tab_switch_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class AnswerColumnsMixin:
    answer_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    selected_option_ids: Mapped[Optional[list[str]]] = mapped_column(
        JSON, nullable=True
    )
    numeric_answer: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(18, 6), nullable=True
    )
    points_awarded: Mapped[Optional[Decimal]] = mapped_column(POINTS, nullable=True)
    graded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    grader_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


# ---------------------------------------------------------------------------
# Club tests
# ---------------------------------------------------------------------------


class Test(ReleaseSettingsMixin, Base):
    """A club-internal exam."""

    __tablename__ = "tests"
    __test__ = False  # keep pytest from collecting the model

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    club_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clubs.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("memberships.id", ondelete="SET NULL"),
        nullable=True,
    )


class Question(QuestionColumnsMixin, Base):
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    test_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tests.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )


class QuestionOption(OptionColumnsMixin, Base):
    __tablename__ = "question_options"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("questions.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )


class TestAttempt(AttemptColumnsMixin, Base):
    __tablename__ = "test_attempts"
    __test__ = False

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    test_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tests.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    membership_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("memberships.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )


class AttemptAnswer(AnswerColumnsMixin, Base):
    __tablename__ = "attempt_answers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    attempt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("test_attempts.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "attempt_id", "question_id", name="uq_attempt_answers_attempt_question"
        ),
    )


# ---------------------------------------------------------------------------
# Tournaments and tournament tests
# ---------------------------------------------------------------------------


class Tournament(Base):
    __tablename__ = "tournaments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_by_id: Mapped[str] = mapped_column(String, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class TournamentAdmin(Base):
    __tablename__ = "tournament_admins"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tournament_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tournament_id", "user_id", name="uq_tournament_admins_tournament_user"
        ),
    )


class TournamentRegistration(Base):
    __tablename__ = "tournament_registrations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tournament_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    club_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clubs.id", ondelete="CASCADE"),
        nullable=False,
    )
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[RegistrationStatus] = mapped_column(
        SAEnum(
            RegistrationStatus,
            name="registration_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=RegistrationStatus.PENDING,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class ESTest(ReleaseSettingsMixin, Base):
    """A tournament exam written by an event supervisor."""

    __tablename__ = "es_tests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tournament_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    event_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("events.id", ondelete="SET NULL"),
        nullable=True,
    )


class ESQuestion(QuestionColumnsMixin, Base):
    __tablename__ = "es_questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    test_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("es_tests.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )


class ESQuestionOption(OptionColumnsMixin, Base):
    __tablename__ = "es_question_options"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("es_questions.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )


class ESTestAttempt(AttemptColumnsMixin, Base):
    __tablename__ = "es_test_attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    test_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("es_tests.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    membership_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("memberships.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )


class ESAttemptAnswer(AnswerColumnsMixin, Base):
    __tablename__ = "es_attempt_answers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    attempt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("es_test_attempts.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("es_questions.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "attempt_id",
            "question_id",
            name="uq_es_attempt_answers_attempt_question",
        ),
    )
