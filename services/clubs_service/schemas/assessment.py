"""Test, tournament, attempt and grading schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from services.clubs_service.models.enums import (
    AttemptStatus,
    QuestionType,
    RegistrationStatus,
    ScoreReleaseMode,
    TestStatus,
)

# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------


class OptionCreate(BaseModel):
    label: str = Field(..., min_length=1)
    is_correct: bool = False


class QuestionCreate(BaseModel):
    type: QuestionType
    prompt_md: str = Field(..., min_length=1)
    points: Decimal = Field(..., ge=0, max_digits=8, decimal_places=2)
    explanation: Optional[str] = None
    correct_numeric_answer: Optional[Decimal] = None
    numeric_tolerance: Optional[Decimal] = Field(None, ge=0)
    options: list[OptionCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_answer_key(self):
        if self.type in (QuestionType.MCQ_SINGLE, QuestionType.MCQ_MULTI):
            if len(self.options) < 2:
                raise ValueError("multiple choice questions need at least two options")
            correct = sum(1 for option in self.options if option.is_correct)
            if correct == 0:
                raise ValueError("multiple choice questions need a correct option")
            if self.type == QuestionType.MCQ_SINGLE and correct > 1:
                raise ValueError("single choice questions have one correct option")
        elif self.type == QuestionType.NUMERIC and self.correct_numeric_answer is None:
            raise ValueError("numeric questions need correct_numeric_answer")
        return self


class ReleaseSettingsInput(BaseModel):
    score_release_mode: ScoreReleaseMode = ScoreReleaseMode.FULL_TEST
    release_scores_at: Optional[datetime] = None


class TestCreate(ReleaseSettingsInput):
    club_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    status: TestStatus = TestStatus.DRAFT
    questions: list[QuestionCreate] = Field(default_factory=list)


class ESTestCreate(ReleaseSettingsInput):
    tournament_id: uuid.UUID
    event_id: Optional[uuid.UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    status: TestStatus = TestStatus.DRAFT
    questions: list[QuestionCreate] = Field(default_factory=list)


class TestSettingsUpdate(BaseModel):
    """Partial update; an explicit null ``release_scores_at`` clears it."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[TestStatus] = None
    score_release_mode: Optional[ScoreReleaseMode] = None
    release_scores_at: Optional[datetime] = None
    scores_released: Optional[bool] = None


class TestResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    status: TestStatus
    score_release_mode: ScoreReleaseMode
    release_scores_at: Optional[datetime] = None
    scores_released: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClubTestResponse(TestResponse):
    club_id: uuid.UUID


class ESTestResponse(TestResponse):
    tournament_id: uuid.UUID
    event_id: Optional[uuid.UUID] = None


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------


class TournamentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    ends_at: datetime


class TournamentResponse(BaseModel):
    id: uuid.UUID
    name: str
    created_by_id: str
    ends_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RegistrationCreate(BaseModel):
    club_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None


class RegistrationUpdate(BaseModel):
    status: RegistrationStatus


class RegistrationResponse(BaseModel):
    id: uuid.UUID
    tournament_id: uuid.UUID
    club_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None
    status: RegistrationStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Attempts
# ---------------------------------------------------------------------------


class AnswerInput(BaseModel):
    question_id: uuid.UUID
    answer_text: Optional[str] = None
    selected_option_ids: Optional[list[uuid.UUID]] = None
    numeric_answer: Optional[Decimal] = None


class SaveAnswersRequest(BaseModel):
    answers: list[AnswerInput] = Field(default_factory=list)
    tab_switch_count: Optional[int] = Field(None, ge=0)


class AttemptResponse(BaseModel):
    id: uuid.UUID
    test_id: uuid.UUID
    membership_id: uuid.UUID
    status: AttemptStatus
    started_at: datetime
    submitted_at: Optional[datetime] = None
    grade_earned: Optional[Decimal] = None
    tab_switch_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class AnswerGrade(BaseModel):
    question_id: uuid.UUID
    # null clears an existing grade
    points_awarded: Optional[Decimal] = Field(None, ge=0)
    grader_note: Optional[str] = None


class GradeAttemptRequest(BaseModel):
    grades: list[AnswerGrade] = Field(..., min_length=1)
    proctoring_score: Optional[Decimal] = Field(None, ge=0, le=100)


class MyResultsResponse(BaseModel):
    """Attempt views already passed through the score release filter."""

    test: dict[str, Any]
    attempts: list[dict[str, Any]]


class TestPaperResponse(BaseModel):
    """A test with its questions; the answer key is absent for takers."""

    test: dict[str, Any]
    questions: list[dict[str, Any]]
