"""Enums for the Clubs Service models.

Values are the uppercase labels the API exposes.
"""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class Role(str, enum.Enum):
    """Club-level privilege. The only axis used for authorization."""

    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class SubRole(str, enum.Enum):
    """Advisory tags layered on a membership."""

    COACH = "COACH"
    CAPTAIN = "CAPTAIN"
    MEMBER = "MEMBER"


class Division(str, enum.Enum):
    B = "B"
    C = "C"


class PurchaseRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    COMPLETED = "COMPLETED"


class TestStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"


class ScoreReleaseMode(str, enum.Enum):
    NONE = "NONE"
    SCORE_ONLY = "SCORE_ONLY"
    SCORE_WITH_WRONG = "SCORE_WITH_WRONG"
    FULL_TEST = "FULL_TEST"


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    GRADED = "GRADED"


class QuestionType(str, enum.Enum):
    MCQ_SINGLE = "MCQ_SINGLE"
    MCQ_MULTI = "MCQ_MULTI"
    NUMERIC = "NUMERIC"
    SHORT_TEXT = "SHORT_TEXT"
    LONG_TEXT = "LONG_TEXT"

    @property
    def is_free_response(self) -> bool:
        return self in (QuestionType.SHORT_TEXT, QuestionType.LONG_TEXT)


class RegistrationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"
