"""Clubs Service models package.

Re-exports all models and enums so that:
  - ``from services.clubs_service.models import Membership`` works
  - Alembic env.py sees every table through one import
  - SQLAlchemy's mapper registry sees every model class on import

IMPORTANT: Every model class AND enum must be listed here.
"""

from services.clubs_service.models.assessment import (  # noqa: F401
    AttemptAnswer,
    ESAttemptAnswer,
    ESQuestion,
    ESQuestionOption,
    ESTest,
    ESTestAttempt,
    Question,
    QuestionOption,
    Test,
    TestAttempt,
    Tournament,
    TournamentAdmin,
    TournamentRegistration,
)
from services.clubs_service.models.club import Club, Membership, Team  # noqa: F401
from services.clubs_service.models.enums import (  # noqa: F401
    AttemptStatus,
    Division,
    PurchaseRequestStatus,
    QuestionType,
    RegistrationStatus,
    Role,
    ScoreReleaseMode,
    SubRole,
    TestStatus,
)
from services.clubs_service.models.finance import (  # noqa: F401
    EventBudget,
    Expense,
    PurchaseRequest,
)
from services.clubs_service.models.roster import Event, RosterAssignment  # noqa: F401

__all__ = [
    # Enums
    "AttemptStatus",
    "Division",
    "PurchaseRequestStatus",
    "QuestionType",
    "RegistrationStatus",
    "Role",
    "ScoreReleaseMode",
    "SubRole",
    "TestStatus",
    # Clubs
    "Club",
    "Team",
    "Membership",
    # Roster
    "Event",
    "RosterAssignment",
    # Finance
    "EventBudget",
    "Expense",
    "PurchaseRequest",
    # Club tests
    "Test",
    "Question",
    "QuestionOption",
    "TestAttempt",
    "AttemptAnswer",
    # Tournament tests
    "Tournament",
    "TournamentAdmin",
    "TournamentRegistration",
    "ESTest",
    "ESQuestion",
    "ESQuestionOption",
    "ESTestAttempt",
    "ESAttemptAnswer",
]
