"""Clubs Service schemas package.

Re-exports all schemas so that:
  - ``from services.clubs_service.schemas import ClubResponse`` works
  - Router files import from one place

IMPORTANT: Every schema class must be listed here.
When adding a new schema, add its import and __all__ entry.
"""

from services.clubs_service.schemas.assessment import (  # noqa: F401
    AnswerGrade,
    AnswerInput,
    AttemptResponse,
    ClubTestResponse,
    ESTestCreate,
    ESTestResponse,
    GradeAttemptRequest,
    MyResultsResponse,
    OptionCreate,
    QuestionCreate,
    RegistrationCreate,
    RegistrationResponse,
    RegistrationUpdate,
    ReleaseSettingsInput,
    SaveAnswersRequest,
    TestCreate,
    TestPaperResponse,
    TestResponse,
    TestSettingsUpdate,
    TournamentCreate,
    TournamentResponse,
)
from services.clubs_service.schemas.club import (  # noqa: F401
    ClubCreate,
    ClubCreatedResponse,
    ClubResponse,
    MembershipCreate,
    MembershipResponse,
    MembershipUpdate,
    TeamCreate,
    TeamResponse,
)
from services.clubs_service.schemas.finance import (  # noqa: F401
    EventBudgetResponse,
    EventBudgetUpsert,
    ExpenseCreate,
    ExpenseResponse,
    ExpenseUpdate,
    PurchaseRequestCreate,
    PurchaseRequestResponse,
    PurchaseRequestReview,
    ReviewResultResponse,
)
from services.clubs_service.schemas.roster import (  # noqa: F401
    EventCreate,
    EventResponse,
    RosterAssignmentCreate,
    RosterAssignmentResponse,
)

__all__ = [
    # Clubs
    "ClubCreate",
    "ClubCreatedResponse",
    "ClubResponse",
    "MembershipCreate",
    "MembershipResponse",
    "MembershipUpdate",
    "TeamCreate",
    "TeamResponse",
    # Roster
    "EventCreate",
    "EventResponse",
    "RosterAssignmentCreate",
    "RosterAssignmentResponse",
    # Finance
    "EventBudgetResponse",
    "EventBudgetUpsert",
    "ExpenseCreate",
    "ExpenseResponse",
    "ExpenseUpdate",
    "PurchaseRequestCreate",
    "PurchaseRequestResponse",
    "PurchaseRequestReview",
    "ReviewResultResponse",
    # Tests
    "AnswerGrade",
    "AnswerInput",
    "AttemptResponse",
    "ClubTestResponse",
    "ESTestCreate",
    "ESTestResponse",
    "GradeAttemptRequest",
    "MyResultsResponse",
    "OptionCreate",
    "QuestionCreate",
    "RegistrationCreate",
    "RegistrationResponse",
    "RegistrationUpdate",
    "ReleaseSettingsInput",
    "SaveAnswersRequest",
    "TestCreate",
    "TestPaperResponse",
    "TestResponse",
    "TestSettingsUpdate",
    "TournamentCreate",
    "TournamentResponse",
]
