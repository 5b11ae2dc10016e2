"""Club test and tournament (ES) test endpoints.

Both families expose the same attempt, grading and results routes;
``add_attempt_routes`` registers them on each router against its variant.
"""

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.rate_limit import write_limit
from libs.db.session import get_async_db
from services.clubs_service.schemas import (
    AttemptResponse,
    ClubTestResponse,
    ESTestCreate,
    ESTestResponse,
    GradeAttemptRequest,
    MyResultsResponse,
    SaveAnswersRequest,
    TestCreate,
    TestPaperResponse,
    TestSettingsUpdate,
)
from services.clubs_service.services import exams
from services.clubs_service.services.exams import CLUB_TESTS, TOURNAMENT_TESTS, TestVariant
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/tests", tags=["tests"])
es_router = APIRouter(prefix="/api/es/tests", tags=["es-tests"])


def add_attempt_routes(target: APIRouter, variant: TestVariant, response_model) -> None:
    @target.get("/{test_id}", response_model=TestPaperResponse)
    async def get_test_paper(
        test_id: uuid.UUID,
        current_user: AuthUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
    ):
        """Questions for taking or managing the test."""
        return await exams.get_test_paper(
            db, variant, user_id=current_user.user_id, test_id=test_id
        )

    @target.patch("/{test_id}", response_model=response_model)
    async def update_test_settings(
        test_id: uuid.UUID,
        payload: TestSettingsUpdate,
        current_user: AuthUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
    ):
        """Update name, status or score release settings (managers only)."""
        test = await exams.update_test_settings(
            db,
            variant,
            user_id=current_user.user_id,
            test_id=test_id,
            changes=payload.model_dump(exclude_unset=True),
        )
        return response_model.model_validate(test)

    @target.post("/{test_id}/attempts/start", response_model=AttemptResponse)
    async def start_attempt(
        test_id: uuid.UUID,
        current_user: AuthUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
    ):
        attempt = await exams.start_attempt(
            db, variant, user_id=current_user.user_id, test_id=test_id
        )
        return AttemptResponse.model_validate(attempt)

    @target.put(
        "/{test_id}/attempts/{attempt_id}/answers", response_model=AttemptResponse
    )
    async def save_answers(
        test_id: uuid.UUID,
        attempt_id: uuid.UUID,
        payload: SaveAnswersRequest,
        current_user: AuthUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
    ):
        attempt = await exams.save_answers(
            db,
            variant,
            user_id=current_user.user_id,
            test_id=test_id,
            attempt_id=attempt_id,
            answers=payload.answers,
            tab_switch_count=payload.tab_switch_count,
        )
        return AttemptResponse.model_validate(attempt)

    async def submit_attempt(
        request: Request,
        test_id: uuid.UUID,
        attempt_id: uuid.UUID,
        current_user: AuthUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
    ):
        """Submit and auto-grade objective questions.

        Scores are not echoed back; they are only visible through my-results.
        """
        attempt = await exams.submit_attempt(
            db,
            variant,
            user_id=current_user.user_id,
            test_id=test_id,
            attempt_id=attempt_id,
        )
        return AttemptResponse.model_validate(attempt).model_copy(
            update={"grade_earned": None}
        )

    # Each family gets its own rate limit bucket.
    submit_attempt.__name__ = f"submit_{variant.label}_attempt"
    target.post(
        "/{test_id}/attempts/{attempt_id}/submit", response_model=AttemptResponse
    )(write_limit(submit_attempt))

    @target.patch(
        "/{test_id}/attempts/{attempt_id}/grade", response_model=AttemptResponse
    )
    async def grade_attempt(
        test_id: uuid.UUID,
        attempt_id: uuid.UUID,
        payload: GradeAttemptRequest,
        current_user: AuthUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
    ):
        """Set (or clear with null) points per answer and recompute the total."""
        attempt = await exams.grade_attempt(
            db,
            variant,
            user_id=current_user.user_id,
            test_id=test_id,
            attempt_id=attempt_id,
            grades=payload.grades,
            proctoring_score=payload.proctoring_score,
        )
        return AttemptResponse.model_validate(attempt)

    @target.get("/{test_id}/attempts")
    async def list_attempts(
        test_id: uuid.UUID,
        current_user: AuthUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
    ) -> list[dict[str, Any]]:
        return await exams.list_attempts(
            db, variant, user_id=current_user.user_id, test_id=test_id
        )

    @target.get("/{test_id}/my-results", response_model=MyResultsResponse)
    async def my_results(
        test_id: uuid.UUID,
        current_user: AuthUser = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
    ):
        """The caller's attempts, limited by the test's score release mode."""
        return await exams.my_results(
            db, variant, user_id=current_user.user_id, test_id=test_id
        )


# ---------------------------------------------------------------------------
# Club tests
# ---------------------------------------------------------------------------


@router.post("", response_model=ClubTestResponse, status_code=status.HTTP_201_CREATED)
async def create_test(
    payload: TestCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    test = await exams.create_club_test(
        db,
        user_id=current_user.user_id,
        club_id=payload.club_id,
        name=payload.name,
        description=payload.description,
        status=payload.status,
        score_release_mode=payload.score_release_mode,
        release_scores_at=payload.release_scores_at,
        questions=payload.questions,
    )
    return ClubTestResponse.model_validate(test)


add_attempt_routes(router, CLUB_TESTS, ClubTestResponse)


# ---------------------------------------------------------------------------
# Tournament tests
# ---------------------------------------------------------------------------


@es_router.post("", response_model=ESTestResponse, status_code=status.HTTP_201_CREATED)
async def create_es_test(
    payload: ESTestCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    test = await exams.create_es_test(
        db,
        user_id=current_user.user_id,
        tournament_id=payload.tournament_id,
        event_id=payload.event_id,
        name=payload.name,
        description=payload.description,
        status=payload.status,
        score_release_mode=payload.score_release_mode,
        release_scores_at=payload.release_scores_at,
        questions=payload.questions,
    )
    return ESTestResponse.model_validate(test)


@es_router.post("/{test_id}/release-scores", response_model=ESTestResponse)
async def release_es_scores(
    test_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Release scores by hand once the tournament is over."""
    test = await exams.release_scores(
        db, TOURNAMENT_TESTS, user_id=current_user.user_id, test_id=test_id
    )
    return ESTestResponse.model_validate(test)


add_attempt_routes(es_router, TOURNAMENT_TESTS, ESTestResponse)
