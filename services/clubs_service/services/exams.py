"""Club and tournament tests: authoring, attempts, grading and results.

Club tests and tournament (ES) tests are stored in parallel tables with the
same columns. ``TestVariant`` names the five model classes of each family so
one set of functions serves both; only authorization differs:

- club tests are managed by club admins and taken by club members
- tournament tests are managed by tournament admins and taken by members of
  clubs with a CONFIRMED registration for the tournament
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.errors import AccessDenied, ClubOpsError, ConflictError, NotFoundError
from libs.common.logging import get_logger
from services.clubs_service.models import (
    AttemptAnswer,
    AttemptStatus,
    ESAttemptAnswer,
    ESQuestion,
    ESQuestionOption,
    ESTest,
    ESTestAttempt,
    Membership,
    Question,
    QuestionOption,
    QuestionType,
    RegistrationStatus,
    Role,
    Test,
    TestAttempt,
    TestStatus,
    Tournament,
    TournamentAdmin,
    TournamentRegistration,
)
from services.clubs_service.services.access import (
    get_club,
    get_team,
    is_admin,
    require_admin,
    require_member,
)
from services.clubs_service.services.grading import (
    apply_points,
    auto_grade,
    recompute_attempt,
)
from services.clubs_service.services.release import (
    ReleaseConfig,
    build_attempt_view,
    build_question_view,
    build_release_summary,
    filter_attempt_by_release_mode,
    hide_question_key,
)
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class TestVariant:
    __test__ = False

    label: str
    test: type
    question: type
    option: type
    attempt: type
    answer: type


CLUB_TESTS = TestVariant(
    "club", Test, Question, QuestionOption, TestAttempt, AttemptAnswer
)
TOURNAMENT_TESTS = TestVariant(
    "tournament",
    ESTest,
    ESQuestion,
    ESQuestionOption,
    ESTestAttempt,
    ESAttemptAnswer,
)


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------


async def get_tournament(db: AsyncSession, tournament_id: uuid.UUID) -> Tournament:
    tournament = await db.get(Tournament, tournament_id)
    if tournament is None:
        raise NotFoundError("Tournament not found")
    return tournament


async def is_tournament_admin(
    db: AsyncSession, *, user_id: str, tournament_id: uuid.UUID
) -> bool:
    tournament = await get_tournament(db, tournament_id)
    if tournament.created_by_id == user_id:
        return True
    result = await db.execute(
        select(TournamentAdmin.id).where(
            TournamentAdmin.tournament_id == tournament_id,
            TournamentAdmin.user_id == user_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def require_tournament_admin(
    db: AsyncSession, *, user_id: str, tournament_id: uuid.UUID
) -> Tournament:
    if not await is_tournament_admin(db, user_id=user_id, tournament_id=tournament_id):
        raise AccessDenied("Only tournament admins can do this")
    return await get_tournament(db, tournament_id)


def tournament_has_ended(tournament: Tournament, now: Optional[datetime] = None) -> bool:
    return ensure_utc(now or utc_now()) >= ensure_utc(tournament.ends_at)


async def create_tournament(
    db: AsyncSession, *, user_id: str, name: str, ends_at: datetime
) -> Tournament:
    tournament = Tournament(name=name, ends_at=ends_at, created_by_id=user_id)
    db.add(tournament)
    await db.flush()
    db.add(TournamentAdmin(tournament_id=tournament.id, user_id=user_id))
    await db.commit()
    await db.refresh(tournament)
    logger.info("Created tournament %s (%s)", tournament.id, name)
    return tournament


async def register_club(
    db: AsyncSession,
    *,
    user_id: str,
    tournament_id: uuid.UUID,
    club_id: uuid.UUID,
    team_id: Optional[uuid.UUID] = None,
) -> TournamentRegistration:
    """Club admin signs the club (optionally one team) up; starts PENDING."""
    await get_tournament(db, tournament_id)
    await get_club(db, club_id)
    await require_admin(db, user_id=user_id, club_id=club_id)
    if team_id is not None:
        team = await get_team(db, team_id)
        if team.club_id != club_id:
            raise ClubOpsError("Team belongs to a different club", "CLUB_MISMATCH")

    query = select(TournamentRegistration.id).where(
        TournamentRegistration.tournament_id == tournament_id,
        TournamentRegistration.club_id == club_id,
        TournamentRegistration.status != RegistrationStatus.CANCELLED,
    )
    if team_id is not None:
        query = query.where(TournamentRegistration.team_id == team_id)
    if (await db.execute(query)).first() is not None:
        raise ConflictError("Club is already registered for this tournament")

    registration = TournamentRegistration(
        tournament_id=tournament_id, club_id=club_id, team_id=team_id
    )
    db.add(registration)
    await db.commit()
    await db.refresh(registration)
    logger.info("Club %s registered for tournament %s", club_id, tournament_id)
    return registration


async def update_registration(
    db: AsyncSession,
    *,
    user_id: str,
    tournament_id: uuid.UUID,
    registration_id: uuid.UUID,
    status: RegistrationStatus,
) -> TournamentRegistration:
    await require_tournament_admin(db, user_id=user_id, tournament_id=tournament_id)
    registration = await db.get(TournamentRegistration, registration_id)
    if registration is None or registration.tournament_id != tournament_id:
        raise NotFoundError("Registration not found")
    registration.status = status
    await db.commit()
    await db.refresh(registration)
    logger.info("Registration %s is now %s", registration_id, status.value)
    return registration


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


async def get_test(db: AsyncSession, variant: TestVariant, test_id: uuid.UUID) -> Any:
    test = await db.get(variant.test, test_id)
    if test is None:
        raise NotFoundError("Test not found")
    return test


async def is_test_manager(
    db: AsyncSession, variant: TestVariant, test: Any, user_id: str
) -> bool:
    if variant is CLUB_TESTS:
        return await is_admin(db, user_id=user_id, club_id=test.club_id)
    return await is_tournament_admin(
        db, user_id=user_id, tournament_id=test.tournament_id
    )


async def require_test_manager(
    db: AsyncSession, variant: TestVariant, test: Any, user_id: str
) -> None:
    if not await is_test_manager(db, variant, test, user_id):
        raise AccessDenied("Only test managers can do this")


async def resolve_test_taker(
    db: AsyncSession, variant: TestVariant, test: Any, user_id: str
) -> Membership:
    """The membership a user takes this test as."""
    if variant is CLUB_TESTS:
        return await require_member(db, user_id=user_id, club_id=test.club_id)

    result = await db.execute(
        select(Membership)
        .join(
            TournamentRegistration,
            TournamentRegistration.club_id == Membership.club_id,
        )
        .where(
            Membership.user_id == user_id,
            TournamentRegistration.tournament_id == test.tournament_id,
            TournamentRegistration.status == RegistrationStatus.CONFIRMED,
        )
        .order_by(Membership.created_at)
        .limit(1)
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise AccessDenied("Your club is not registered for this tournament")
    return membership


# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------


async def _add_questions(
    db: AsyncSession, variant: TestVariant, test_id: uuid.UUID, questions: list
) -> None:
    for index, item in enumerate(questions):
        question = variant.question(
            test_id=test_id,
            order=index,
            type=item.type,
            prompt_md=item.prompt_md,
            points=item.points,
            explanation=item.explanation,
            correct_numeric_answer=item.correct_numeric_answer,
            numeric_tolerance=item.numeric_tolerance,
        )
        db.add(question)
        await db.flush()
        for option_index, option in enumerate(item.options):
            db.add(
                variant.option(
                    question_id=question.id,
                    label=option.label,
                    is_correct=option.is_correct,
                    order=option_index,
                )
            )


async def create_club_test(
    db: AsyncSession,
    *,
    user_id: str,
    club_id: uuid.UUID,
    name: str,
    questions: list,
    description: Optional[str] = None,
    status: TestStatus = TestStatus.DRAFT,
    score_release_mode=None,
    release_scores_at: Optional[datetime] = None,
) -> Test:
    await get_club(db, club_id)
    author = await require_admin(db, user_id=user_id, club_id=club_id)

    test = Test(
        club_id=club_id,
        name=name,
        description=description,
        status=status,
        release_scores_at=release_scores_at,
        created_by_id=author.id,
    )
    if score_release_mode is not None:
        test.score_release_mode = score_release_mode
    db.add(test)
    await db.flush()
    await _add_questions(db, CLUB_TESTS, test.id, questions)
    await db.commit()
    await db.refresh(test)

    logger.info("Created club test %s with %d questions", test.id, len(questions))
    return test


async def create_es_test(
    db: AsyncSession,
    *,
    user_id: str,
    tournament_id: uuid.UUID,
    name: str,
    questions: list,
    event_id: Optional[uuid.UUID] = None,
    description: Optional[str] = None,
    status: TestStatus = TestStatus.DRAFT,
    score_release_mode=None,
    release_scores_at: Optional[datetime] = None,
) -> ESTest:
    await require_tournament_admin(db, user_id=user_id, tournament_id=tournament_id)

    test = ESTest(
        tournament_id=tournament_id,
        event_id=event_id,
        name=name,
        description=description,
        status=status,
        release_scores_at=release_scores_at,
    )
    if score_release_mode is not None:
        test.score_release_mode = score_release_mode
    db.add(test)
    await db.flush()
    await _add_questions(db, TOURNAMENT_TESTS, test.id, questions)
    await db.commit()
    await db.refresh(test)

    logger.info("Created tournament test %s with %d questions", test.id, len(questions))
    return test


async def _ensure_release_allowed(db: AsyncSession, variant: TestVariant, test: Any) -> None:
    if variant is TOURNAMENT_TESTS:
        tournament = await get_tournament(db, test.tournament_id)
        if not tournament_has_ended(tournament):
            raise ClubOpsError(
                "Scores can only be released after the tournament ends",
                "TOURNAMENT_NOT_ENDED",
            )


async def update_test_settings(
    db: AsyncSession,
    variant: TestVariant,
    *,
    user_id: str,
    test_id: uuid.UUID,
    changes: dict[str, Any],
) -> Any:
    """Apply the fields the client sent. Null ``release_scores_at`` unschedules."""
    test = await get_test(db, variant, test_id)
    await require_test_manager(db, variant, test, user_id)

    if changes.get("scores_released"):
        await _ensure_release_allowed(db, variant, test)

    for field in ("name", "status", "score_release_mode", "scores_released"):
        if changes.get(field) is not None:
            setattr(test, field, changes[field])
    for field in ("description", "release_scores_at"):
        if field in changes:
            setattr(test, field, changes[field])

    await db.commit()
    await db.refresh(test)
    logger.info(
        "Release settings for %s test %s: mode=%s at=%s released=%s",
        variant.label,
        test.id,
        test.score_release_mode.value,
        test.release_scores_at,
        test.scores_released,
    )
    return test


async def release_scores(
    db: AsyncSession, variant: TestVariant, *, user_id: str, test_id: uuid.UUID
) -> Any:
    test = await get_test(db, variant, test_id)
    await require_test_manager(db, variant, test, user_id)
    await _ensure_release_allowed(db, variant, test)

    test.scores_released = True
    await db.commit()
    await db.refresh(test)
    logger.info("Scores released for %s test %s", variant.label, test.id)
    return test


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


async def _load_questions(
    db: AsyncSession, variant: TestVariant, test_id: uuid.UUID
) -> tuple[list[Any], dict[Any, list[Any]]]:
    result = await db.execute(
        select(variant.question)
        .where(variant.question.test_id == test_id)
        .order_by(variant.question.order)
    )
    questions = list(result.scalars().all())
    options: dict[Any, list[Any]] = {q.id: [] for q in questions}
    if questions:
        result = await db.execute(
            select(variant.option)
            .where(variant.option.question_id.in_(options.keys()))
            .order_by(variant.option.order)
        )
        for option in result.scalars().all():
            options[option.question_id].append(option)
    return questions, options


async def _load_answers(
    db: AsyncSession, variant: TestVariant, attempt_id: uuid.UUID
) -> list[Any]:
    result = await db.execute(
        select(variant.answer).where(variant.answer.attempt_id == attempt_id)
    )
    return list(result.scalars().all())


async def _get_attempt(
    db: AsyncSession,
    variant: TestVariant,
    test_id: uuid.UUID,
    attempt_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Any:
    query = select(variant.attempt).where(
        variant.attempt.id == attempt_id, variant.attempt.test_id == test_id
    )
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    attempt = (await db.execute(query)).scalar_one_or_none()
    if attempt is None:
        raise NotFoundError("Attempt not found")
    return attempt


async def _attempt_view(
    db: AsyncSession,
    variant: TestVariant,
    attempt: Any,
    question_views: dict[Any, dict[str, Any]],
) -> dict[str, Any]:
    answers = await _load_answers(db, variant, attempt.id)
    return build_attempt_view(attempt, answers, question_views)


# ---------------------------------------------------------------------------
# Taking a test
# ---------------------------------------------------------------------------


async def start_attempt(
    db: AsyncSession, variant: TestVariant, *, user_id: str, test_id: uuid.UUID
) -> Any:
    """Open an attempt, or return the caller's attempt already in progress."""
    test = await get_test(db, variant, test_id)
    membership = await resolve_test_taker(db, variant, test, user_id)
    if test.status != TestStatus.PUBLISHED:
        raise ClubOpsError("This test is not open", "INVALID_STATUS")

    result = await db.execute(
        select(variant.attempt).where(
            variant.attempt.test_id == test_id,
            variant.attempt.membership_id == membership.id,
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        if existing.status != AttemptStatus.IN_PROGRESS:
            raise ClubOpsError("You have already submitted this test", "ALREADY_SUBMITTED")
        return existing

    attempt = variant.attempt(test_id=test_id, membership_id=membership.id)
    db.add(attempt)
    await db.commit()
    await db.refresh(attempt)
    logger.info(
        "Membership %s started %s test %s", membership.id, variant.label, test_id
    )
    return attempt


async def _owned_open_attempt(
    db: AsyncSession,
    variant: TestVariant,
    *,
    user_id: str,
    test_id: uuid.UUID,
    attempt_id: uuid.UUID,
) -> Any:
    test = await get_test(db, variant, test_id)
    membership = await resolve_test_taker(db, variant, test, user_id)
    attempt = await _get_attempt(db, variant, test_id, attempt_id, for_update=True)
    if attempt.membership_id != membership.id:
        raise AccessDenied("This attempt belongs to someone else")
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise ClubOpsError("This attempt has already been submitted", "INVALID_STATUS")
    return attempt


def _check_answer_shape(question: Any, options: list[Any], answer: Any) -> list[str]:
    selected = [str(s) for s in answer.selected_option_ids or []]
    if not selected:
        return []
    if question.type not in (QuestionType.MCQ_SINGLE, QuestionType.MCQ_MULTI):
        raise ClubOpsError("This question does not take options", "INVALID_OPTION")
    valid = {str(o.id) for o in options}
    if not set(selected) <= valid:
        raise ClubOpsError("Selected option is not part of the question", "INVALID_OPTION")
    if question.type == QuestionType.MCQ_SINGLE and len(set(selected)) > 1:
        raise ClubOpsError("Select one option", "INVALID_OPTION")
    return sorted(set(selected))


async def save_answers(
    db: AsyncSession,
    variant: TestVariant,
    *,
    user_id: str,
    test_id: uuid.UUID,
    attempt_id: uuid.UUID,
    answers: list,
    tab_switch_count: Optional[int] = None,
) -> Any:
    """Upsert the student's responses while the attempt is open."""
    try:
        attempt = await _owned_open_attempt(
            db, variant, user_id=user_id, test_id=test_id, attempt_id=attempt_id
        )
        questions, options = await _load_questions(db, variant, test_id)
        by_id = {q.id: q for q in questions}
        existing = {a.question_id: a for a in await _load_answers(db, variant, attempt.id)}

        for incoming in answers:
            question = by_id.get(incoming.question_id)
            if question is None:
                raise ClubOpsError(
                    "Question is not part of this test", "INVALID_QUESTION"
                )
            selected = _check_answer_shape(question, options[question.id], incoming)
            row = existing.get(question.id)
            if row is None:
                row = variant.answer(attempt_id=attempt.id, question_id=question.id)
                db.add(row)
                existing[question.id] = row
            row.answer_text = incoming.answer_text
            row.selected_option_ids = selected
            row.numeric_answer = incoming.numeric_answer

        if tab_switch_count is not None:
            attempt.tab_switch_count = max(attempt.tab_switch_count, tab_switch_count)

        await db.commit()
    except ClubOpsError:
        await db.rollback()
        raise
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Answers changed while saving; please retry")

    await db.refresh(attempt)
    return attempt


async def submit_attempt(
    db: AsyncSession,
    variant: TestVariant,
    *,
    user_id: str,
    test_id: uuid.UUID,
    attempt_id: uuid.UUID,
) -> Any:
    """Close the attempt and score everything that needs no grader."""
    try:
        attempt = await _owned_open_attempt(
            db, variant, user_id=user_id, test_id=test_id, attempt_id=attempt_id
        )
        questions, options = await _load_questions(db, variant, test_id)
        answers = {a.question_id: a for a in await _load_answers(db, variant, attempt.id)}

        for question in questions:
            answer = answers.get(question.id)
            points = auto_grade(question, options[question.id], answer)
            if answer is None:
                # Unanswered questions get a row so grading covers the whole test.
                answer = variant.answer(attempt_id=attempt.id, question_id=question.id)
                db.add(answer)
                answers[question.id] = answer
            apply_points(answer, points)

        attempt.submitted_at = utc_now()
        recompute_attempt(attempt, answers.values())
        await db.commit()
    except ClubOpsError:
        await db.rollback()
        raise
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Attempt changed while submitting; please retry")

    await db.refresh(attempt)
    logger.info(
        "Attempt %s submitted (%s, %s points so far)",
        attempt.id,
        attempt.status.value,
        attempt.grade_earned,
    )
    return attempt


async def grade_attempt(
    db: AsyncSession,
    variant: TestVariant,
    *,
    user_id: str,
    test_id: uuid.UUID,
    attempt_id: uuid.UUID,
    grades: list,
    proctoring_score: Optional[Decimal] = None,
) -> Any:
    """Set or clear per-answer points, then recompute the attempt's total.

    All grades in the call apply together or not at all.
    """
    test = await get_test(db, variant, test_id)
    await require_test_manager(db, variant, test, user_id)

    try:
        attempt = await _get_attempt(db, variant, test_id, attempt_id, for_update=True)
        if attempt.status == AttemptStatus.IN_PROGRESS:
            raise ClubOpsError("Attempt has not been submitted", "INVALID_STATUS")

        questions, _ = await _load_questions(db, variant, test_id)
        by_id = {q.id: q for q in questions}
        answers = {a.question_id: a for a in await _load_answers(db, variant, attempt.id)}

        for grade in grades:
            question = by_id.get(grade.question_id)
            if question is None:
                raise ClubOpsError(
                    "Question is not part of this test", "INVALID_QUESTION"
                )
            if grade.points_awarded is not None and Decimal(
                str(grade.points_awarded)
            ) > Decimal(str(question.points)):
                raise ClubOpsError(
                    f"Points cannot exceed the question's {question.points} points",
                    "POINTS_EXCEED_MAX",
                )
            answer = answers.get(question.id)
            if answer is None:
                answer = variant.answer(attempt_id=attempt.id, question_id=question.id)
                db.add(answer)
                answers[question.id] = answer
            apply_points(answer, grade.points_awarded, grade.grader_note)

        if proctoring_score is not None:
            attempt.proctoring_score = proctoring_score
        recompute_attempt(attempt, answers.values())
        await db.commit()
    except ClubOpsError:
        await db.rollback()
        raise
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Attempt changed while grading; please retry")

    await db.refresh(attempt)
    logger.info(
        "Graded %s attempt %s: %s (%s)",
        variant.label,
        attempt.id,
        attempt.grade_earned,
        attempt.status.value,
    )
    return attempt


# ---------------------------------------------------------------------------
# Test paper
# ---------------------------------------------------------------------------


async def get_test_paper(
    db: AsyncSession, variant: TestVariant, *, user_id: str, test_id: uuid.UUID
) -> dict[str, Any]:
    """The test and its questions in order.

    Managers see the answer key. Takers only see published tests, with option
    correctness, explanations and numeric keys removed.
    """
    test = await get_test(db, variant, test_id)
    manager = await is_test_manager(db, variant, test, user_id)
    if not manager:
        await resolve_test_taker(db, variant, test, user_id)
        if test.status != TestStatus.PUBLISHED:
            raise AccessDenied("This test is not available")

    questions, options = await _load_questions(db, variant, test_id)
    views = [build_question_view(q, options[q.id]) for q in questions]
    if not manager:
        views = [hide_question_key(view) for view in views]
    return {
        "test": build_release_summary(test, ReleaseConfig.from_test(test)),
        "questions": views,
    }


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


async def my_results(
    db: AsyncSession,
    variant: TestVariant,
    *,
    user_id: str,
    test_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """The caller's submitted attempts, passed through the release filter.

    Club tests return every submitted attempt; tournament tests return the
    latest one.
    """
    test = await get_test(db, variant, test_id)
    membership = await resolve_test_taker(db, variant, test, user_id)
    if variant is CLUB_TESTS:
        requester_is_admin = membership.role == Role.ADMIN
    else:
        requester_is_admin = await is_tournament_admin(
            db, user_id=user_id, tournament_id=test.tournament_id
        )

    query = (
        select(variant.attempt)
        .where(
            variant.attempt.test_id == test_id,
            variant.attempt.membership_id == membership.id,
            variant.attempt.status != AttemptStatus.IN_PROGRESS,
        )
        .order_by(variant.attempt.submitted_at.desc())
    )
    if variant is TOURNAMENT_TESTS:
        query = query.limit(1)
    attempts = list((await db.execute(query)).scalars().all())

    config = ReleaseConfig.from_test(test)
    questions, options = await _load_questions(db, variant, test_id)
    question_views = {q.id: build_question_view(q, options[q.id]) for q in questions}

    views = []
    for attempt in attempts:
        view = await _attempt_view(db, variant, attempt, question_views)
        views.append(
            filter_attempt_by_release_mode(view, config, requester_is_admin, now=now)
        )
    return {"test": build_release_summary(test, config, now), "attempts": views}


async def list_attempts(
    db: AsyncSession, variant: TestVariant, *, user_id: str, test_id: uuid.UUID
) -> list[dict[str, Any]]:
    """Every attempt on the test, for its managers."""
    test = await get_test(db, variant, test_id)
    await require_test_manager(db, variant, test, user_id)

    result = await db.execute(
        select(variant.attempt)
        .where(variant.attempt.test_id == test_id)
        .order_by(variant.attempt.started_at)
    )
    config = ReleaseConfig.from_test(test)
    questions, options = await _load_questions(db, variant, test_id)
    question_views = {q.id: build_question_view(q, options[q.id]) for q in questions}
    return [
        filter_attempt_by_release_mode(
            await _attempt_view(db, variant, attempt, question_views), config, True
        )
        for attempt in result.scalars().all()
    ]
