"""Attempt grading.

Objective questions are scored on submit; free-response answers wait for a
grader. ``recompute_attempt`` derives ``grade_earned`` and the attempt status
from the answer rows and is called after every change to them.
"""

from decimal import Decimal
from typing import Any, Iterable, Optional

from libs.common.currency import to_money
from libs.common.datetime_utils import utc_now
from services.clubs_service.models import AttemptStatus, QuestionType


def auto_grade(
    question: Any, options: Iterable[Any], answer: Any
) -> Optional[Decimal]:
    """Points for an objective answer, or None when a grader must decide.

    Multiple choice needs the exact set of correct options. Numeric answers
    score within ``numeric_tolerance`` (exact when unset). A blank
    free-response answer scores zero without a grader.
    """
    qtype = QuestionType(question.type)
    points = Decimal(str(question.points))

    if qtype.is_free_response:
        if answer is None or not (answer.answer_text or "").strip():
            return Decimal("0")
        return None

    if answer is None:
        return Decimal("0")

    if qtype in (QuestionType.MCQ_SINGLE, QuestionType.MCQ_MULTI):
        correct = {str(o.id) for o in options if o.is_correct}
        selected = {str(s) for s in answer.selected_option_ids or []}
        return points if selected and selected == correct else Decimal("0")

    # NUMERIC
    if answer.numeric_answer is None or question.correct_numeric_answer is None:
        return Decimal("0")
    tolerance = Decimal(str(question.numeric_tolerance or 0))
    delta = abs(
        Decimal(str(answer.numeric_answer))
        - Decimal(str(question.correct_numeric_answer))
    )
    return points if delta <= tolerance else Decimal("0")


def apply_points(answer: Any, points: Optional[Decimal], note: Optional[str] = None) -> None:
    """Set or clear (None) an answer's grade."""
    if points is None:
        answer.points_awarded = None
        answer.graded_at = None
    else:
        answer.points_awarded = to_money(points)
        answer.graded_at = utc_now()
    if note is not None:
        answer.grader_note = note


def recompute_attempt(attempt: Any, answers: Iterable[Any]) -> None:
    """Sum graded points; GRADED once every answer has a grade."""
    answers = list(answers)
    attempt.grade_earned = to_money(
        sum(
            (Decimal(str(a.points_awarded)) for a in answers if a.points_awarded is not None),
            Decimal("0"),
        )
    )
    if all(a.points_awarded is not None for a in answers):
        attempt.status = AttemptStatus.GRADED
    else:
        attempt.status = AttemptStatus.SUBMITTED
