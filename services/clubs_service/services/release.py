"""Score release filtering for exam attempts.

``filter_attempt_by_release_mode`` is a pure function over a plain attempt
view (see ``build_attempt_view``) and a ``ReleaseConfig``. Club tests and
tournament tests share their column layout, so both go through the same view
builder and the same filter; every read path (my-results, admin listings)
calls it with the same inputs and gets the same output.

Attempt view shape::

    {
        "id", "test_id", "membership_id", "status", "started_at",
        "submitted_at", "grade_earned", "proctoring_score", "tab_switch_count",
        "answers": [
            {
                "question_id", "answer_text", "selected_option_ids",
                "numeric_answer", "points_awarded", "graded_at", "grader_note",
                "question": {
                    "id", "order", "type", "prompt_md", "points", "explanation",
                    "correct_numeric_answer", "numeric_tolerance",
                    "options": [{"id", "label", "order", "is_correct"}],
                },
            },
        ],
    }
"""

import copy
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from libs.common.datetime_utils import ensure_utc, utc_now
from services.clubs_service.models import ScoreReleaseMode

SCORE_FIELDS = ("grade_earned", "proctoring_score")
# Answer-key material hidden until release, alongside the scores.
HIDDEN_ANSWER_FIELDS = ("points_awarded", "grader_note")
HIDDEN_QUESTION_FIELDS = ("explanation", "correct_numeric_answer", "numeric_tolerance")


@dataclass(frozen=True)
class ReleaseConfig:
    score_release_mode: ScoreReleaseMode = ScoreReleaseMode.FULL_TEST
    release_scores_at: Optional[datetime] = None
    scores_released: bool = False

    @classmethod
    def from_test(cls, test: Any) -> "ReleaseConfig":
        """Works for any model carrying the release settings columns."""
        return cls(
            score_release_mode=ScoreReleaseMode(test.score_release_mode),
            release_scores_at=ensure_utc(test.release_scores_at),
            scores_released=bool(test.scores_released),
        )


def is_scores_released(config: ReleaseConfig, now: Optional[datetime] = None) -> bool:
    """Manual flag, or the scheduled release time has passed."""
    if config.scores_released:
        return True
    if config.release_scores_at is None:
        return False
    return ensure_utc(now or utc_now()) >= ensure_utc(config.release_scores_at)


def _is_fully_correct(answer: Mapping[str, Any]) -> bool:
    earned = Decimal(str(answer.get("points_awarded") or 0))
    possible = Decimal(str(answer["question"]["points"]))
    return earned >= possible


def hide_question_key(question: dict[str, Any]) -> dict[str, Any]:
    """Blank the explanation and numeric key and drop option correctness, in place."""
    for field in HIDDEN_QUESTION_FIELDS:
        question[field] = None
    for option in question.get("options") or []:
        option.pop("is_correct", None)
    return question


def _hide_answer_key(answer: dict[str, Any]) -> dict[str, Any]:
    for field in HIDDEN_ANSWER_FIELDS:
        answer[field] = None
    if answer.get("question") is not None:
        hide_question_key(answer["question"])
    return answer


def filter_attempt_by_release_mode(
    attempt_data: Mapping[str, Any],
    config: ReleaseConfig,
    is_requester_admin: bool,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Return the part of ``attempt_data`` its requester may see.

    Never mutates the input. Admins get an unfiltered copy. Before release,
    scores and the answer key are blanked. The student's own responses are
    kept only under FULL_TEST; every other mode returns ``answers=None`` until
    release, so an unreleased SCORE_ONLY or NONE attempt does not echo the
    student's answers back even with the key stripped. The pre-release view
    never shows more answers than the released one. After release the mode
    decides:

    - NONE: no scores, no answers
    - SCORE_ONLY: scores, no answers
    - SCORE_WITH_WRONG: scores, answers that did not earn full points
    - FULL_TEST: everything
    """
    data = copy.deepcopy(dict(attempt_data))
    if is_requester_admin:
        return data

    mode = ScoreReleaseMode(config.score_release_mode)
    if not is_scores_released(config, now):
        for field in SCORE_FIELDS:
            data[field] = None
        if mode != ScoreReleaseMode.FULL_TEST:
            data["answers"] = None
        elif data.get("answers") is not None:
            data["answers"] = [_hide_answer_key(a) for a in data["answers"]]
        return data

    if mode == ScoreReleaseMode.NONE:
        for field in SCORE_FIELDS:
            data[field] = None
        data["answers"] = None
    elif mode == ScoreReleaseMode.SCORE_ONLY:
        data["answers"] = None
    elif mode == ScoreReleaseMode.SCORE_WITH_WRONG:
        data["answers"] = [
            a for a in data.get("answers") or [] if not _is_fully_correct(a)
        ]
    return data


# ---------------------------------------------------------------------------
# View builders
# ---------------------------------------------------------------------------


def build_question_view(question: Any, options: Iterable[Any]) -> dict[str, Any]:
    return {
        "id": question.id,
        "order": question.order,
        "type": question.type,
        "prompt_md": question.prompt_md,
        "points": question.points,
        "explanation": question.explanation,
        "correct_numeric_answer": question.correct_numeric_answer,
        "numeric_tolerance": question.numeric_tolerance,
        "options": [
            {
                "id": option.id,
                "label": option.label,
                "order": option.order,
                "is_correct": option.is_correct,
            }
            for option in sorted(options, key=lambda o: o.order)
        ],
    }


def build_attempt_view(
    attempt: Any,
    answers: Iterable[Any],
    questions: Mapping[Any, dict[str, Any]],
) -> dict[str, Any]:
    """Flatten an attempt and its answers into the filterable view.

    ``questions`` maps question id to the output of ``build_question_view``.
    """
    answer_views = []
    for answer in answers:
        question = questions.get(answer.question_id)
        if question is None:
            continue
        answer_views.append(
            {
                "question_id": answer.question_id,
                "answer_text": answer.answer_text,
                "selected_option_ids": list(answer.selected_option_ids or []),
                "numeric_answer": answer.numeric_answer,
                "points_awarded": answer.points_awarded,
                "graded_at": answer.graded_at,
                "grader_note": answer.grader_note,
                "question": copy.deepcopy(question),
            }
        )
    answer_views.sort(key=lambda a: a["question"]["order"])

    return {
        "id": attempt.id,
        "test_id": attempt.test_id,
        "membership_id": attempt.membership_id,
        "status": attempt.status,
        "started_at": attempt.started_at,
        "submitted_at": attempt.submitted_at,
        "grade_earned": attempt.grade_earned,
        "proctoring_score": attempt.proctoring_score,
        "tab_switch_count": attempt.tab_switch_count,
        "answers": answer_views,
    }


def build_release_summary(
    test: Any, config: ReleaseConfig, now: Optional[datetime] = None
) -> dict[str, Any]:
    return {
        "id": test.id,
        "name": test.name,
        "score_release_mode": config.score_release_mode,
        "release_scores_at": config.release_scores_at,
        "scores_released": is_scores_released(config, now),
    }
