"""Unit tests for the score release filter.

The filter is a pure function over plain attempt views, so no database is
involved here.
"""

import copy
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from services.clubs_service.models import ScoreReleaseMode
from services.clubs_service.services.release import (
    ReleaseConfig,
    build_attempt_view,
    build_question_view,
    filter_attempt_by_release_mode,
    is_scores_released,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _answer(order, points, awarded, **extra):
    question_id = uuid.uuid4()
    answer = {
        "question_id": question_id,
        "answer_text": f"response {order}",
        "selected_option_ids": [],
        "numeric_answer": None,
        "points_awarded": awarded,
        "graded_at": NOW,
        "grader_note": "see key",
        "question": {
            "id": question_id,
            "order": order,
            "type": "SHORT_TEXT",
            "prompt_md": f"Question {order}",
            "points": points,
            "explanation": "Because anatomy.",
            "correct_numeric_answer": None,
            "numeric_tolerance": None,
            "options": [
                {"id": uuid.uuid4(), "label": "A", "order": 0, "is_correct": True},
                {"id": uuid.uuid4(), "label": "B", "order": 1, "is_correct": False},
            ],
        },
    }
    answer.update(extra)
    return answer


def _attempt():
    return {
        "id": uuid.uuid4(),
        "test_id": uuid.uuid4(),
        "membership_id": uuid.uuid4(),
        "status": "GRADED",
        "started_at": NOW - timedelta(hours=2),
        "submitted_at": NOW - timedelta(hours=1),
        "grade_earned": Decimal("3.00"),
        "proctoring_score": Decimal("95.00"),
        "tab_switch_count": 1,
        "answers": [
            # full marks
            _answer(0, Decimal("2.00"), Decimal("2.00")),
            # partial credit
            _answer(1, Decimal("2.00"), Decimal("1.00")),
            # zero
            _answer(2, Decimal("1.00"), Decimal("0.00")),
        ],
    }


def _config(mode, released=False, at=None):
    return ReleaseConfig(
        score_release_mode=mode, release_scores_at=at, scores_released=released
    )


# ---------------------------------------------------------------------------
# Release state
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_manual_flag_releases_regardless_of_schedule():
    config = _config(
        ScoreReleaseMode.FULL_TEST, released=True, at=NOW + timedelta(days=3)
    )
    assert is_scores_released(config, now=NOW) is True


@pytest.mark.unit
def test_schedule_releases_at_and_after_the_timestamp():
    config = _config(ScoreReleaseMode.FULL_TEST, at=NOW)
    assert is_scores_released(config, now=NOW - timedelta(seconds=1)) is False
    assert is_scores_released(config, now=NOW) is True
    assert is_scores_released(config, now=NOW + timedelta(seconds=1)) is True


@pytest.mark.unit
def test_no_flag_and_no_schedule_is_unreleased():
    assert is_scores_released(_config(ScoreReleaseMode.FULL_TEST), now=NOW) is False


@pytest.mark.unit
def test_config_from_test_treats_naive_timestamps_as_utc():
    test = SimpleNamespace(
        score_release_mode="SCORE_ONLY",
        release_scores_at=datetime(2026, 3, 1, 12, 0),
        scores_released=None,
    )

    config = ReleaseConfig.from_test(test)

    assert config.score_release_mode == ScoreReleaseMode.SCORE_ONLY
    assert config.release_scores_at == NOW
    assert config.scores_released is False


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_admin_sees_everything_before_release():
    attempt = _attempt()

    result = filter_attempt_by_release_mode(
        attempt, _config(ScoreReleaseMode.NONE), True, now=NOW
    )

    assert result == attempt
    assert result is not attempt


@pytest.mark.unit
def test_unreleased_full_test_hides_scores_and_key_but_keeps_responses():
    attempt = _attempt()

    result = filter_attempt_by_release_mode(
        attempt, _config(ScoreReleaseMode.FULL_TEST), False, now=NOW
    )

    assert result["grade_earned"] is None
    assert result["proctoring_score"] is None
    assert len(result["answers"]) == 3
    for answer in result["answers"]:
        assert answer["answer_text"].startswith("response")
        assert answer["points_awarded"] is None
        assert answer["grader_note"] is None
        assert answer["question"]["explanation"] is None
        for option in answer["question"]["options"]:
            assert "is_correct" not in option


@pytest.mark.unit
@pytest.mark.parametrize(
    "mode",
    [
        ScoreReleaseMode.NONE,
        ScoreReleaseMode.SCORE_ONLY,
        ScoreReleaseMode.SCORE_WITH_WRONG,
    ],
)
def test_unreleased_restricted_modes_return_no_answers(mode):
    result = filter_attempt_by_release_mode(_attempt(), _config(mode), False, now=NOW)

    assert result["grade_earned"] is None
    assert result["answers"] is None


@pytest.mark.unit
def test_score_with_wrong_release_timing():
    """Hidden an hour before release, wrong answers only once it passes."""
    release_at = NOW + timedelta(hours=1)
    config = _config(ScoreReleaseMode.SCORE_WITH_WRONG, at=release_at)
    attempt = _attempt()

    before = filter_attempt_by_release_mode(attempt, config, False, now=NOW)
    assert before["grade_earned"] is None
    assert not before["answers"]

    after = filter_attempt_by_release_mode(
        attempt, config, False, now=release_at + timedelta(minutes=1)
    )
    assert after["grade_earned"] == Decimal("3.00")
    assert [a["question"]["order"] for a in after["answers"]] == [1, 2]


@pytest.mark.unit
def test_score_with_wrong_treats_ungraded_answers_as_wrong():
    attempt = _attempt()
    attempt["answers"][0]["points_awarded"] = None

    result = filter_attempt_by_release_mode(
        attempt, _config(ScoreReleaseMode.SCORE_WITH_WRONG, released=True), False
    )

    assert [a["question"]["order"] for a in result["answers"]] == [0, 1, 2]


@pytest.mark.unit
def test_released_none_drops_scores_and_answers():
    result = filter_attempt_by_release_mode(
        _attempt(), _config(ScoreReleaseMode.NONE, released=True), False
    )

    assert result["grade_earned"] is None
    assert result["proctoring_score"] is None
    assert result["answers"] is None


@pytest.mark.unit
def test_released_score_only_keeps_scores_drops_answers():
    result = filter_attempt_by_release_mode(
        _attempt(), _config(ScoreReleaseMode.SCORE_ONLY, released=True), False
    )

    assert result["grade_earned"] == Decimal("3.00")
    assert result["proctoring_score"] == Decimal("95.00")
    assert result["answers"] is None


@pytest.mark.unit
def test_released_full_test_is_a_no_op():
    attempt = _attempt()

    result = filter_attempt_by_release_mode(
        attempt, _config(ScoreReleaseMode.FULL_TEST, released=True), False
    )

    assert result == attempt


@pytest.mark.unit
@pytest.mark.parametrize("mode", list(ScoreReleaseMode))
@pytest.mark.parametrize("released", [True, False])
def test_filter_is_deterministic_and_leaves_input_untouched(mode, released):
    attempt = _attempt()
    snapshot = copy.deepcopy(attempt)
    config = _config(mode, released=released)

    first = filter_attempt_by_release_mode(attempt, config, False, now=NOW)
    second = filter_attempt_by_release_mode(attempt, config, False, now=NOW)

    assert first == second
    assert attempt == snapshot


# ---------------------------------------------------------------------------
# View builders
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_attempt_view_orders_answers_by_question_order():
    questions = [
        SimpleNamespace(
            id=uuid.uuid4(),
            order=order,
            type="NUMERIC",
            prompt_md=f"Q{order}",
            points=Decimal("1.00"),
            explanation=None,
            correct_numeric_answer=Decimal("9.81"),
            numeric_tolerance=Decimal("0.01"),
        )
        for order in (0, 1)
    ]
    views = {q.id: build_question_view(q, []) for q in questions}
    attempt = SimpleNamespace(
        id=uuid.uuid4(),
        test_id=uuid.uuid4(),
        membership_id=uuid.uuid4(),
        status="SUBMITTED",
        started_at=NOW,
        submitted_at=NOW,
        grade_earned=Decimal("1.00"),
        proctoring_score=None,
        tab_switch_count=0,
    )
    answers = [
        SimpleNamespace(
            question_id=q.id,
            answer_text=None,
            selected_option_ids=None,
            numeric_answer=Decimal("9.81"),
            points_awarded=Decimal("1.00"),
            graded_at=NOW,
            grader_note=None,
        )
        for q in reversed(questions)
    ]

    view = build_attempt_view(attempt, answers, views)

    assert [a["question"]["order"] for a in view["answers"]] == [0, 1]
    assert view["answers"][0]["selected_option_ids"] == []
