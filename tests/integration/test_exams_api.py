"""Integration tests for club tests, tournament tests and score release."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from services.clubs_service.app.main import app
from tests.conftest import make_member_user, override_auth

QUESTIONS = [
    {
        "type": "MCQ_SINGLE",
        "prompt_md": "Which chamber pumps blood to the body?",
        "points": "2",
        "explanation": "The left ventricle feeds the aorta.",
        "options": [
            {"label": "Right atrium"},
            {"label": "Left ventricle", "is_correct": True},
        ],
    },
    {
        "type": "NUMERIC",
        "prompt_md": "Resting heart rate in bpm?",
        "points": "1",
        "correct_numeric_answer": "70",
        "numeric_tolerance": "10",
    },
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _club_test(client, *, mode="SCORE_WITH_WRONG"):
    admin, student = make_member_user(), make_member_user()
    with override_auth(app, admin):
        club_id = (
            await client.post("/api/clubs", json={"name": "Hillcrest", "division": "B"})
        ).json()["club"]["id"]
        await client.post(
            f"/api/clubs/{club_id}/memberships", json={"user_id": student.user_id}
        )
        response = await client.post(
            "/api/tests",
            json={
                "club_id": club_id,
                "name": "Heart Quiz",
                "status": "PUBLISHED",
                "score_release_mode": mode,
                "questions": QUESTIONS,
            },
        )
    assert response.status_code == 201
    return response.json()["id"], admin, student


async def _take(client, prefix, test_id, student, *, pick_correct, heart_rate):
    """Start, answer and submit as ``student``; returns the attempt id."""
    with override_auth(app, student):
        paper = (await client.get(f"{prefix}/{test_id}")).json()
        mcq, numeric = paper["questions"]
        choice = mcq["options"][1 if pick_correct else 0]["id"]

        attempt_id = (await client.post(f"{prefix}/{test_id}/attempts/start")).json()[
            "id"
        ]
        saved = await client.put(
            f"{prefix}/{test_id}/attempts/{attempt_id}/answers",
            json={
                "answers": [
                    {"question_id": mcq["id"], "selected_option_ids": [choice]},
                    {"question_id": numeric["id"], "numeric_answer": heart_rate},
                ],
                "tab_switch_count": 1,
            },
        )
        assert saved.status_code == 200
        submitted = await client.post(
            f"{prefix}/{test_id}/attempts/{attempt_id}/submit"
        )

    assert submitted.status_code == 200
    # every question is objective, so submission grades the whole attempt
    assert submitted.json()["status"] == "GRADED"
    assert submitted.json()["grade_earned"] is None
    return attempt_id


# ---------------------------------------------------------------------------
# Club tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_takers_never_see_the_answer_key(client):
    test_id, admin, student = await _club_test(client)

    with override_auth(app, student):
        as_student = (await client.get(f"/api/tests/{test_id}")).json()
    with override_auth(app, admin):
        as_admin = (await client.get(f"/api/tests/{test_id}")).json()

    student_mcq = as_student["questions"][0]
    assert student_mcq["explanation"] is None
    assert all("is_correct" not in o for o in student_mcq["options"])
    assert as_student["questions"][1]["correct_numeric_answer"] is None
    assert [o["is_correct"] for o in as_admin["questions"][0]["options"]] == [
        False,
        True,
    ]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_mcq_without_a_correct_option_is_invalid(client):
    admin = make_member_user()
    with override_auth(app, admin):
        club_id = (
            await client.post("/api/clubs", json={"name": "Lakeside", "division": "C"})
        ).json()["club"]["id"]
        response = await client.post(
            "/api/tests",
            json={
                "club_id": club_id,
                "name": "Broken",
                "questions": [
                    {
                        "type": "MCQ_SINGLE",
                        "prompt_md": "?",
                        "points": "1",
                        "options": [{"label": "a"}, {"label": "b"}],
                    }
                ],
            },
        )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_score_with_wrong_hides_everything_until_release(client):
    test_id, admin, student = await _club_test(client)
    await _take(client, "/api/tests", test_id, student, pick_correct=True, heart_rate=95)

    with override_auth(app, student):
        before = (await client.get(f"/api/tests/{test_id}/my-results")).json()
    assert before["test"]["scores_released"] is False
    (attempt,) = before["attempts"]
    assert attempt["grade_earned"] is None
    assert attempt["answers"] is None

    with override_auth(app, admin):
        released = await client.patch(
            f"/api/tests/{test_id}", json={"scores_released": True}
        )
    assert released.status_code == 200

    with override_auth(app, student):
        after = (await client.get(f"/api/tests/{test_id}/my-results")).json()
    (attempt,) = after["attempts"]
    assert Decimal(str(attempt["grade_earned"])) == Decimal("2")
    assert [a["question"]["type"] for a in attempt["answers"]] == ["NUMERIC"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_manual_grade_updates_the_total(client):
    test_id, admin, student = await _club_test(client, mode="FULL_TEST")
    attempt_id = await _take(
        client, "/api/tests", test_id, student, pick_correct=False, heart_rate=72
    )

    with override_auth(app, admin):
        paper = (await client.get(f"/api/tests/{test_id}")).json()
        response = await client.patch(
            f"/api/tests/{test_id}/attempts/{attempt_id}/grade",
            json={
                "grades": [
                    {
                        "question_id": paper["questions"][0]["id"],
                        "points_awarded": "1",
                        "grader_note": "Half credit for reasoning",
                    }
                ]
            },
        )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "GRADED"
    assert Decimal(body["grade_earned"]) == Decimal("2")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_students_cannot_list_every_attempt(client):
    test_id, _, student = await _club_test(client)

    with override_auth(app, student):
        response = await client.get(f"/api/tests/{test_id}/attempts")

    assert response.status_code == 403
    assert response.json()["code"] == "UNAUTHORIZED"


# ---------------------------------------------------------------------------
# Tournament tests
# ---------------------------------------------------------------------------


async def _tournament_test(client, *, ends_at):
    director, club_admin, competitor = (
        make_member_user(),
        make_member_user(),
        make_member_user(),
    )
    with override_auth(app, director):
        tournament_id = (
            await client.post(
                "/api/tournaments",
                json={"name": "Regionals", "ends_at": ends_at.isoformat()},
            )
        ).json()["id"]
        response = await client.post(
            "/api/es/tests",
            json={
                "tournament_id": tournament_id,
                "name": "Circulatory Systems",
                "status": "PUBLISHED",
                "score_release_mode": "FULL_TEST",
                "questions": QUESTIONS,
            },
        )
    assert response.status_code == 201
    test_id = response.json()["id"]

    with override_auth(app, club_admin):
        club_id = (
            await client.post("/api/clubs", json={"name": "Ridge", "division": "B"})
        ).json()["club"]["id"]
        await client.post(
            f"/api/clubs/{club_id}/memberships", json={"user_id": competitor.user_id}
        )
        registration = (
            await client.post(
                f"/api/tournaments/{tournament_id}/registrations",
                json={"club_id": club_id},
            )
        ).json()
    assert registration["status"] == "PENDING"

    return tournament_id, test_id, registration["id"], director, competitor


@pytest.mark.asyncio
@pytest.mark.integration
async def test_pending_registration_cannot_take_the_test(client):
    _, test_id, _, _, competitor = await _tournament_test(
        client, ends_at=datetime.now(timezone.utc) + timedelta(days=1)
    )

    with override_auth(app, competitor):
        response = await client.post(f"/api/es/tests/{test_id}/attempts/start")

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_tournament_results_follow_release(client):
    tournament_id, test_id, registration_id, director, competitor = (
        await _tournament_test(
            client, ends_at=datetime.now(timezone.utc) + timedelta(days=1)
        )
    )
    with override_auth(app, director):
        confirmed = await client.patch(
            f"/api/tournaments/{tournament_id}/registrations/{registration_id}",
            json={"status": "CONFIRMED"},
        )
    assert confirmed.json()["status"] == "CONFIRMED"

    await _take(
        client, "/api/es/tests", test_id, competitor, pick_correct=True, heart_rate=70
    )

    with override_auth(app, competitor):
        results = (await client.get(f"/api/es/tests/{test_id}/my-results")).json()
    (attempt,) = results["attempts"]
    assert attempt["grade_earned"] is None
    assert len(attempt["answers"]) == 2

    with override_auth(app, director):
        early = await client.post(f"/api/es/tests/{test_id}/release-scores")
    assert early.status_code == 400
    assert early.json()["code"] == "TOURNAMENT_NOT_ENDED"
