# ============================================================================
# API Endpoint Tests
# ============================================================================
import pytest
from httpx import AsyncClient
from uuid import uuid4


class TestHealthEndpoint:
    """Tests for health check endpoint"""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestQuizEndpoints:
    """Tests for the quiz session flow over HTTP"""

    @pytest.mark.asyncio
    async def test_full_quiz_flow(self, client: AsyncClient, bank):
        module = await bank.module()
        await bank.questions(module)
        student_id = str(uuid4())

        response = await client.post("/api/v1/quiz/start", json={
            "student_id": student_id,
            "module_id": str(module.id),
            "question_count": 3,
        })
        assert response.status_code == 200
        data = response.json()
        assert "correct_answer" not in data["question"]
        session_id = data["session_id"]
        question = data["question"]

        for _ in range(3):
            answer = await client.post(f"/api/v1/quiz/sessions/{session_id}/answer", json={
                "question_id": question["id"],
                "answer": "beta",
                "time_spent": 12,
                "student_id": student_id,
            })
            assert answer.status_code == 200
            assert answer.json()["is_correct"] is True

            step = await client.post(f"/api/v1/quiz/sessions/{session_id}/next", json={"student_id": student_id})
            assert step.status_code == 200
            if step.json()["completed"]:
                break
            question = step.json()["question"]
            assert "correct_answer" not in question

        summary = step.json()["summary"]
        assert summary["score_percentage"] == 100.0
        assert summary["answered_questions"] == 3

        again = await client.post(f"/api/v1/quiz/sessions/{session_id}/complete", json={"student_id": student_id})
        assert again.status_code == 200
        assert again.json()["total_points"] == summary["total_points"]

        review = await client.get(f"/api/v1/quiz/sessions/{session_id}", params={"student_id": student_id})
        assert review.status_code == 200
        assert len(review.json()["answers"]) == 3

        history = await client.get("/api/v1/quiz/history", params={"student_id": student_id})
        assert [h["session_id"] for h in history.json()] == [session_id]

        performance = await client.get(f"/api/v1/performance/{student_id}")
        assert performance.status_code == 200
        assert [t["topic"] for t in performance.json()["strong"]] == ["Linear Equations"]

    @pytest.mark.asyncio
    async def test_empty_module_is_422(self, client: AsyncClient, bank, db_session):
        module = await bank.module()
        await db_session.commit()

        response = await client.post("/api/v1/quiz/start", json={
            "student_id": str(uuid4()),
            "module_id": str(module.id),
        })

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_SCOPE"

    @pytest.mark.asyncio
    async def test_unknown_session_is_404(self, client: AsyncClient):
        response = await client.post(f"/api/v1/quiz/sessions/{uuid4()}/complete", json={})

        assert response.status_code == 404
        assert response.json()["error_code"] == "SESSION_NOT_FOUND"


class TestChallengeEndpoints:
    """Tests for challenge creation and listing"""

    @pytest.mark.asyncio
    async def test_create_and_list(self, client: AsyncClient, bank):
        module = await bank.module()
        await bank.questions(module)
        student_id = str(uuid4())

        response = await client.post("/api/v1/challenges", json={
            "assigned_by": str(uuid4()),
            "assigned_to": student_id,
            "challenge_type": "simple",
            "scope": {"kind": "module", "module_id": str(module.id)},
            "question_count": 10,
            "focus_area": "strengthen",
        })
        assert response.status_code == 201
        created = response.json()
        assert created["focus_area"] == "balanced"
        assert created["focus_fallback"] is True
        assert created["estimated_minutes"] == 10

        pending = await client.get("/api/v1/challenges/pending", params={"student_id": student_id})
        assert [c["id"] for c in pending.json()] == [created["challenge_id"]]

        start = await client.post("/api/v1/quiz/start", json={
            "student_id": student_id,
            "challenge_id": created["challenge_id"],
        })
        assert start.status_code == 200
        assert start.json()["total_questions"] == 10

        second = await client.post("/api/v1/quiz/start", json={
            "student_id": student_id,
            "challenge_id": created["challenge_id"],
        })
        assert second.status_code == 409
        assert second.json()["error_code"] == "CHALLENGE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_estimate_duration(self, client: AsyncClient, bank):
        module = await bank.module()
        await bank.questions(module, {"medium": 4}, time_limit=90)

        response = await client.post("/api/v1/challenges/estimate", json={
            "scope": {"kind": "module", "module_id": str(module.id)},
            "question_count": 15,
        })

        assert response.status_code == 200
        assert response.json() == {"question_count": 15, "estimated_minutes": 23}

    @pytest.mark.asyncio
    async def test_simple_count_out_of_bounds(self, client: AsyncClient, bank):
        module = await bank.module()
        await bank.questions(module)

        response = await client.post("/api/v1/challenges", json={
            "assigned_by": str(uuid4()),
            "assigned_to": str(uuid4()),
            "challenge_type": "simple",
            "scope": {"kind": "module", "module_id": str(module.id)},
            "question_count": 5,
        })

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"
