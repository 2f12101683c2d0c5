"""
Tests for the adaptive session endpoints.
"""
from unittest.mock import patch

from adaptive_core.core.error_responses import ErrorMessages
from adaptive_core.core.logging_config import request_id_context
from adaptive_core.middleware import request_logging
from tests.factories import CORRECT_ANSWER, WRONG_ANSWER

SESSIONS = "/v1/sessions"


def _begin(client, blueprint_id="bp-1"):
    response = client.post(SESSIONS, json={"blueprint_id": blueprint_id})
    assert response.status_code == 201, response.text
    return response.json()


def _answer_until_complete(client, session_id):
    """Answer every item correctly; returns the final result payload."""
    while True:
        next_item = client.get(f"{SESSIONS}/{session_id}/next-item").json()
        response = client.post(
            f"{SESSIONS}/{session_id}/answers",
            json={"item_id": next_item["item"]["id"], "answers": CORRECT_ANSWER},
        )
        assert response.status_code == 200, response.text
        if not response.json()["should_continue"]:
            return response.json()["result"]


class TestHealth:
    def test_health(self, client):
        response = client.get("/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestSessionFlow:
    def test_begin_returns_item_without_answer_key(self, client):
        data = _begin(client)
        assert data["session_id"]
        assert set(data["first_item"]) == {"id", "bank_id", "difficulty", "validation_status"}

    def test_full_session(self, client, manager):
        session_id = _begin(client)["session_id"]

        answered = 0
        while True:
            next_item = client.get(f"{SESSIONS}/{session_id}/next-item").json()
            if next_item["status"] == "completed":
                break
            response = client.post(
                f"{SESSIONS}/{session_id}/answers",
                json={
                    "item_id": next_item["item"]["id"],
                    "answers": CORRECT_ANSWER if answered % 2 else WRONG_ANSWER,
                    "time_spent_ms": 2000,
                },
            )
            assert response.status_code == 200, response.text
            answered += 1
            if not response.json()["should_continue"]:
                result = response.json()["result"]
                break

        assert answered == result["questions_asked"]
        assert answered <= 10
        assert result["confidence_interval"]["confidence_level"] == 0.95
        assert [b["bank_id"] for b in result["per_bank"]] == ["math", "verbal"]
        assert manager.active_session_count == 0

        status = client.get(f"{SESSIONS}/{session_id}").json()
        assert status["status"] == "completed"
        assert status["questions_asked"] == answered
        assert sum(status["bank_counts"].values()) == answered

        completed = client.get(f"{SESSIONS}/{session_id}/next-item").json()
        assert completed["status"] == "completed"
        assert completed["result"]["final_score"] == result["final_score"]

    def test_next_item_is_repeatable(self, client):
        session_id = _begin(client)["session_id"]
        first = client.get(f"{SESSIONS}/{session_id}/next-item").json()
        second = client.get(f"{SESSIONS}/{session_id}/next-item").json()
        assert first["item"]["id"] == second["item"]["id"]

    def test_answer_list_accepted(self, client):
        data = _begin(client)
        response = client.post(
            f"{SESSIONS}/{data['session_id']}/answers",
            json={"item_id": data["first_item"]["id"], "answers": [CORRECT_ANSWER]},
        )
        assert response.status_code == 200
        assert response.json()["correct"] is True

    def test_complete_is_idempotent(self, client):
        session_id = _begin(client)["session_id"]
        result = _answer_until_complete(client, session_id)

        first = client.post(f"{SESSIONS}/{session_id}/complete")
        second = client.post(f"{SESSIONS}/{session_id}/complete")
        assert first.status_code == 200
        assert first.json() == result
        assert second.json() == first.json()

    def test_abort(self, client):
        session_id = _begin(client)["session_id"]
        response = client.post(f"{SESSIONS}/{session_id}/abort", json={"reason": "left"})
        assert response.status_code == 200
        assert response.json()["status"] == "aborted"
        assert response.json()["abort_reason"] == "left"

        again = client.post(f"{SESSIONS}/{session_id}/abort", json={})
        assert again.status_code == 404


class TestSessionErrors:
    def test_unknown_blueprint(self, client):
        response = client.post(SESSIONS, json={"blueprint_id": "missing"})
        assert response.status_code == 404
        assert response.json()["detail"] == ErrorMessages.BLUEPRINT_NOT_FOUND

    def test_unknown_session(self, client):
        response = client.get(f"{SESSIONS}/missing/next-item")
        assert response.status_code == 404
        assert response.json()["detail"] == ErrorMessages.SESSION_NOT_FOUND

    def test_complete_before_stopping_rule(self, client):
        data = _begin(client)
        session_id = data["session_id"]

        response = client.post(f"{SESSIONS}/{session_id}/complete")
        assert response.status_code == 409
        assert response.json()["detail"] == ErrorMessages.SESSION_INCOMPLETE

        status = client.get(f"{SESSIONS}/{session_id}").json()
        assert status["status"] == "in_progress"
        assert status["questions_asked"] == 0
        pending = client.get(f"{SESSIONS}/{session_id}/next-item").json()
        assert pending["item"]["id"] == data["first_item"]["id"]

    def test_item_mismatch(self, client):
        session_id = _begin(client)["session_id"]
        response = client.post(
            f"{SESSIONS}/{session_id}/answers",
            json={"item_id": "not-pending", "answers": CORRECT_ANSWER},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == ErrorMessages.ITEM_MISMATCH

    def test_empty_answer_rejected(self, client):
        data = _begin(client)
        response = client.post(
            f"{SESSIONS}/{data['session_id']}/answers",
            json={"item_id": data["first_item"]["id"], "answers": "   "},
        )
        assert response.status_code == 422

    def test_singular_answer_key_rejected(self, client):
        data = _begin(client)
        response = client.post(
            f"{SESSIONS}/{data['session_id']}/answers",
            json={"item_id": data["first_item"]["id"], "answer": CORRECT_ANSWER},
        )
        assert response.status_code == 422

    def test_negative_time_rejected(self, client):
        data = _begin(client)
        response = client.post(
            f"{SESSIONS}/{data['session_id']}/answers",
            json={
                "item_id": data["first_item"]["id"],
                "answers": CORRECT_ANSWER,
                "time_spent_ms": -5,
            },
        )
        assert response.status_code == 422

    def test_busy_session_returns_retry_after(self, client, manager):
        session_id = _begin(client)["session_id"]
        lock = manager._session_locks[session_id]
        lock.acquire()
        try:
            response = client.get(f"{SESSIONS}/{session_id}/next-item")
        finally:
            lock.release()
        assert response.status_code == 409
        assert response.headers["Retry-After"] == "1"

    def test_insufficient_pool(self, client, services):
        services.blueprints.save(
            "huge",
            {
                **services.blueprints.get("bp-1"),
                "id": "huge",
                "bank_allocations": [
                    {"bank_id": "math", "percentage": 50, "min_questions": 5, "max_questions": 10},
                    {"bank_id": "history", "percentage": 50, "min_questions": 5, "max_questions": 10},
                ],
            },
        )
        response = client.post(SESSIONS, json={"blueprint_id": "huge"})
        assert response.status_code == 409
        assert response.json()["detail"] == ErrorMessages.INSUFFICIENT_ITEM_POOL

    def test_answer_after_completion(self, client):
        data = _begin(client)
        _answer_until_complete(client, data["session_id"])
        response = client.post(
            f"{SESSIONS}/{data['session_id']}/answers",
            json={"item_id": data["first_item"]["id"], "answers": CORRECT_ANSWER},
        )
        assert response.status_code == 400


class TestRequestLogging:
    def test_request_id_header(self, client):
        response = client.get("/v1/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_completion_log_carries_request_id(self, client):
        seen = []

        def record(message, *args, **kwargs):
            seen.append((message, request_id_context.get()))

        with patch.object(request_logging.logger, "info", side_effect=record):
            client.get("/v1/health", headers={"X-Request-ID": "req-456"})

        assert seen == [("Incoming request", "req-456"), ("Request completed", "req-456")]
        assert request_id_context.get() is None
