"""Tests for the FastAPI endpoints (model callers and embeddings stubbed)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from conftest import RecordingCaller, StubEncoder
from fastapi.testclient import TestClient

from surveyq.agents.chat_assistant import UNAVAILABLE_REPLY
from surveyq.api.app import app
from surveyq.api.dependencies import get_chat_sessions, get_embeddings, get_model_caller_factory
from surveyq.evaluation.embeddings import EmbeddingProvider, set_embedding_provider
from surveyq.utils.structured_output import noop_model_caller

CLEAN_QUESTIONS = {
    "questions": [
        {
            "id": "q1",
            "text": "What is your age group?",
            "type": "multiple_choice",
            "variable": "Age group",
            "variableRole": "control",
            "options": ["18-34", "35-54", "55+"],
        },
        {
            "id": "q2",
            "text": "How satisfied are you with the clinic overall?",
            "type": "likert",
            "variable": "Overall satisfaction",
            "variableRole": "dependent",
            "options": ["1", "2", "3", "4", "5"],
        },
    ]
}

SURVEY_DRAFT = {
    "title": "Clinic Experience",
    "goal": "Measure clinic satisfaction",
    "population": "Adult patients",
    "language": ["English"],
    "maxQuestions": 5,
}


def _unavailable():
    raise RuntimeError("no embeddings in API tests")


@pytest.fixture
def callers():
    """Per-agent model callers; agents without an entry behave as no-credentials."""
    return {}


@pytest.fixture
def client(callers):
    provider = EmbeddingProvider(_unavailable)
    app.dependency_overrides[get_model_caller_factory] = lambda: (
        lambda agent: callers.get(agent, noop_model_caller)
    )
    app.dependency_overrides[get_embeddings] = lambda: provider
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestLifespan:
    def test_startup_loads_embedding_model(self):
        loads = []

        def factory():
            loads.append("model")
            return StubEncoder()

        provider = EmbeddingProvider(factory)
        set_embedding_provider(provider)
        with TestClient(app):
            assert loads == ["model"]
        provider.get()
        assert loads == ["model"]


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["modelCredentials"] is False


class TestEvaluateQuestions:
    def test_mixed_strings_and_questions(self, client):
        response = client.post(
            "/api/evaluate-questions",
            json={
                "topic": "clinic satisfaction",
                "questions": ["How often do you visit?", CLEAN_QUESTIONS["questions"][1]],
            },
        )
        assert response.status_code == 200
        evaluations = response.json()["evaluations"]
        assert len(evaluations) == 2
        assert evaluations[0]["rule_violations"] == ["vague_language"]
        assert evaluations[1]["questionId"] == "q2"
        assert evaluations[1]["llm_scores"] == {
            "clarity": 4,
            "neutrality": 4,
            "answerability": 4,
            "relevance": 4,
        }

    def test_empty_list(self, client):
        response = client.post("/api/evaluate-questions", json={"questions": []})
        assert response.status_code == 200
        assert response.json() == {"evaluations": []}

    def test_unexpected_failure(self, client):
        with patch(
            "surveyq.api.app.evaluate_questions",
            new=AsyncMock(side_effect=RuntimeError("boom")),
        ):
            response = client.post("/api/evaluate-questions", json={"questions": ["Q?"]})
        assert response.status_code == 500
        assert response.json() == {"evaluations": []}


class TestGenerateQuestions:
    def test_no_credentials_returns_fallback_set(self, client):
        response = client.post("/api/generate-questions", json={"surveyDraft": SURVEY_DRAFT})
        assert response.status_code == 200
        body = response.json()
        assert body["fallbackUsed"] is True
        assert body["attemptsMade"] == 1
        assert len(body["questions"]) == 10
        assert len(body["evaluations"]) == 10

    def test_generated_questions_pass(self, client, callers):
        callers["question_writer"] = RecordingCaller(CLEAN_QUESTIONS)
        response = client.post(
            "/api/generate-questions",
            json={
                "surveyDraft": SURVEY_DRAFT,
                "variableModel": {
                    "dependent": ["Overall satisfaction"],
                    "drivers": [],
                    "controls": ["Age group"],
                },
            },
        )
        body = response.json()
        assert response.status_code == 200
        assert body["fallbackUsed"] is False
        assert body["regenerated"] is False
        assert body["attemptsMade"] == 1
        assert [q["id"] for q in body["questions"]] == ["q1", "q2"]
        assert body["questions"][0]["variableRole"] == "control"

    def test_previous_questions_sent_to_writer(self, client, callers):
        writer = RecordingCaller(CLEAN_QUESTIONS)
        callers["question_writer"] = writer
        client.post(
            "/api/generate-questions",
            json={
                "surveyDraft": SURVEY_DRAFT,
                "previousQuestions": [
                    {"id": "q1", "text": "Were you happy with the visit?", "type": "yes_no",
                     "options": ["Yes", "No"]}
                ],
            },
        )
        assert "Were you happy with the visit?" in writer.calls[0][0]

    def test_unexpected_failure_returns_fallback_payload(self, client):
        with patch(
            "surveyq.api.app.run_regeneration_loop",
            new=AsyncMock(side_effect=RuntimeError("boom")),
        ):
            response = client.post("/api/generate-questions", json={"surveyDraft": SURVEY_DRAFT})
        assert response.status_code == 500
        body = response.json()
        assert body["fallbackUsed"] is True
        assert body["evaluations"] is None
        assert len(body["questions"]) == 10


class TestAddQuestions:
    def test_numbered_after_existing(self, client, callers):
        callers["question_writer"] = RecordingCaller(
            {
                "questions": [
                    {"id": "q1", "text": "Would you recommend the clinic?", "type": "yes_no",
                     "options": ["Yes", "No"]}
                ]
            }
        )
        response = client.post(
            "/api/add-questions",
            json={
                "surveyDraft": SURVEY_DRAFT,
                "existingQuestions": CLEAN_QUESTIONS["questions"],
                "count": 1,
            },
        )
        assert response.status_code == 200
        assert [q["id"] for q in response.json()["questions"]] == ["q3"]

    def test_count_validated(self, client):
        response = client.post("/api/add-questions", json={"count": 0})
        assert response.status_code == 422


class TestVariableModel:
    def test_model_proposal(self, client, callers):
        callers["variable_modeler"] = RecordingCaller(
            {"dependent": ["Satisfaction"], "drivers": ["Wait"], "controls": ["Age"]}
        )
        response = client.post("/api/variable-model", json=SURVEY_DRAFT)
        assert response.status_code == 200
        assert response.json() == {
            "dependent": ["Satisfaction"],
            "drivers": ["Wait"],
            "controls": ["Age"],
        }

    def test_no_credentials_fallback(self, client):
        response = client.post("/api/variable-model", json=SURVEY_DRAFT)
        assert response.status_code == 200
        assert "Waiting time" in response.json()["drivers"]


class TestExtractSurveyConfig:
    def test_no_credentials_returns_example(self, client):
        response = client.post("/api/extract-survey-config", json={"content": "A clinic survey"})
        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Healthcare Satisfaction - RAK"
        assert body["maxQuestions"] == 10


class TestChat:
    def test_chat_reply_recorded_in_session(self, client, callers):
        callers["chat_assistant"] = RecordingCaller({"reply": "Try a 5-point scale."})
        response = client.post(
            "/api/chat",
            json={"message": "Which scale?", "sessionId": "abc", "context": {"currentStep": 4}},
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Try a 5-point scale."
        assert response.json()["action"] == "chat"

        history = get_chat_sessions().get("abc").history
        assert history[-2:] == [
            {"role": "user", "content": "Which scale?"},
            {"role": "assistant", "content": "Try a 5-point scale."},
        ]

    def test_session_history_used_when_client_sends_none(self, client, callers):
        chat = RecordingCaller({"reply": "Sure."})
        callers["chat_assistant"] = chat
        client.post("/api/chat", json={"message": "First question", "sessionId": "h1"})
        client.post("/api/chat", json={"message": "Second question", "sessionId": "h1"})
        assert "User: First question\nAssistant: Sure.\nUser: Second question" in chat.calls[1][0]

    def test_no_credentials_reply(self, client):
        response = client.post("/api/chat", json={"message": "Hello"})
        assert response.status_code == 200
        assert response.json()["message"] == UNAVAILABLE_REPLY

    def test_regenerate_action(self, client, callers):
        callers["question_writer"] = RecordingCaller(CLEAN_QUESTIONS)
        response = client.post(
            "/api/chat",
            json={
                "message": "Make the questions shorter.",
                "action": "regenerate_questions",
                "context": {
                    "surveyDraft": SURVEY_DRAFT,
                    "questions": [
                        {"id": "q1", "text": "How would you rate the overall quality of care "
                         "you received during your most recent visit?", "type": "likert",
                         "options": ["1", "2", "3", "4", "5"]}
                    ],
                },
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["action"] == "regenerate_questions"
        assert [q["id"] for q in body["regeneratedQuestions"]] == ["q1", "q2"]
        assert len(body["evaluations"]) == 2

    def test_empty_message_rejected(self, client):
        response = client.post("/api/chat", json={"message": ""})
        assert response.status_code == 422

    def test_unexpected_failure(self, client):
        with patch(
            "surveyq.api.app.chat_reply",
            new=AsyncMock(side_effect=RuntimeError("boom")),
        ):
            response = client.post("/api/chat", json={"message": "Hello"})
        assert response.status_code == 500
        assert response.json() == {"message": UNAVAILABLE_REPLY, "action": "chat"}
