"""Tests for the variable modeler, survey config extractor and chat assistant."""

from __future__ import annotations

import pytest
from conftest import RecordingCaller, make_question

from surveyq.agents.chat_assistant import (
    UNAVAILABLE_REPLY,
    build_chat_system_prompt,
    build_regeneration_request,
    chat_reply,
    regenerate_from_feedback,
    regeneration_reply,
)
from surveyq.agents.question_writer import GenerationOutcome
from surveyq.agents.survey_config_extractor import (
    DEFAULT_MAX_QUESTIONS,
    coerce_survey_config,
    extract_survey_config,
)
from surveyq.agents.variable_modeler import generate_variable_model, parse_variable_model
from surveyq.prompts.templates import CHAT_REGENERATION_WITHOUT_ISSUES
from surveyq.schemas.evaluation import EvaluationRecord, LLMScores, RegenerationResult
from surveyq.schemas.presets import FALLBACK_VARIABLE_MODEL, HEALTHCARE_EXAMPLE_SURVEY
from surveyq.schemas.questions import SurveyConfig, VariableModel

SURVEY = SurveyConfig(title="Clinic Experience", goal="Measure clinic satisfaction")


# ===========================================================================
# Variable Modeler
# ===========================================================================


class TestVariableModeler:
    def test_parse_valid(self):
        model = parse_variable_model(
            {"dependent": ["Satisfaction"], "drivers": ["Wait", ""], "controls": ["Age"]}
        )
        assert model == VariableModel(dependent=["Satisfaction"], drivers=["Wait"], controls=["Age"])

    def test_parse_rejects_non_list_container(self):
        assert parse_variable_model({"dependent": "Satisfaction", "drivers": [], "controls": []}) is None
        assert parse_variable_model({"dependent": []}) is None
        assert parse_variable_model([]) is None

    @pytest.mark.asyncio
    async def test_model_proposal(self):
        caller = RecordingCaller({"dependent": ["Trust"], "drivers": ["Transparency"], "controls": []})
        model = await generate_variable_model(SURVEY, call_model=caller)
        assert model.dependent == ["Trust"]
        assert "Clinic Experience" in caller.calls[0][0]

    @pytest.mark.asyncio
    async def test_malformed_output_uses_fallback(self):
        model = await generate_variable_model(SURVEY, call_model=RecordingCaller({"dependent": 3}))
        assert model == FALLBACK_VARIABLE_MODEL
        assert model is not FALLBACK_VARIABLE_MODEL

    @pytest.mark.asyncio
    async def test_call_failure_uses_fallback(self):
        caller = RecordingCaller(error=RuntimeError("provider down"))
        assert await generate_variable_model(SURVEY, call_model=caller) == FALLBACK_VARIABLE_MODEL

    @pytest.mark.asyncio
    async def test_no_credentials_uses_fallback(self):
        assert await generate_variable_model(SURVEY) == FALLBACK_VARIABLE_MODEL


# ===========================================================================
# Survey Config Extractor
# ===========================================================================


class TestSurveyConfigExtractor:
    def test_wrong_types_become_empty(self):
        survey = coerce_survey_config(
            {"title": 42, "goal": "Measure trust", "language": "English", "maxQuestions": "12"}
        )
        assert survey.title == ""
        assert survey.goal == "Measure trust"
        assert survey.language == []
        assert survey.max_questions == DEFAULT_MAX_QUESTIONS

    def test_max_questions_clamped(self):
        assert coerce_survey_config({"maxQuestions": 80}).max_questions == 50
        assert coerce_survey_config({"maxQuestions": 0}).max_questions == 1
        assert coerce_survey_config({"maxQuestions": True}).max_questions == DEFAULT_MAX_QUESTIONS
        assert coerce_survey_config({"maxQuestions": float("nan")}).max_questions == DEFAULT_MAX_QUESTIONS

    def test_non_dict_gives_defaults(self):
        survey = coerce_survey_config("a survey about clinics")
        assert survey.title == ""
        assert survey.max_questions == DEFAULT_MAX_QUESTIONS

    @pytest.mark.asyncio
    async def test_extraction(self):
        caller = RecordingCaller(
            {
                "title": "Library Use",
                "goal": "Understand library usage",
                "population": "Students",
                "language": ["English"],
                "maxQuestions": 8,
            }
        )
        survey = await extract_survey_config("We want to survey students about the library.", call_model=caller)
        assert survey.title == "Library Use"
        assert survey.max_questions == 8
        assert "survey students about the library" in caller.calls[0][0]

    @pytest.mark.asyncio
    async def test_no_credentials_returns_example_survey(self):
        survey = await extract_survey_config("anything")
        assert survey.title == HEALTHCARE_EXAMPLE_SURVEY.title
        assert survey.max_questions == HEALTHCARE_EXAMPLE_SURVEY.max_questions


# ===========================================================================
# Chat Assistant
# ===========================================================================


class TestChatAssistant:
    def test_system_prompt_defaults(self):
        prompt = build_chat_system_prompt(None, None, current_step=3)
        assert "Untitled Survey" in prompt
        assert "Not specified" in prompt

    def test_system_prompt_context(self):
        prompt = build_chat_system_prompt(
            SURVEY, VariableModel(drivers=["Waiting time", "Cost"]), current_step=4
        )
        assert "Clinic Experience" in prompt
        assert "Waiting time, Cost" in prompt

    @pytest.mark.asyncio
    async def test_reply_with_history(self):
        caller = RecordingCaller({"reply": "Use a 5-point scale."})
        reply = await chat_reply(
            "Which scale should I use?",
            history=[
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello! How can I help?"},
            ],
            survey=SURVEY,
            call_model=caller,
        )
        assert reply == "Use a 5-point scale."
        prompt = caller.calls[0][0]
        assert "User: Hi\nAssistant: Hello! How can I help?\nUser: Which scale should I use?" in prompt

    @pytest.mark.asyncio
    async def test_unavailable_model(self):
        assert await chat_reply("Hello", call_model=RecordingCaller()) == UNAVAILABLE_REPLY
        failing = RecordingCaller(error=RuntimeError("down"))
        assert await chat_reply("Hello", call_model=failing) == UNAVAILABLE_REPLY
        assert await chat_reply("Hello", call_model=RecordingCaller({"reply": "  "})) == UNAVAILABLE_REPLY

    def test_regeneration_request_lists_issues(self):
        evaluations = [
            EvaluationRecord(question="Rate it", question_id="q1"),
            EvaluationRecord(
                question="How often do you visit?",
                question_id="q2",
                rule_violations=["vague_language"],
            ),
            EvaluationRecord(question="Is it good?", llm_scores=LLMScores(clarity=2)),
        ]
        text = build_regeneration_request("  Make them shorter.  ", evaluations)
        assert '"Make them shorter."' in text
        assert "- q2: rule violations: vague_language" in text
        assert "- q3: low clarity (2/5)" in text
        assert "q1:" not in text

    def test_regeneration_request_without_issues(self):
        text = build_regeneration_request("More questions about cost.", None)
        assert text.endswith(CHAT_REGENERATION_WITHOUT_ISSUES)

    @pytest.mark.asyncio
    async def test_regenerate_from_feedback(self):
        seen = {}

        async def writer(survey, variable_model, feedback, previous_questions):
            seen["feedback"] = feedback
            seen["previous"] = [q.text for q in previous_questions]
            return GenerationOutcome([make_question("q1", "How satisfied were you with the visit?")])

        async def evaluator(topic, questions):
            return [EvaluationRecord(question=q.text, question_id=q.id) for q in questions]

        result = await regenerate_from_feedback(
            "Avoid jargon.",
            survey=SURVEY,
            variable_model=None,
            questions=[make_question("q1", "Rate the clinician's bedside manner")],
            evaluations=None,
            generate_fn=writer,
            evaluate_fn=evaluator,
            max_attempts=2,
        )

        assert '"Avoid jargon."' in seen["feedback"]
        assert seen["previous"] == ["Rate the clinician's bedside manner"]
        assert result.attempts_made == 1
        assert result.issue_count == 0

    def test_regeneration_reply(self):
        ok = RegenerationResult(questions=[make_question("q1", "Rate it")], attempts_made=1, issue_count=0)
        assert regeneration_reply(ok) == "I regenerated 1 questions based on your feedback (1 attempt)."

        remaining = RegenerationResult(attempts_made=3, issue_count=2)
        assert "2 quality issue(s) remain" in regeneration_reply(remaining)
        assert "(3 attempts)" in regeneration_reply(remaining)

        fallback = RegenerationResult(fallback_used=True)
        assert "built-in question set" in regeneration_reply(fallback)
