"""Tests for the chat model factory and its provider chain."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableSequence, RunnableWithFallbacks
from langchain_openai import ChatOpenAI

from surveyq.config import AgentSettings, Settings
from surveyq.models import _min_length_guard, create_llm


def _settings(**overrides) -> Settings:
    values = {"openrouter_api_key": "sk-or-test", "groq_api_key": ""}
    values.update(overrides)
    return Settings(**values)


class TestMinLengthGuard:
    def test_passes_long_enough_reply(self):
        reply = AIMessage(content='{"questions": []}')
        assert _min_length_guard(2).invoke(reply) is reply

    def test_rejects_empty_reply(self):
        with pytest.raises(ValueError, match="too short"):
            _min_length_guard(2).invoke(AIMessage(content="  \n"))

    def test_counts_content_blocks(self):
        reply = AIMessage(content=[{"type": "text", "text": "[]"}])
        assert _min_length_guard(2).invoke(reply) is reply

    def test_zero_threshold_accepts_anything(self):
        reply = AIMessage(content="")
        assert _min_length_guard(0).invoke(reply) is reply


class TestCreateLlm:
    def test_primary_only_by_default(self):
        with patch("surveyq.models.get_agent_settings", return_value=AgentSettings()):
            llm = create_llm("quality_judge", settings=_settings())
        assert isinstance(llm, RunnableSequence)
        assert isinstance(llm.first, ChatOpenAI)

    def test_agent_model_and_temperature(self):
        agent_settings = AgentSettings.model_validate(
            {"agents": {"quality_judge": {"model": "openai/gpt-4o-mini", "temperature": 0.0,
                                          "max_tokens": 1500}}}
        )
        with patch("surveyq.models.get_agent_settings", return_value=agent_settings):
            llm = create_llm("quality_judge", settings=_settings())
        assert llm.first.model_name == "openai/gpt-4o-mini"
        assert llm.first.temperature == 0.0
        assert llm.first.max_tokens == 1500

    def test_explicit_temperature_wins(self):
        with patch("surveyq.models.get_agent_settings", return_value=AgentSettings()):
            llm = create_llm("question_writer", temperature=0.2, settings=_settings())
        assert llm.first.temperature == 0.2

    def test_timeout_from_defaults(self):
        agent_settings = AgentSettings.model_validate({"defaults": {"timeout": 45}})
        with patch("surveyq.models.get_agent_settings", return_value=agent_settings):
            llm = create_llm("question_writer", settings=_settings())
        assert llm.first.request_timeout == 45

    def test_groq_needs_key(self):
        agent_settings = AgentSettings.model_validate(
            {"providers": {"groq": {"enabled": True, "default_model": "llama-3.3-70b-versatile"}}}
        )
        with patch("surveyq.models.get_agent_settings", return_value=agent_settings):
            llm = create_llm("question_writer", settings=_settings(groq_api_key=""))
        assert not isinstance(llm, RunnableWithFallbacks)

    def test_groq_fallback_when_enabled(self):
        pytest.importorskip("langchain_groq")
        agent_settings = AgentSettings.model_validate(
            {"providers": {"groq": {"enabled": True, "default_model": "llama-3.3-70b-versatile"}}}
        )
        with patch("surveyq.models.get_agent_settings", return_value=agent_settings):
            llm = create_llm("question_writer", settings=_settings(groq_api_key="gsk-test"))
        assert isinstance(llm, RunnableWithFallbacks)
        assert len(llm.fallbacks) == 1
