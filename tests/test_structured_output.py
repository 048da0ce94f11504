"""Tests for JSON model calls with a bounded stricter-prompt retry."""

from __future__ import annotations

import pytest
from langchain_core.messages import AIMessage

from surveyq.config import Settings
from surveyq.utils.structured_output import (
    STRICT_JSON_INSTRUCTION,
    build_model_caller,
    invoke_json_with_retry,
    noop_model_caller,
)


class FakeLLM:
    """Runnable stand-in: returns scripted responses and records the messages."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[list] = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


async def _invoke(llm, default=None, max_attempts=2):
    return await invoke_json_with_retry(
        agent_name="quality_judge",
        system_prompt="You are a judge.",
        user_prompt="Score these questions.",
        default=default,
        llm=llm,
        max_attempts=max_attempts,
    )


class TestInvokeJsonWithRetry:
    @pytest.mark.asyncio
    async def test_plain_json(self):
        llm = FakeLLM(AIMessage(content='{"reply": "ok"}'))
        assert await _invoke(llm) == {"reply": "ok"}
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_markdown_fenced_json(self):
        llm = FakeLLM(AIMessage(content='```json\n[{"clarity": 5}]\n```'))
        assert await _invoke(llm) == [{"clarity": 5}]

    @pytest.mark.asyncio
    async def test_retry_appends_strict_instruction(self):
        llm = FakeLLM(
            AIMessage(content="Sorry, here are my thoughts about the questions."),
            AIMessage(content='{"questions": []}'),
        )
        assert await _invoke(llm) == {"questions": []}
        assert len(llm.calls) == 2

        first_human = llm.calls[0][1].content
        second_human = llm.calls[1][1].content
        assert not first_human.endswith(STRICT_JSON_INSTRUCTION)
        assert second_human.endswith(STRICT_JSON_INSTRUCTION)
        assert llm.calls[1][0].content == "You are a judge."

    @pytest.mark.asyncio
    async def test_default_after_two_bad_responses(self):
        llm = FakeLLM(
            AIMessage(content="Sorry, I cannot do that."),
            AIMessage(content="Still not valid."),
        )
        assert await _invoke(llm, default={"questions": []}) == {"questions": []}
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_single_attempt_means_no_retry(self):
        llm = FakeLLM(AIMessage(content="Sorry, no JSON here."))
        assert await _invoke(llm, default="fallback", max_attempts=1) == "fallback"
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_call_failure_returns_default(self):
        llm = FakeLLM(TimeoutError("provider timed out"))
        assert await _invoke(llm, default=[]) == []
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_content_blocks_joined(self):
        llm = FakeLLM(
            AIMessage(content=[{"type": "text", "text": '{"dependent": '}, {"type": "text", "text": "[]}"}])
        )
        assert await _invoke(llm) == {"dependent": []}


class TestBuildModelCaller:
    def test_no_key_gives_noop_caller(self):
        caller = build_model_caller("question_writer", settings=Settings(openrouter_api_key=""))
        assert caller is noop_model_caller

    def test_blank_key_gives_noop_caller(self):
        caller = build_model_caller("question_writer", settings=Settings(openrouter_api_key="   "))
        assert caller is noop_model_caller

    def test_key_gives_real_caller(self):
        caller = build_model_caller("question_writer", settings=Settings(openrouter_api_key="sk-test"))
        assert caller is not noop_model_caller

    @pytest.mark.asyncio
    async def test_noop_returns_default(self):
        assert await noop_model_caller("prompt", "system", {"questions": []}) == {"questions": []}
