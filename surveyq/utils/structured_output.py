"""Helpers for JSON model output with a bounded stricter-prompt retry.

Every model-facing component (question writer, quality judge, variable
modeler, config extractor) talks to the LLM through a ``ModelCaller``:

    await call_model(user_prompt, system_prompt, default) -> parsed JSON | default

A caller never raises for model or parse failures; it returns ``default``.
``noop_model_caller`` is substituted when no API key is configured.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.utils.json import parse_json_markdown

from surveyq.config import Settings, get_agent_settings, get_settings
from surveyq.models import create_llm

logger = structlog.get_logger(__name__)

ModelCaller = Callable[[str, str, Any], Awaitable[Any]]

STRICT_JSON_INSTRUCTION = "Return ONLY valid JSON."


async def noop_model_caller(user_prompt: str, system_prompt: str, default: Any) -> Any:
    """Model caller used in no-credentials mode: always returns the default."""
    return default


def _build_messages(system_prompt: str, user_prompt: str, strict: bool) -> list:
    content = f"{user_prompt}\n\n{STRICT_JSON_INSTRUCTION}" if strict else user_prompt
    return [
        SystemMessage(content=system_prompt),
        HumanMessage(content=content),
    ]


def _response_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        # Some providers return content blocks instead of a plain string
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return content if isinstance(content, str) else str(content or "")


async def invoke_json_with_retry(
    *,
    agent_name: str,
    system_prompt: str,
    user_prompt: str,
    default: Any,
    llm: Any | None = None,
    max_attempts: int | None = None,
) -> Any:
    """Invoke an agent and parse its response as JSON.

    Strategy:
    1) Model call with the plain prompt
    2) Parse JSON (markdown fences tolerated)
    3) If parsing fails, retry once with a stricter "Return ONLY valid JSON."
       instruction appended to the same prompt
    4) Return ``default`` when attempts are exhausted or the call itself fails

    Args:
        llm: Optional pre-built Runnable to use instead of creating one from
             agent_name.
        max_attempts: Total attempts (1 = no retry). None = read from agents.toml.
    """
    max_attempts = max_attempts or get_agent_settings().json_retry.max_attempts

    if llm is None:
        llm = create_llm(agent_name)

    for attempt in range(1, max_attempts + 1):
        messages = _build_messages(system_prompt, user_prompt, strict=attempt > 1)
        try:
            response = await llm.ainvoke(messages)
        except Exception:
            logger.warning("model_call_failed", agent=agent_name, attempt=attempt, exc_info=True)
            return default

        content = _response_text(response)
        try:
            return parse_json_markdown(content)
        except Exception as exc:  # JSONDecodeError, or anything else the parser raises
            logger.warning(
                "model_json_parse_failed",
                agent=agent_name,
                attempt=attempt,
                max_attempts=max_attempts,
                error=str(exc),
            )

    logger.warning("model_json_default_used", agent=agent_name)
    return default


def build_model_caller(agent_name: str, settings: Settings | None = None) -> ModelCaller:
    """Build the JSON model caller for an agent.

    Returns ``noop_model_caller`` when no OpenRouter key is configured, so the
    whole pipeline still runs end to end on neutral defaults.
    """
    if settings is None:
        settings = get_settings()

    if not settings.has_model_credentials:
        logger.info("model_caller_noop", agent=agent_name, reason="no_api_key")
        return noop_model_caller

    try:
        llm = create_llm(agent_name, settings=settings)
    except Exception:
        logger.warning("model_caller_init_failed", agent=agent_name, exc_info=True)
        return noop_model_caller

    async def _call(user_prompt: str, system_prompt: str, default: Any) -> Any:
        return await invoke_json_with_retry(
            agent_name=agent_name,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            default=default,
            llm=llm,
        )

    return _call
