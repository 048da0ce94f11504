"""Chat model factory for the survey agents.

Every agent gets the same provider chain, configured in agents.toml:

    OpenRouter (primary) → Groq (optional) → Ollama (optional, local)

Each link is piped through a minimum-length guard, so an empty reply counts
as a failure and ``with_fallbacks()`` moves on to the next provider. The
chain only covers transport-level failures; unparseable JSON is handled one
level up by ``invoke_json_with_retry``.
"""

from __future__ import annotations

import structlog
from langchain_core.messages import BaseMessage
from langchain_core.runnables import Runnable, RunnableLambda
from langchain_openai import ChatOpenAI

from surveyq.config import AgentSettings, Settings, get_agent_settings, get_settings

logger = structlog.get_logger(__name__)

OPENROUTER_APP_TITLE = "surveyq"
DEFAULT_OLLAMA_URL = "http://localhost:11434"


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    return content or ""


def _min_length_guard(min_chars: int) -> RunnableLambda:
    """Reject replies shorter than ``min_chars`` so the next provider is tried."""

    def _guard(message: BaseMessage) -> BaseMessage:
        length = len(_message_text(message).strip())
        if length < min_chars:
            raise ValueError(f"Model reply too short ({length} < {min_chars} chars)")
        return message

    return RunnableLambda(_guard)


def _openrouter(
    agent_name: str,
    agent_settings: AgentSettings,
    settings: Settings,
    temperature: float,
    max_tokens: int | None,
) -> ChatOpenAI:
    return ChatOpenAI(
        model=agent_settings.get_model(agent_name),
        temperature=temperature,
        max_tokens=max_tokens,
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        timeout=agent_settings.defaults.timeout,
        default_headers={"X-Title": OPENROUTER_APP_TITLE},
    )


def _groq(
    agent_name: str,
    agent_settings: AgentSettings,
    settings: Settings,
    temperature: float,
    max_tokens: int | None,
) -> Runnable | None:
    if not (agent_settings.providers.groq.enabled and settings.groq_api_key):
        return None
    from langchain_groq import ChatGroq

    return ChatGroq(
        model=agent_settings.get_groq_model(agent_name),
        temperature=temperature,
        max_tokens=max_tokens,
        api_key=settings.groq_api_key,
        timeout=agent_settings.defaults.timeout,
    )


def _ollama(
    agent_name: str,
    agent_settings: AgentSettings,
    settings: Settings,
    temperature: float,
    max_tokens: int | None,
) -> Runnable | None:
    if not agent_settings.providers.ollama.enabled:
        return None
    from langchain_ollama import ChatOllama

    return ChatOllama(
        model=agent_settings.get_ollama_model(agent_name),
        temperature=temperature,
        num_predict=max_tokens,
        base_url=agent_settings.providers.ollama.base_url or DEFAULT_OLLAMA_URL,
    )


_FALLBACK_PROVIDERS = (("groq", _groq), ("ollama", _ollama))


def create_llm(
    agent_name: str,
    temperature: float | None = None,
    settings: Settings | None = None,
) -> Runnable:
    """Build the provider chain for one agent.

    Args:
        agent_name: Key under [agents] in agents.toml (model, temperature,
            max_tokens, per-provider model overrides).
        temperature: Overrides the agent's configured temperature.
        settings: Environment settings; loaded from .env when omitted.
    """
    if settings is None:
        settings = get_settings()
    agent_settings = get_agent_settings()

    if temperature is None:
        temperature = agent_settings.get_temperature(agent_name)
    max_tokens = agent_settings.get_agent_config(agent_name).max_tokens
    guard = _min_length_guard(agent_settings.defaults.min_response_length)

    primary = _openrouter(agent_name, agent_settings, settings, temperature, max_tokens) | guard

    fallbacks: list[Runnable] = []
    fallback_names: list[str] = []
    for name, build in _FALLBACK_PROVIDERS:
        llm = build(agent_name, agent_settings, settings, temperature, max_tokens)
        if llm is not None:
            fallbacks.append(llm | guard)
            fallback_names.append(name)

    logger.debug(
        "llm_created",
        agent=agent_name,
        model=agent_settings.get_model(agent_name),
        fallbacks=fallback_names,
    )
    if fallbacks:
        return primary.with_fallbacks(fallbacks)
    return primary
