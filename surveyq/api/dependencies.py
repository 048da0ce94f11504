"""FastAPI dependency injection for the survey question API.

Shared instances are created once in the app lifespan and injected into
route handlers via ``Depends()``. Tests replace them with
``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Callable

from surveyq.api.chat_sessions import ChatSessionStore
from surveyq.config import Settings, get_settings
from surveyq.evaluation.embeddings import EmbeddingProvider, get_embedding_provider
from surveyq.utils.structured_output import ModelCaller, build_model_caller

ModelCallerFactory = Callable[[str], ModelCaller]


# ---------------------------------------------------------------------------
# Singleton instances (initialized in app lifespan)
# ---------------------------------------------------------------------------

_settings: Settings | None = None
_chat_sessions: ChatSessionStore | None = None
_model_callers: dict[str, ModelCaller] = {}


def init_dependencies(settings: Settings, chat_sessions: ChatSessionStore) -> None:
    """Initialize shared dependency instances. Called once at app startup."""
    global _settings, _chat_sessions
    _settings = settings
    _chat_sessions = chat_sessions
    _model_callers.clear()


def _cached_model_caller(agent_name: str) -> ModelCaller:
    caller = _model_callers.get(agent_name)
    if caller is None:
        caller = build_model_caller(agent_name, settings=get_app_settings())
        _model_callers[agent_name] = caller
    return caller


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_app_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = get_settings()
    return _settings


def get_model_caller_factory() -> ModelCallerFactory:
    """Factory mapping an agent name to its JSON model caller."""
    return _cached_model_caller


def get_embeddings() -> EmbeddingProvider:
    return get_embedding_provider()


def get_chat_sessions() -> ChatSessionStore:
    global _chat_sessions
    if _chat_sessions is None:
        _chat_sessions = ChatSessionStore()
    return _chat_sessions
