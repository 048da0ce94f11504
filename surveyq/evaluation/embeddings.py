"""Sentence-embedding provider with lazy initialization and a fail-soft state.

The provider moves through three states:

    NOT_LOADED --initialize()--> READY
                             \\-> UNAVAILABLE   (model could not be built)

Once UNAVAILABLE it stays there for the process lifetime: ``embed`` returns
None ("no embedding available") and callers fall back to neutral defaults.
The loaded model is only read after initialization, so one provider is shared
by all in-flight requests.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable

import numpy as np
import structlog

from surveyq.config import get_agent_settings

logger = structlog.get_logger(__name__)

# Sentinel: model construction failed, never retry.
UNAVAILABLE = object()

ModelFactory = Callable[[], Any]


def sentence_transformer_factory(model_name: str) -> ModelFactory:
    """Build a factory that loads a sentence-transformers model by name."""

    def _load() -> Any:
        from sentence_transformers import SentenceTransformer

        return SentenceTransformer(model_name)

    return _load


class EmbeddingProvider:
    """Turns text into a fixed-length, L2-normalized numpy vector.

    Args:
        factory: Zero-argument callable returning an object with an
            ``encode(text, normalize_embeddings=True)`` method. Called at most
            once, on first use.
    """

    def __init__(self, factory: ModelFactory) -> None:
        self._factory = factory
        self._model: Any = None
        self._lock = threading.Lock()

    @property
    def is_unavailable(self) -> bool:
        return self._model is UNAVAILABLE

    def initialize(self) -> bool:
        """Build the model if needed. Returns True when embeddings are available."""
        if self._model is None:
            with self._lock:
                if self._model is None:
                    try:
                        self._model = self._factory()
                        logger.info("embedding_model_loaded")
                    except Exception:
                        logger.warning("embedding_model_unavailable", exc_info=True)
                        self._model = UNAVAILABLE
        return self._model is not UNAVAILABLE

    def get(self) -> Any:
        """Return the loaded model, or the UNAVAILABLE sentinel."""
        self.initialize()
        return self._model

    def _encode(self, text: str) -> np.ndarray | None:
        model = self.get()
        if model is UNAVAILABLE:
            return None
        try:
            vector = model.encode(text, normalize_embeddings=True)
        except Exception:
            logger.warning("embedding_encode_failed", text_length=len(text), exc_info=True)
            return None
        return np.asarray(vector, dtype=np.float32)

    async def embed(self, text: str) -> np.ndarray | None:
        """Embed one text. Returns None when no embedding is available."""
        return await asyncio.to_thread(self._encode, text)

    async def embed_many(self, texts: list[str]) -> list[np.ndarray | None]:
        """Embed each text once, preserving order."""
        return [await self.embed(text) for text in texts]


_PROVIDER: EmbeddingProvider | None = None


def get_embedding_provider() -> EmbeddingProvider:
    """Return the process-wide provider, creating it (not the model) on first call."""
    global _PROVIDER
    if _PROVIDER is None:
        cfg = get_agent_settings().embedding
        if cfg.enabled:
            _PROVIDER = EmbeddingProvider(sentence_transformer_factory(cfg.model_name))
        else:
            _PROVIDER = EmbeddingProvider(_disabled_factory)
    return _PROVIDER


def set_embedding_provider(provider: EmbeddingProvider | None) -> None:
    """Replace the process-wide provider (None resets to lazy default)."""
    global _PROVIDER
    _PROVIDER = provider


def _disabled_factory() -> Any:
    raise RuntimeError("Embeddings disabled in agents.toml [embedding]")
