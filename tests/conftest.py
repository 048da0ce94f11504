"""Shared test fixtures."""

from __future__ import annotations

import os
import threading

import numpy as np
import pytest
import structlog

# Ensure tests never call real model APIs: no key = no-credentials mode
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["GROQ_API_KEY"] = ""
os.environ["LANGCHAIN_TRACING_V2"] = "false"

from surveyq.evaluation.embeddings import EmbeddingProvider, set_embedding_provider  # noqa: E402
from surveyq.schemas.questions import Question  # noqa: E402


class StubEncoder:
    """Stands in for a sentence-transformers model.

    Texts listed in ``vectors`` get that vector; every other text gets its
    own one-hot vector, so unrelated texts are orthogonal.
    """

    def __init__(self, vectors: dict[str, list[float]] | None = None, dim: int = 64):
        self.vectors = vectors or {}
        self.dim = dim
        self.calls: list[str] = []
        self._slots: dict[str, int] = {}
        self._lock = threading.Lock()

    def _one_hot(self, text: str) -> np.ndarray:
        with self._lock:
            slot = self._slots.setdefault(text, len(self._slots) % self.dim)
        vector = np.zeros(self.dim, dtype=np.float32)
        vector[slot] = 1.0
        return vector

    def encode(self, text: str, normalize_embeddings: bool = True) -> np.ndarray:
        self.calls.append(text)
        if text in self.vectors:
            vector = np.zeros(self.dim, dtype=np.float32)
            raw = np.asarray(self.vectors[text], dtype=np.float32)
            vector[: len(raw)] = raw
        else:
            vector = self._one_hot(text)
        norm = np.linalg.norm(vector)
        if normalize_embeddings and norm:
            vector = vector / norm
        return vector


def _unavailable() -> object:
    raise RuntimeError("no embedding model in tests")


@pytest.fixture(autouse=True)
def _no_embedding_model():
    """Never load a real embedding model; tests inject providers explicitly."""
    set_embedding_provider(EmbeddingProvider(_unavailable))
    yield
    set_embedding_provider(None)


@pytest.fixture(autouse=True)
def _reset_structlog(monkeypatch):
    """Keep loggers from caching a per-test capture stream that pytest later closes."""
    configure = structlog.configure

    def _configure_uncached(*args, **kwargs):
        kwargs["cache_logger_on_first_use"] = False
        configure(*args, **kwargs)

    monkeypatch.setattr(structlog, "configure", _configure_uncached)
    yield
    structlog.reset_defaults()


@pytest.fixture
def unavailable_provider() -> EmbeddingProvider:
    return EmbeddingProvider(_unavailable)


@pytest.fixture
def make_provider():
    """Build an EmbeddingProvider around a StubEncoder with fixed vectors."""

    def _make(vectors: dict[str, list[float]] | None = None) -> EmbeddingProvider:
        encoder = StubEncoder(vectors)
        provider = EmbeddingProvider(lambda: encoder)
        provider.encoder = encoder
        return provider

    return _make


def make_question(qid: str, text: str, qtype: str = "likert", **fields) -> Question:
    """Question from wire-style fields; likert gets a 5-point scale by default."""
    data = {"id": qid, "text": text, "type": qtype}
    if "options" not in fields:
        if qtype == "likert":
            fields["options"] = ["1", "2", "3", "4", "5"]
        elif qtype == "yes_no":
            fields["options"] = ["Yes", "No"]
        else:
            fields["options"] = []
    data.update(fields)
    return Question.model_validate(data)


class RecordingCaller:
    """Model caller stub that records prompts and returns scripted payloads."""

    def __init__(self, *responses, error: Exception | None = None):
        self.responses = list(responses)
        self.error = error
        self.calls: list[tuple[str, str, object]] = []

    async def __call__(self, user_prompt: str, system_prompt: str, default):
        self.calls.append((user_prompt, system_prompt, default))
        if self.error is not None:
            raise self.error
        if not self.responses:
            return default
        if len(self.responses) == 1:
            return self.responses[0]
        return self.responses.pop(0)
