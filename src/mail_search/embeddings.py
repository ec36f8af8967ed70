"""Embedding provider capability and its LangChain-backed implementation."""

from __future__ import annotations

import logging
from typing import List, Protocol, Sequence

from langchain_core.embeddings import DeterministicFakeEmbedding, Embeddings

from .config import Settings, get_settings
from .errors import ConfigurationError, DependencyError

logger = logging.getLogger(__name__)

_DIMENSION_PROBE = "dimension probe"


class EmbeddingProvider(Protocol):
    """Turns text into fixed-width vectors. Failures raise ``DependencyError``."""

    @property
    def dimension(self) -> int: ...

    def embed(self, text: str) -> List[float]: ...

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]: ...


class LangChainEmbeddingProvider:
    """Adapter from a LangChain ``Embeddings`` model to ``EmbeddingProvider``."""

    def __init__(self, embeddings: Embeddings, dimension: int) -> None:
        self._embeddings = embeddings
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        try:
            return list(self._embeddings.embed_query(text))
        except Exception as exc:
            raise DependencyError(f"Embedding provider failed: {exc}") from exc

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            vectors = self._embeddings.embed_documents(list(texts))
        except Exception as exc:
            raise DependencyError(f"Embedding provider failed: {exc}") from exc
        return [list(vector) for vector in vectors]


def create_embedding_provider(settings: Settings | None = None) -> LangChainEmbeddingProvider:
    """Build the provider selected by ``EMBEDDING_PROVIDER``."""
    settings = settings or get_settings()
    provider = (settings.embedding_provider or "openai").lower()

    if provider == "openai":
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY must be configured when using the OpenAI embedding provider.")
        from langchain_openai import OpenAIEmbeddings

        embeddings: Embeddings = OpenAIEmbeddings(
            model=settings.embedding_model,
            dimensions=settings.embedding_dimension,
            api_key=settings.openai_api_key,
            timeout=settings.request_timeout,
            max_retries=0,
        )
    elif provider == "fake":
        embeddings = DeterministicFakeEmbedding(size=settings.embedding_dimension)
    else:
        raise ConfigurationError(f"Unsupported embedding provider: {settings.embedding_provider}")

    logger.info("Using %s embeddings with dimension %d", provider, settings.embedding_dimension)
    return LangChainEmbeddingProvider(embeddings, settings.embedding_dimension)


def ensure_dimension(vector: Sequence[float], expected: int) -> None:
    """Raise ``ConfigurationError`` when a vector does not have ``expected`` entries."""
    if len(vector) != expected:
        raise ConfigurationError(
            f"Embedding provider returned {len(vector)} dimensions, expected {expected}"
        )


def probe_dimension(provider: EmbeddingProvider, expected: int) -> None:
    """Embed a short probe once at startup and check its width."""
    ensure_dimension(provider.embed(_DIMENSION_PROBE), expected)


__all__ = [
    "EmbeddingProvider",
    "LangChainEmbeddingProvider",
    "create_embedding_provider",
    "ensure_dimension",
    "probe_dimension",
]
