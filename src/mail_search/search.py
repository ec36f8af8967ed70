"""Semantic search over stored email embeddings."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional, Protocol

from .config import Settings, get_settings
from .embeddings import EmbeddingProvider, ensure_dimension, probe_dimension
from .errors import ConfigurationError, OperationCancelled, ValidationError
from .models.search import EmailSummary, SearchResponse, SearchResult, VectorMatch
from .vector_store import VectorStore

if TYPE_CHECKING:  # pragma: no cover - import only used for typing
    from .history import SearchHistoryService

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 500
MIN_LIMIT = 1
MAX_LIMIT = 50
DEFAULT_LIMIT = 10
DEFAULT_THRESHOLD = 0.7

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class MetadataSource(Protocol):
    """Live email metadata; returns ``None`` when the email no longer exists."""

    def get_summary(self, owner_id: str, email_id: str) -> Optional[EmailSummary]: ...


def validate_query(query_text: str, limit: int, threshold: float) -> str:
    """Check search inputs and return the trimmed query."""
    if not isinstance(query_text, str):
        raise ValidationError("query", "must be a string")
    query = query_text.strip()
    if len(query) < MIN_QUERY_LENGTH:
        raise ValidationError("query", f"must be at least {MIN_QUERY_LENGTH} characters")
    if len(query) > MAX_QUERY_LENGTH:
        raise ValidationError("query", f"must be at most {MAX_QUERY_LENGTH} characters")
    if isinstance(limit, bool) or not isinstance(limit, int) or not MIN_LIMIT <= limit <= MAX_LIMIT:
        raise ValidationError("limit", f"must be an integer between {MIN_LIMIT} and {MAX_LIMIT}")
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0.0 <= threshold <= 1.0:
        raise ValidationError("threshold", "must be a number between 0 and 1")
    return query


def rank_matches(matches: List[VectorMatch], threshold: float) -> List[VectorMatch]:
    """Drop matches below ``threshold`` and order the rest.

    Higher similarity first, then the most recently updated record, then
    email id so the order never depends on store iteration order.
    """
    kept = [match for match in matches if match.similarity >= threshold]
    kept.sort(key=lambda match: match.email_id)
    kept.sort(key=lambda match: (match.similarity, _aware(match.updated_at)), reverse=True)
    return kept


def _aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SemanticSearchEngine:
    """Embeds a query, ranks the owner's vectors and hydrates the survivors."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: VectorStore,
        metadata: MetadataSource,
        settings: Settings | None = None,
        history: Optional["SearchHistoryService"] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._provider = provider
        self._store = store
        self._metadata = metadata
        self._history = history

    def verify_dimension(self) -> None:
        """Fail fast when the provider and the store disagree on vector width."""
        expected = self._settings.embedding_dimension
        if self._store.dimension != expected:
            raise ConfigurationError(
                f"Vector store is configured for {self._store.dimension} dimensions, expected {expected}"
            )
        stored = self._store.stored_dimension()
        if stored is not None and stored != expected:
            raise ConfigurationError(
                f"Stored embeddings have {stored} dimensions but the provider is configured for {expected}; "
                "re-ingest the mailbox or change EMBEDDING_DIMENSION"
            )
        probe_dimension(self._provider, expected)

    def overfetch(self, limit: int) -> int:
        factor = max(1, self._settings.search_overfetch_factor)
        return max(limit, min(limit * factor, self._settings.search_overfetch_cap))

    def search(
        self,
        owner_id: str,
        query_text: str,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        *,
        cancel_event: Optional[threading.Event] = None,
        record_history: bool = True,
    ) -> SearchResponse:
        """Return up to ``limit`` results and the total number of qualifying matches."""
        query = validate_query(query_text, limit, threshold)
        if record_history and self._history is not None:
            self._history.record(owner_id, query)

        logger.info("Performing semantic search for owner %s: %r", owner_id, query)
        _check_cancelled(cancel_event)
        query_vector = self._provider.embed(query)
        ensure_dimension(query_vector, self._settings.embedding_dimension)

        _check_cancelled(cancel_event)
        matches = self._store.query_nearest(owner_id, query_vector, self.overfetch(limit))
        ranked = rank_matches(matches, threshold)
        if not ranked:
            logger.info("No matches above threshold %.2f for owner %s", threshold, owner_id)
            return SearchResponse(results=[], total=0, query=query)

        _check_cancelled(cancel_event)
        hydrated = self._hydrate(owner_id, ranked)
        logger.info(
            "Found %d results with similarity >= %.2f (%d dropped during hydration)",
            len(hydrated),
            threshold,
            len(ranked) - len(hydrated),
        )
        return SearchResponse(results=hydrated[:limit], total=len(hydrated), query=query)

    def _hydrate(self, owner_id: str, ranked: List[VectorMatch]) -> List[SearchResult]:
        workers = max(1, min(self._settings.ingest_max_workers, len(ranked)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hydrate") as pool:
            summaries = list(pool.map(lambda match: self._metadata.get_summary(owner_id, match.email_id), ranked))
        return [
            SearchResult.from_match(match, summary)
            for match, summary in zip(ranked, summaries)
            if summary is not None
        ]


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled("search cancelled by caller")


__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_THRESHOLD",
    "MetadataSource",
    "SemanticSearchEngine",
    "rank_matches",
    "validate_query",
]
