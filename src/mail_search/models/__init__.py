"""Data transfer objects shared across the core."""

from .email_content import EmailContent
from .embedding_record import EmbeddingRecord
from .ingestion import EmbeddingStats, FailureReason, IngestionReport
from .search import (
    EmailSummary,
    HistoryStats,
    SearchHistoryEntry,
    SearchResponse,
    SearchResult,
    Sender,
    Suggestion,
    VectorMatch,
)

__all__ = [
    "EmailContent",
    "EmbeddingRecord",
    "EmbeddingStats",
    "FailureReason",
    "IngestionReport",
    "EmailSummary",
    "HistoryStats",
    "SearchHistoryEntry",
    "SearchResponse",
    "SearchResult",
    "Sender",
    "Suggestion",
    "VectorMatch",
]
