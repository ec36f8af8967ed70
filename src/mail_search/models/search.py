"""Query-time models for semantic search and history suggestions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Sender:
    name: str = ""
    email: str = ""


@dataclass(frozen=True)
class EmailSummary:
    """Live metadata used to hydrate a search hit."""

    email_id: str
    subject: str
    preview: str
    sender: Sender
    timestamp: Optional[datetime]
    is_read: bool


@dataclass(frozen=True)
class VectorMatch:
    """A single nearest-neighbour hit returned by a vector store."""

    email_id: str
    similarity: float
    updated_at: datetime


@dataclass(frozen=True)
class SearchResult:
    email_id: str
    similarity: float
    subject: str
    preview: str
    sender: Sender
    timestamp: Optional[datetime]
    is_read: bool

    @classmethod
    def from_match(cls, match: VectorMatch, summary: EmailSummary) -> "SearchResult":
        return cls(
            email_id=match.email_id,
            similarity=match.similarity,
            subject=summary.subject or "No Subject",
            preview=summary.preview,
            sender=summary.sender,
            timestamp=summary.timestamp,
            is_read=summary.is_read,
        )


@dataclass(frozen=True)
class SearchResponse:
    """A page of results plus the number of qualifying matches."""

    results: List[SearchResult]
    total: int
    query: str


@dataclass(frozen=True)
class SearchHistoryEntry:
    owner_id: str
    query: str
    searched_at: datetime


@dataclass(frozen=True)
class HistoryStats:
    total: int
    unique_queries: int
    recent: Tuple[str, ...]


@dataclass(frozen=True)
class Suggestion:
    text: str
    kind: str
    metadata: Dict[str, Any] = field(default_factory=dict)
