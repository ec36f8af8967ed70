"""Shared in-memory collaborators for the core tests."""

from __future__ import annotations

import base64
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

import pytest

from mail_search.config import Settings
from mail_search.errors import DependencyError, MessageNotFoundError
from mail_search.models.search import EmailSummary, Sender, VectorMatch

DIMENSION = 3


def encode(text: str) -> str:
    """URL-safe base64 without padding, the way Gmail returns part data."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def make_message(
    message_id: str,
    *,
    subject: Optional[str] = "Subject",
    plain: Optional[str] = None,
    html: Optional[str] = None,
    snippet: str = "",
) -> Dict[str, Any]:
    headers = []
    if subject is not None:
        headers.append({"name": "Subject", "value": subject})
    headers.append({"name": "From", "value": "Alice <alice@example.com>"})
    parts = []
    if plain is not None:
        parts.append({"mimeType": "text/plain", "body": {"data": encode(plain)}})
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": encode(html)}})
    payload: Dict[str, Any] = {"mimeType": "multipart/alternative", "headers": headers}
    if parts:
        payload["parts"] = parts
    return {"id": message_id, "snippet": snippet, "payload": payload}


class FakeProvider:
    """Maps text to vectors with a callable and records every call."""

    def __init__(self, vector_for: Optional[Callable[[str], List[float]]] = None, dimension: int = DIMENSION) -> None:
        self._vector_for = vector_for or (lambda _text: [1.0, 0.0, 0.0])
        self._dimension = dimension
        self.calls: List[str] = []
        self.failing: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        with self._lock:
            self.calls.append(text)
        if any(marker in text for marker in self.failing):
            raise DependencyError("rate limited")
        return list(self._vector_for(text))

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return [self.embed(text) for text in texts]


class FakeMessageSource:
    def __init__(self, messages: Dict[str, Dict[str, Any]]) -> None:
        self.messages = messages
        self.failing: Set[str] = set()
        self.fetched: List[str] = []

    def fetch(self, owner_id: str, email_id: str) -> Dict[str, Any]:
        self.fetched.append(email_id)
        if email_id in self.failing:
            raise DependencyError("gmail unavailable")
        if email_id not in self.messages:
            raise MessageNotFoundError(email_id)
        return self.messages[email_id]


class FakeMetadata:
    def __init__(self, email_ids: Iterable[str] = ()) -> None:
        self.summaries: Dict[str, EmailSummary] = {email_id: summary_for(email_id) for email_id in email_ids}
        self.requested: List[str] = []

    def get_summary(self, owner_id: str, email_id: str) -> Optional[EmailSummary]:
        self.requested.append(email_id)
        return self.summaries.get(email_id)


class FakeMatchStore:
    """Vector store stand-in that returns preset matches per owner."""

    def __init__(self, matches: Dict[str, List[VectorMatch]], dimension: int = DIMENSION) -> None:
        self._matches = matches
        self._dimension = dimension
        self.stored: Optional[int] = None
        self.requested_k: List[int] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    def stored_dimension(self) -> Optional[int]:
        return self.stored

    def query_nearest(self, owner_id: str, query_vector: Sequence[float], k: int) -> List[VectorMatch]:
        self.requested_k.append(k)
        return list(self._matches.get(owner_id, []))[:k]


def summary_for(email_id: str) -> EmailSummary:
    return EmailSummary(
        email_id=email_id,
        subject=f"Subject {email_id}",
        preview=f"Preview {email_id}",
        sender=Sender(name="Alice", email="alice@example.com"),
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        is_read=False,
    )


def match(email_id: str, similarity: float, updated_at: Optional[datetime] = None) -> VectorMatch:
    return VectorMatch(
        email_id=email_id,
        similarity=similarity,
        updated_at=updated_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        gmail_user_id="me",
        embedding_dimension=DIMENSION,
        ingest_max_workers=2,
        search_overfetch_factor=3,
        search_overfetch_cap=100,
        vector_store_dir=tmp_path / "chroma",
        history_db_path=tmp_path / "history.db",
    )
