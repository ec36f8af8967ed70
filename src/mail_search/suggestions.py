"""Merge history, contact, keyword and semantic suggestions for the search box."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Protocol

from .history import SearchHistoryService
from .models.search import EmailSummary, Sender, Suggestion
from .search import SemanticSearchEngine

logger = logging.getLogger(__name__)

HISTORY = "history"
CONTACT = "contact"
KEYWORD = "keyword"
SEMANTIC = "semantic"

MIN_QUERY_LENGTH = 2
MIN_KEYWORD_LENGTH = 4
MAX_SEMANTIC = 3
RECENT_MAIL_LIMIT = 100
SEMANTIC_THRESHOLD = 0.75
SUGGESTION_CHARS = 60

_SENTENCE_END = re.compile(r"[.!?]\s")
_NON_WORD = re.compile(r"[^\w]")


class RecentMailSource(Protocol):
    """Summaries of an owner's latest inbox messages, newest first."""

    def recent_summaries(self, owner_id: str, limit: int = RECENT_MAIL_LIMIT) -> List[EmailSummary]: ...


def _first_sentence(text: str) -> str:
    sentence = _SENTENCE_END.split(text, maxsplit=1)[0]
    return " ".join(sentence.split())[:SUGGESTION_CHARS].strip()


def contact_suggestions(summaries: List[EmailSummary], query: str, limit: int) -> List[Suggestion]:
    """Distinct senders whose name or address contains ``query``."""
    needle = query.lower()
    contacts: Dict[str, Sender] = {}
    for summary in summaries:
        address = summary.sender.email.lower()
        if address:
            contacts.setdefault(address, summary.sender)

    matches = [
        sender
        for sender in contacts.values()
        if needle in sender.name.lower() or needle in sender.email.lower()
    ]
    return [
        Suggestion(text=sender.name or sender.email, kind=CONTACT, metadata={"email": sender.email, "name": sender.name})
        for sender in matches[:limit]
    ]


def keyword_suggestions(summaries: List[EmailSummary], query: str, limit: int) -> List[Suggestion]:
    """Subject words of four or more characters that contain ``query``."""
    needle = query.lower()
    keywords: Dict[str, None] = {}
    for summary in summaries:
        for word in summary.subject.split():
            if len(word) < MIN_KEYWORD_LENGTH or needle not in word.lower():
                continue
            cleaned = _NON_WORD.sub("", word)
            if len(cleaned) >= MIN_KEYWORD_LENGTH:
                keywords.setdefault(cleaned)
    return [Suggestion(text=keyword, kind=KEYWORD) for keyword in list(keywords)[:limit]]


class SuggestionService:
    """Suggestions in priority order: history, contacts, subject keywords, semantic matches.

    Duplicates are dropped case-insensitively, keeping the higher-priority
    entry. A source that fails contributes nothing.
    """

    def __init__(
        self,
        history: SearchHistoryService,
        engine: SemanticSearchEngine,
        recent_mail: Optional[RecentMailSource] = None,
    ) -> None:
        self._history = history
        self._engine = engine
        self._recent_mail = recent_mail

    def suggest(self, owner_id: str, query: str, limit: int = 5) -> List[Suggestion]:
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH or limit <= 0:
            return []

        summaries = self._recent_summaries(owner_id)
        candidates = self._history_suggestions(owner_id, query, limit)
        candidates += self._from_summaries(contact_suggestions, summaries, query, limit)
        candidates += self._from_summaries(keyword_suggestions, summaries, query, limit)
        candidates += self._semantic_suggestions(owner_id, query, min(limit, MAX_SEMANTIC))

        seen = set()
        unique: List[Suggestion] = []
        for suggestion in candidates:
            key = suggestion.text.lower().strip()
            if not key or key in seen:
                continue
            seen.add(key)
            unique.append(suggestion)
        return unique[:limit]

    def _recent_summaries(self, owner_id: str) -> List[EmailSummary]:
        if self._recent_mail is None:
            return []
        try:
            return self._recent_mail.recent_summaries(owner_id, RECENT_MAIL_LIMIT)
        except Exception:
            logger.exception("Failed to load recent emails for contact and keyword suggestions")
            return []

    @staticmethod
    def _from_summaries(build, summaries: List[EmailSummary], query: str, limit: int) -> List[Suggestion]:
        try:
            return build(summaries, query, limit)
        except Exception:
            logger.exception("Failed to build %s", build.__name__)
            return []

    def _history_suggestions(self, owner_id: str, query: str, limit: int) -> List[Suggestion]:
        try:
            return [Suggestion(text=text, kind=HISTORY) for text in self._history.suggestions(owner_id, query, limit)]
        except Exception:
            logger.exception("Failed to get history suggestions")
            return []

    def _semantic_suggestions(self, owner_id: str, query: str, limit: int) -> List[Suggestion]:
        try:
            response = self._engine.search(
                owner_id, query, limit=limit, threshold=SEMANTIC_THRESHOLD, record_history=False
            )
        except Exception:
            logger.exception("Failed to get semantic suggestions")
            return []
        # First sentence of the live subject.
        return [
            Suggestion(
                text=_first_sentence(result.subject) or query,
                kind=SEMANTIC,
                metadata={"email_id": result.email_id, "similarity": result.similarity},
            )
            for result in response.results
        ]


__all__ = [
    "CONTACT",
    "HISTORY",
    "KEYWORD",
    "SEMANTIC",
    "RecentMailSource",
    "Suggestion",
    "SuggestionService",
    "contact_suggestions",
    "keyword_suggestions",
]
