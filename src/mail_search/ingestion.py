"""Batch ingestion: fetch, extract, embed and store one vector per email."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Tuple

from .config import Settings, get_settings
from .embeddings import EmbeddingProvider
from .errors import MessageNotFoundError
from .extraction import extract
from .models.ingestion import EmbeddingStats, FailureReason, IngestionReport
from .text_builder import build_embedding_text
from .vector_store import VectorStore

logger = logging.getLogger(__name__)

_SUCCEEDED = "succeeded"
_SKIPPED = "skipped"
_FAILED = "failed"

Outcome = Tuple[str, Optional[FailureReason]]


class MessageSource(Protocol):
    """Returns the raw provider payload, raising ``MessageNotFoundError`` for unknown ids."""

    def fetch(self, owner_id: str, email_id: str) -> Mapping[str, Any]: ...


class IngestionPipeline:
    """Turns email ids into stored embeddings, isolating failures per id."""

    def __init__(
        self,
        source: MessageSource,
        provider: EmbeddingProvider,
        store: VectorStore,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._source = source
        self._provider = provider
        self._store = store

    def ingest(
        self,
        owner_id: str,
        email_ids: Iterable[str],
        *,
        skip_existing: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> IngestionReport:
        """Embed and upsert every id, returning per-id outcomes.

        Re-ingesting an id overwrites its vector and text. With
        ``skip_existing`` ids that already have a record are left alone and
        reported as skipped. Setting ``cancel_event`` stops work that has not
        started yet; those ids are reported as ``cancelled``.
        """
        report = IngestionReport()
        pending = list(dict.fromkeys(email_ids))
        if not pending:
            return report

        if skip_existing:
            existing = self._store.existing_ids(owner_id, pending)
            report.skipped.update(existing)
            pending = [email_id for email_id in pending if email_id not in existing]

        logger.info("Ingesting %d emails for owner %s", len(pending), owner_id)
        workers = max(1, self._settings.ingest_max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest") as pool:
            futures: Dict[Future, str] = {
                pool.submit(self._ingest_one, owner_id, email_id, cancel_event): email_id
                for email_id in pending
            }
            for future in as_completed(futures):
                email_id = futures[future]
                if future.cancelled():
                    status, reason = _FAILED, FailureReason.CANCELLED
                else:
                    status, reason = future.result()
                _record(report, email_id, status, reason)
                if cancel_event is not None and cancel_event.is_set():
                    for other in futures:
                        other.cancel()

        logger.info(
            "Ingestion finished for owner %s: %d succeeded, %d failed, %d skipped",
            owner_id,
            len(report.succeeded),
            len(report.failed),
            len(report.skipped),
        )
        return report

    def _ingest_one(self, owner_id: str, email_id: str, cancel_event: Optional[threading.Event]) -> Outcome:
        if _is_cancelled(cancel_event):
            return _FAILED, FailureReason.CANCELLED

        try:
            message = self._source.fetch(owner_id, email_id)
        except MessageNotFoundError:
            logger.warning("Email %s no longer exists, skipping embedding", email_id)
            return _FAILED, FailureReason.NOT_FOUND
        except Exception:
            logger.exception("Failed to fetch email %s", email_id)
            return _FAILED, FailureReason.FETCH_FAILED

        text = build_embedding_text(
            extract(message),
            max_chars=self._settings.embedding_max_chars,
            body_chars=self._settings.embedding_body_chars,
        )
        if not text:
            logger.info("Email %s has no text to embed, skipping", email_id)
            return _SKIPPED, None

        if _is_cancelled(cancel_event):
            return _FAILED, FailureReason.CANCELLED
        try:
            vector = self._provider.embed(text)
        except Exception:
            logger.exception("Embedding provider failed for email %s", email_id)
            return _FAILED, FailureReason.PROVIDER_ERROR

        expected = self._settings.embedding_dimension
        if len(vector) != expected:
            logger.error(
                "Embedding for email %s has %d dimensions, expected %d", email_id, len(vector), expected
            )
            return _FAILED, FailureReason.DIMENSION_MISMATCH

        if _is_cancelled(cancel_event):
            return _FAILED, FailureReason.CANCELLED
        try:
            self._store.upsert(owner_id, email_id, vector, text)
        except Exception:
            logger.exception("Failed to store embedding for email %s", email_id)
            return _FAILED, FailureReason.STORE_ERROR

        logger.debug("Stored embedding for email %s", email_id)
        return _SUCCEEDED, None

    def delete(self, owner_id: str, email_id: str) -> None:
        """Remove the stored embedding for an email, e.g. after it was deleted."""
        self._store.delete(owner_id, email_id)
        logger.info("Deleted embedding for email %s", email_id)

    def stats(self, owner_id: str) -> EmbeddingStats:
        """Number of stored vectors and their approximate size in bytes (float32)."""
        total = self._store.count(owner_id)
        return EmbeddingStats(total=total, total_size=total * self._settings.embedding_dimension * 4)


def _is_cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _record(report: IngestionReport, email_id: str, status: str, reason: Optional[FailureReason]) -> None:
    if status == _SUCCEEDED:
        report.succeeded.add(email_id)
    elif status == _SKIPPED:
        report.skipped.add(email_id)
    else:
        report.failed[email_id] = reason or FailureReason.FETCH_FAILED


__all__ = ["IngestionPipeline", "MessageSource"]
