"""Tests for the ingestion pipeline against in-memory collaborators."""

from __future__ import annotations

import dataclasses
import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import pytest

from conftest import FakeMessageSource, FakeProvider, make_message

import mail_search.vector_store as vector_store_module
from mail_search.config import Settings
from mail_search.errors import DependencyError
from mail_search.ingestion import IngestionPipeline
from mail_search.models.ingestion import FailureReason
from mail_search.vector_store import InMemoryVectorStore


def _messages(*ids: str) -> Dict[str, Dict[str, Any]]:
    return {email_id: make_message(email_id, subject=f"Subject {email_id}", plain=f"Body {email_id}") for email_id in ids}


def _pipeline(settings: Settings, source: Any, provider: Any = None, store: Any = None):
    store = store or InMemoryVectorStore(settings.embedding_dimension)
    provider = provider or FakeProvider()
    return IngestionPipeline(source, provider, store, settings=settings), store, provider


class TestIngest:
    def test_stores_one_record_per_email(self, settings: Settings) -> None:
        pipeline, store, provider = _pipeline(settings, FakeMessageSource(_messages("A", "B")))

        report = pipeline.ingest("owner-1", ["A", "B"])

        assert report.succeeded == {"A", "B"}
        assert report.failed == {}
        record = store.get("owner-1", "A")
        assert record is not None
        assert record.embedded_text == "Subject A\n\nBody A"
        assert record.vector == (1.0, 0.0, 0.0)
        assert sorted(provider.calls) == ["Subject A\n\nBody A", "Subject B\n\nBody B"]

    def test_reingesting_overwrites_without_duplicating(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        ticks = itertools.count()
        monkeypatch.setattr(vector_store_module, "_now", lambda: start + timedelta(seconds=next(ticks)))
        pipeline, store, _ = _pipeline(settings, FakeMessageSource(_messages("A")))

        pipeline.ingest("owner-1", ["A"])
        first = store.get("owner-1", "A")
        pipeline.ingest("owner-1", ["A"])
        second = store.get("owner-1", "A")

        assert first is not None and second is not None
        assert store.count("owner-1") == 1
        assert second.vector == first.vector
        assert second.created_at == first.created_at
        assert second.updated_at > first.updated_at

    def test_fetch_failure_does_not_abort_batch(self, settings: Settings) -> None:
        source = FakeMessageSource(_messages("A", "B", "C"))
        source.failing.add("B")
        pipeline, store, _ = _pipeline(settings, source)

        report = pipeline.ingest("owner-1", {"A", "B", "C"})

        assert report.succeeded == {"A", "C"}
        assert report.failed == {"B": FailureReason.FETCH_FAILED}
        assert store.get("owner-1", "A") is not None
        assert store.get("owner-1", "C") is not None
        assert store.get("owner-1", "B") is None

    def test_missing_message_reported_as_not_found(self, settings: Settings) -> None:
        pipeline, _, _ = _pipeline(settings, FakeMessageSource(_messages("A")))

        report = pipeline.ingest("owner-1", ["A", "gone"])

        assert report.failed == {"gone": FailureReason.NOT_FOUND}
        assert report.retryable_ids == {"gone"}

    def test_provider_failure_recorded_per_id(self, settings: Settings) -> None:
        provider = FakeProvider()
        provider.failing.add("Subject B")
        pipeline, store, _ = _pipeline(settings, FakeMessageSource(_messages("A", "B")), provider=provider)

        report = pipeline.ingest("owner-1", ["A", "B"])

        assert report.succeeded == {"A"}
        assert report.failed == {"B": FailureReason.PROVIDER_ERROR}
        assert store.get("owner-1", "B") is None

    def test_dimension_mismatch_is_never_stored(self, settings: Settings) -> None:
        provider = FakeProvider(lambda text: [1.0, 0.0] if "Subject B" in text else [1.0, 0.0, 0.0])
        pipeline, store, _ = _pipeline(settings, FakeMessageSource(_messages("A", "B")), provider=provider)

        report = pipeline.ingest("owner-1", ["A", "B"])

        assert report.failed == {"B": FailureReason.DIMENSION_MISMATCH}
        assert store.get("owner-1", "B") is None

    def test_store_failure_recorded_per_id(self, settings: Settings) -> None:
        class _BrokenStore(InMemoryVectorStore):
            def upsert(self, owner_id, email_id, vector, text):  # type: ignore[override]
                if email_id == "B":
                    raise DependencyError("store unavailable")
                return super().upsert(owner_id, email_id, vector, text)

        store = _BrokenStore(settings.embedding_dimension)
        pipeline, _, _ = _pipeline(settings, FakeMessageSource(_messages("A", "B")), store=store)

        report = pipeline.ingest("owner-1", ["A", "B"])

        assert report.succeeded == {"A"}
        assert report.failed == {"B": FailureReason.STORE_ERROR}

    def test_email_without_text_is_skipped(self, settings: Settings) -> None:
        source = FakeMessageSource({"empty": make_message("empty", subject=None)})
        pipeline, store, provider = _pipeline(settings, source)

        report = pipeline.ingest("owner-1", ["empty"])

        assert report.skipped == {"empty"}
        assert report.succeeded == set()
        assert report.failed == {}
        assert provider.calls == []
        assert store.count("owner-1") == 0

    def test_skip_existing_leaves_stored_emails_alone(self, settings: Settings) -> None:
        source = FakeMessageSource(_messages("A", "B"))
        pipeline, store, provider = _pipeline(settings, source)
        store.upsert("owner-1", "A", [0.0, 1.0, 0.0], "old text")

        report = pipeline.ingest("owner-1", ["A", "B"], skip_existing=True)

        assert report.skipped == {"A"}
        assert report.succeeded == {"B"}
        assert source.fetched == ["B"]
        assert store.get("owner-1", "A").embedded_text == "old text"

    def test_records_are_scoped_by_owner(self, settings: Settings) -> None:
        pipeline, store, _ = _pipeline(settings, FakeMessageSource(_messages("A")))

        pipeline.ingest("owner-1", ["A"])

        assert store.get("owner-2", "A") is None
        assert store.count("owner-2") == 0

    def test_empty_batch(self, settings: Settings) -> None:
        pipeline, _, provider = _pipeline(settings, FakeMessageSource({}))

        report = pipeline.ingest("owner-1", [])

        assert (report.succeeded, report.failed, report.skipped) == (set(), {}, set())
        assert provider.calls == []


class TestCancellation:
    def test_cancelled_before_start_processes_nothing(self, settings: Settings) -> None:
        cancel = threading.Event()
        cancel.set()
        pipeline, store, provider = _pipeline(settings, FakeMessageSource(_messages("A", "B")))

        report = pipeline.ingest("owner-1", ["A", "B"], cancel_event=cancel)

        assert report.failed == {"A": FailureReason.CANCELLED, "B": FailureReason.CANCELLED}
        assert provider.calls == []
        assert store.count("owner-1") == 0

    def test_completed_ids_survive_cancellation(self, settings: Settings) -> None:
        cancel = threading.Event()

        class _CancellingSource(FakeMessageSource):
            def fetch(self, owner_id: str, email_id: str):
                if email_id == "B":
                    cancel.set()
                return super().fetch(owner_id, email_id)

        single_worker = dataclasses.replace(settings, ingest_max_workers=1)
        pipeline, store, _ = _pipeline(single_worker, _CancellingSource(_messages("A", "B", "C")))

        report = pipeline.ingest("owner-1", ["A", "B", "C"], cancel_event=cancel)

        assert report.succeeded == {"A"}
        assert report.failed == {"B": FailureReason.CANCELLED, "C": FailureReason.CANCELLED}
        assert store.get("owner-1", "A") is not None


class TestMaintenance:
    def test_stats_and_delete(self, settings: Settings) -> None:
        pipeline, store, _ = _pipeline(settings, FakeMessageSource(_messages("A", "B")))
        pipeline.ingest("owner-1", ["A", "B"])

        stats = pipeline.stats("owner-1")
        pipeline.delete("owner-1", "A")

        assert stats.total == 2
        assert stats.total_size == 2 * settings.embedding_dimension * 4
        assert store.get("owner-1", "A") is None
        assert pipeline.stats("owner-1").total == 1
