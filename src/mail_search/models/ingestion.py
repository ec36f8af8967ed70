"""Outcome types for batch ingestion."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Set


class FailureReason(str, Enum):
    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"
    PROVIDER_ERROR = "provider_error"
    DIMENSION_MISMATCH = "dimension_mismatch"
    STORE_ERROR = "store_error"
    CANCELLED = "cancelled"


@dataclass
class IngestionReport:
    """Per-id outcome of one ingestion batch.

    Every submitted id ends up in exactly one of the three collections.
    """

    succeeded: Set[str] = field(default_factory=set)
    failed: Dict[str, FailureReason] = field(default_factory=dict)
    skipped: Set[str] = field(default_factory=set)

    @property
    def retryable_ids(self) -> Set[str]:
        return set(self.failed)


@dataclass(frozen=True)
class EmbeddingStats:
    total: int
    total_size: int
