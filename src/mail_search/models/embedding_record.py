"""Data models for persisted email embeddings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence, Tuple


@dataclass(frozen=True)
class EmbeddingRecord:
    """One stored vector, unique per (owner_id, email_id)."""

    owner_id: str
    email_id: str
    vector: Tuple[float, ...]
    embedded_text: str
    created_at: datetime
    updated_at: datetime

    def to_properties(self) -> dict:
        """Serialise the scalar fields for vector store metadata."""
        return {
            "owner_id": self.owner_id,
            "email_id": self.email_id,
            "embedded_text": self.embedded_text,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_properties(cls, properties: dict, vector: Sequence[float]) -> "EmbeddingRecord":
        """Rehydrate a record from stored metadata and its vector."""
        return cls(
            owner_id=properties["owner_id"],
            email_id=properties["email_id"],
            vector=tuple(float(value) for value in vector),
            embedded_text=properties.get("embedded_text", ""),
            created_at=_parse_timestamp(properties["created_at"]),
            updated_at=_parse_timestamp(properties["updated_at"]),
        )


def _parse_timestamp(value: object) -> datetime:
    # Chroma metadata holds ISO strings.
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
