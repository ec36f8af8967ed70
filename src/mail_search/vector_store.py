"""Vector store capability plus ChromaDB and in-memory implementations."""

from __future__ import annotations

import math
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Set, Tuple
from uuid import NAMESPACE_OID, uuid5

import chromadb
from chromadb.api.models.Collection import Collection
from chromadb.errors import ChromaError

from .config import Settings, get_settings
from .errors import DependencyError, ValidationError
from .models.embedding_record import EmbeddingRecord
from .models.search import VectorMatch


class VectorStore(Protocol):
    """Persistence for (owner_id, email_id) -> vector, scoped by owner on every call."""

    @property
    def dimension(self) -> int: ...

    def upsert(self, owner_id: str, email_id: str, vector: Sequence[float], text: str) -> EmbeddingRecord: ...

    def query_nearest(self, owner_id: str, query_vector: Sequence[float], k: int) -> List[VectorMatch]: ...

    def get(self, owner_id: str, email_id: str) -> Optional[EmbeddingRecord]: ...

    def delete(self, owner_id: str, email_id: str) -> None: ...

    def count(self, owner_id: str) -> int: ...

    def existing_ids(self, owner_id: str, email_ids: Iterable[str]) -> Set[str]: ...

    def stored_dimension(self) -> Optional[int]: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def record_id(owner_id: str, email_id: str) -> str:
    """Stable storage id for an (owner, email) pair."""
    return str(uuid5(NAMESPACE_OID, f"{len(owner_id)}:{owner_id}:{email_id}"))


def validate_vector(vector: Sequence[float], dimension: int) -> None:
    if len(vector) != dimension:
        raise ValidationError("vector", f"expected {dimension} dimensions, got {len(vector)}")


def similarity_from_distance(distance: float) -> float:
    """Map a cosine distance onto a similarity score in [0, 1]."""
    return min(1.0, max(0.0, 1.0 - float(distance)))


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    dot = sum(a * b for a, b in zip(left, right))
    norm = math.sqrt(sum(a * a for a in left)) * math.sqrt(sum(b * b for b in right))
    if norm == 0.0:
        return 0.0
    return min(1.0, max(0.0, dot / norm))


@contextmanager
def _chroma_errors(action: str) -> Iterator[None]:
    try:
        yield
    except ChromaError as exc:
        raise DependencyError(f"Vector store failed to {action}: {exc}") from exc


class ChromaVectorStore:
    """Wrapper around a ChromaDB collection using cosine HNSW space.

    Every Chroma failure surfaces as ``DependencyError``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: chromadb.ClientAPI | None = None,
        collection_name: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._dimension = self._settings.embedding_dimension
        self._client = client or self._create_client(self._settings.vector_store_dir)
        with _chroma_errors("open collection"):
            self._collection = self._client.get_or_create_collection(
                name=collection_name or self._settings.collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None,
            )

    def _create_client(self, path: Path) -> chromadb.ClientAPI:
        path.mkdir(parents=True, exist_ok=True)
        return chromadb.PersistentClient(path=str(path))

    @property
    def collection(self) -> Collection:
        return self._collection

    @property
    def dimension(self) -> int:
        return self._dimension

    def stored_dimension(self) -> Optional[int]:
        """Width of the vectors already in the collection, ``None`` when it is empty."""
        with _chroma_errors("read stored dimension"):
            results = self._collection.get(limit=1, include=["embeddings"])
        if not results["ids"]:
            return None
        return len(results["embeddings"][0])

    def upsert(self, owner_id: str, email_id: str, vector: Sequence[float], text: str) -> EmbeddingRecord:
        validate_vector(vector, self._dimension)
        rid = record_id(owner_id, email_id)
        now = _now()
        with _chroma_errors("read embedding"):
            existing = self._collection.get(ids=[rid], include=["metadatas"])
        created_at = now
        if existing["ids"]:
            created_at = datetime.fromisoformat(existing["metadatas"][0]["created_at"])

        record = EmbeddingRecord(
            owner_id=owner_id,
            email_id=email_id,
            vector=tuple(float(value) for value in vector),
            embedded_text=text,
            created_at=created_at,
            updated_at=now,
        )
        metadata = record.to_properties()
        document = metadata.pop("embedded_text")
        with _chroma_errors("store embedding"):
            self._collection.upsert(
                ids=[rid],
                embeddings=[list(record.vector)],
                documents=[document],
                metadatas=[metadata],
            )
        return record

    def query_nearest(self, owner_id: str, query_vector: Sequence[float], k: int) -> List[VectorMatch]:
        with _chroma_errors("query embeddings"):
            size = self._collection.count()
            if size == 0 or k <= 0:
                return []
            results = self._collection.query(
                query_embeddings=[list(query_vector)],
                n_results=min(k, size),
                where={"owner_id": owner_id},
                include=["metadatas", "distances"],
            )
        matches: List[VectorMatch] = []
        for metadata, distance in zip(results["metadatas"][0], results["distances"][0]):
            if metadata.get("owner_id") != owner_id:
                continue
            matches.append(
                VectorMatch(
                    email_id=metadata["email_id"],
                    similarity=similarity_from_distance(distance),
                    updated_at=datetime.fromisoformat(metadata["updated_at"]),
                )
            )
        return matches

    def get(self, owner_id: str, email_id: str) -> Optional[EmbeddingRecord]:
        with _chroma_errors("read embedding"):
            results = self._collection.get(
                ids=[record_id(owner_id, email_id)],
                include=["metadatas", "documents", "embeddings"],
            )
        if not results["ids"]:
            return None
        metadata = dict(results["metadatas"][0])
        if metadata.get("owner_id") != owner_id:
            return None
        metadata["embedded_text"] = results["documents"][0] or ""
        return EmbeddingRecord.from_properties(metadata, results["embeddings"][0])

    def delete(self, owner_id: str, email_id: str) -> None:
        with _chroma_errors("delete embedding"):
            self._collection.delete(ids=[record_id(owner_id, email_id)])

    def count(self, owner_id: str) -> int:
        with _chroma_errors("count embeddings"):
            results = self._collection.get(where={"owner_id": owner_id}, include=["metadatas"])
        return len(results["ids"])

    def existing_ids(self, owner_id: str, email_ids: Iterable[str]) -> Set[str]:
        wanted = {record_id(owner_id, email_id): email_id for email_id in email_ids}
        if not wanted:
            return set()
        with _chroma_errors("read embeddings"):
            results = self._collection.get(ids=list(wanted), include=["metadatas"])
        return {
            wanted[rid]
            for rid, metadata in zip(results["ids"], results["metadatas"])
            if metadata.get("owner_id") == owner_id
        }


class InMemoryVectorStore:
    """Exact cosine search over a dict; used for tests and local runs."""

    def __init__(self, dimension: int) -> None:
        self._dimension = dimension
        self._records: Dict[Tuple[str, str], EmbeddingRecord] = {}
        self._lock = threading.Lock()

    @property
    def dimension(self) -> int:
        return self._dimension

    def upsert(self, owner_id: str, email_id: str, vector: Sequence[float], text: str) -> EmbeddingRecord:
        validate_vector(vector, self._dimension)
        now = _now()
        with self._lock:
            existing = self._records.get((owner_id, email_id))
            record = EmbeddingRecord(
                owner_id=owner_id,
                email_id=email_id,
                vector=tuple(float(value) for value in vector),
                embedded_text=text,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self._records[(owner_id, email_id)] = record
        return record

    def query_nearest(self, owner_id: str, query_vector: Sequence[float], k: int) -> List[VectorMatch]:
        with self._lock:
            owned = [record for (owner, _), record in self._records.items() if owner == owner_id]
        matches = [
            VectorMatch(
                email_id=record.email_id,
                similarity=cosine_similarity(query_vector, record.vector),
                updated_at=record.updated_at,
            )
            for record in owned
        ]
        matches.sort(key=lambda match: match.similarity, reverse=True)
        return matches[: max(k, 0)]

    def get(self, owner_id: str, email_id: str) -> Optional[EmbeddingRecord]:
        with self._lock:
            return self._records.get((owner_id, email_id))

    def delete(self, owner_id: str, email_id: str) -> None:
        with self._lock:
            self._records.pop((owner_id, email_id), None)

    def count(self, owner_id: str) -> int:
        with self._lock:
            return sum(1 for owner, _ in self._records if owner == owner_id)

    def stored_dimension(self) -> Optional[int]:
        with self._lock:
            record = next(iter(self._records.values()), None)
        return len(record.vector) if record is not None else None

    def existing_ids(self, owner_id: str, email_ids: Iterable[str]) -> Set[str]:
        with self._lock:
            return {email_id for email_id in email_ids if (owner_id, email_id) in self._records}


def create_vector_store(settings: Settings | None = None) -> VectorStore:
    """Build the backend selected by ``VECTOR_STORE_BACKEND``."""
    settings = settings or get_settings()
    backend = (settings.vector_store_backend or "chroma").lower()
    if backend == "chroma":
        return ChromaVectorStore(settings=settings)
    if backend == "memory":
        return InMemoryVectorStore(settings.embedding_dimension)
    raise ValueError(f"Unsupported vector store backend: {settings.vector_store_backend}")


__all__ = [
    "ChromaVectorStore",
    "InMemoryVectorStore",
    "VectorStore",
    "cosine_similarity",
    "create_vector_store",
    "record_id",
    "similarity_from_distance",
    "validate_vector",
]
