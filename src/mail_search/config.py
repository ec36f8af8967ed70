"""Application configuration utilities."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# Load secrets from a .env file if present. The file is expected at the project root.
PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(PROJECT_ROOT / ".env")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc


@dataclass(frozen=True)
class Settings:
    """Strongly typed configuration wrapper."""

    google_client_id: str = field(default_factory=lambda: os.getenv("GOOGLE_CLIENT_ID", ""))
    google_client_secret: str = field(default_factory=lambda: os.getenv("GOOGLE_CLIENT_SECRET", ""))
    google_refresh_token: str | None = field(default_factory=lambda: os.getenv("GOOGLE_REFRESH_TOKEN"))
    gmail_user_id: str = field(default_factory=lambda: os.getenv("GMAIL_USER_ID", "me"))
    embedding_provider: str = field(default_factory=lambda: os.getenv("EMBEDDING_PROVIDER", "openai"))
    openai_api_key: str | None = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    embedding_model: str = field(default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"))
    embedding_dimension: int = field(default_factory=lambda: _get_int("EMBEDDING_DIMENSION", 768))
    embedding_max_chars: int = field(default_factory=lambda: _get_int("EMBEDDING_MAX_CHARS", 10_000))
    embedding_body_chars: int = field(default_factory=lambda: _get_int("EMBEDDING_BODY_CHARS", 5_000))
    request_timeout: float = field(default_factory=lambda: _get_float("REQUEST_TIMEOUT", 30.0))
    vector_store_backend: str = field(default_factory=lambda: os.getenv("VECTOR_STORE_BACKEND", "chroma"))
    vector_store_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("VECTOR_STORE_DIR", str((PROJECT_ROOT / "var" / "chroma").resolve()))
        ).expanduser()
    )
    collection_name: str = field(default_factory=lambda: os.getenv("VECTOR_COLLECTION", "email_embeddings"))
    history_db_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("HISTORY_DB_PATH", str((PROJECT_ROOT / "var" / "search_history.db").resolve()))
        ).expanduser()
    )
    ingest_max_workers: int = field(default_factory=lambda: _get_int("INGEST_MAX_WORKERS", 4))
    search_overfetch_factor: int = field(default_factory=lambda: _get_int("SEARCH_OVERFETCH_FACTOR", 3))
    search_overfetch_cap: int = field(default_factory=lambda: _get_int("SEARCH_OVERFETCH_CAP", 100))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    @property
    def google_scopes(self) -> tuple[str, ...]:
        """Return the OAuth scopes required for Gmail access."""
        return ("https://www.googleapis.com/auth/gmail.readonly",)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
