"""Core package exports for the mail_search application."""

from .config import Settings, get_settings
from .embeddings import LangChainEmbeddingProvider, create_embedding_provider
from .extraction import extract, strip_markup
from .history import SearchHistoryService
from .ingestion import IngestionPipeline
from .search import SemanticSearchEngine
from .suggestions import SuggestionService
from .text_builder import build_embedding_text
from .vector_store import ChromaVectorStore, InMemoryVectorStore, create_vector_store

__all__ = [
    "Settings",
    "get_settings",
    "LangChainEmbeddingProvider",
    "create_embedding_provider",
    "extract",
    "strip_markup",
    "build_embedding_text",
    "SearchHistoryService",
    "IngestionPipeline",
    "SemanticSearchEngine",
    "SuggestionService",
    "ChromaVectorStore",
    "InMemoryVectorStore",
    "create_vector_store",
]
