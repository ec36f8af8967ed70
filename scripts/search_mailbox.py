"""CLI for semantic search over embedded Gmail messages."""

from __future__ import annotations

import argparse
import logging
import sys

from gmail_source.gmail_client import GmailClient
from mail_search.config import get_settings
from mail_search.embeddings import create_embedding_provider
from mail_search.errors import ConfigurationError, DependencyError, ValidationError
from mail_search.history import SearchHistoryService
from mail_search.search import DEFAULT_LIMIT, DEFAULT_THRESHOLD, SemanticSearchEngine
from mail_search.vector_store import create_vector_store


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("query", help="Free text describing the emails to find.")
    parser.add_argument("--owner", required=True, help="Owner id whose embeddings are searched.")
    parser.add_argument("--limit", type=int, default=DEFAULT_LIMIT, help="Maximum number of results (1-50).")
    parser.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_THRESHOLD,
        help="Minimum similarity between 0 and 1.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = get_settings()

    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")

    gmail_client = GmailClient(settings=settings)
    engine = SemanticSearchEngine(
        create_embedding_provider(settings),
        create_vector_store(settings),
        gmail_client,
        settings=settings,
        history=SearchHistoryService.from_settings(settings),
    )
    try:
        engine.verify_dimension()
        response = engine.search(args.owner, args.query, limit=args.limit, threshold=args.threshold)
    except ValidationError as exc:
        print(f"Invalid search: {exc}", file=sys.stderr)
        return 2
    except ConfigurationError as exc:
        print(f"Search is misconfigured: {exc}", file=sys.stderr)
        return 1
    except DependencyError:
        logging.exception("Search failed")
        print("Search unavailable, please retry.", file=sys.stderr)
        return 1

    if not response.results:
        print("No matching emails.")
        return 0
    for result in response.results:
        sender = result.sender.name or result.sender.email or "<unknown sender>"
        print(f"[{result.similarity:.2f}] {result.subject}")
        print(f"From: {sender}")
        if result.preview:
            print(f"Preview: {result.preview.strip()}")
        print("-" * 40)
    print(f"Showing {len(response.results)} of {response.total} matches.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
