"""CLI for embedding Gmail messages into the vector store."""

from __future__ import annotations

import argparse
import logging

from gmail_source.gmail_client import GmailClient
from mail_search.config import get_settings
from mail_search.embeddings import create_embedding_provider, probe_dimension
from mail_search.ingestion import IngestionPipeline
from mail_search.vector_store import create_vector_store


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--owner", required=True, help="Owner id the embeddings are stored under.")
    parser.add_argument("--ids", nargs="*", default=None, help="Explicit Gmail message ids to ingest.")
    parser.add_argument("--query", default="", help="Gmail search query used when --ids is not given.")
    parser.add_argument("--limit", type=int, default=50, help="Maximum number of messages to list.")
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Leave emails that already have an embedding untouched.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = get_settings()

    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")

    gmail_client = GmailClient(settings=settings)
    provider = create_embedding_provider(settings)
    probe_dimension(provider, settings.embedding_dimension)
    store = create_vector_store(settings)

    email_ids = args.ids or gmail_client.list_message_ids(args.owner, query=args.query, limit=args.limit)
    if not email_ids:
        logging.info("No emails found for owner %s.", args.owner)
        return 0

    pipeline = IngestionPipeline(gmail_client, provider, store, settings=settings)
    report = pipeline.ingest(args.owner, email_ids, skip_existing=args.skip_existing)

    logging.info(
        "Embedded %d emails (%d skipped, %d failed).",
        len(report.succeeded),
        len(report.skipped),
        len(report.failed),
    )
    for email_id, reason in sorted(report.failed.items()):
        logging.warning("Failed %s: %s", email_id, reason.value)
    return 1 if report.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
