"""Gmail API adapters for the message source and metadata lookups."""

from .gmail_client import GmailClient

__all__ = ["GmailClient"]
