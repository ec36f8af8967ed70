"""Exception hierarchy shared by the ingestion and search paths."""

from __future__ import annotations


class MailSearchError(Exception):
    """Base class for every error raised by the core."""


class ValidationError(MailSearchError):
    """Input rejected before any external call was made."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class DependencyError(MailSearchError):
    """An external collaborator (provider, store, mailbox) failed."""


class MessageNotFoundError(DependencyError):
    """The message source has no message with the requested id."""

    def __init__(self, email_id: str) -> None:
        super().__init__(f"Message {email_id} not found")
        self.email_id = email_id


class ConfigurationError(MailSearchError):
    """The deployment is misconfigured, e.g. provider and corpus dimensions differ."""


class OperationCancelled(MailSearchError):
    """The caller cancelled the request while it was in flight."""


__all__ = [
    "MailSearchError",
    "ValidationError",
    "DependencyError",
    "MessageNotFoundError",
    "ConfigurationError",
    "OperationCancelled",
]
