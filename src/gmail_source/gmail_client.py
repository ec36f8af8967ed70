"""Gmail API client used as message source and metadata lookup."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.header import decode_header, make_header
from email.errors import HeaderParseError
from email.utils import parseaddr
from typing import Any, Callable, Dict, List, Optional, Sequence

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from mail_search.config import Settings, get_settings
from mail_search.errors import DependencyError, MessageNotFoundError
from mail_search.extraction import header_value
from mail_search.models.search import EmailSummary, Sender

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SUMMARY_HEADERS = ["Subject", "From", "Date"]

CredentialsFactory = Callable[[str], Credentials]


def _decode_header(value: str | None) -> str:
    """Decode RFC 2047 encoded headers."""
    if not value:
        return ""
    try:
        return str(make_header(decode_header(value)))
    except (HeaderParseError, LookupError, UnicodeDecodeError):
        return value


def refresh_token_credentials(settings: Settings) -> Credentials:
    """Credentials for the single mailbox configured through the environment."""
    if not settings.google_refresh_token:
        raise ValueError("GOOGLE_REFRESH_TOKEN must be set before using the Gmail client.")

    creds = Credentials(
        None,
        refresh_token=settings.google_refresh_token,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        token_uri=TOKEN_URI,
        scopes=list(settings.google_scopes),
    )
    if creds.expired and creds.refresh_token:
        creds.refresh(Request())
    return creds


class GmailClient:
    """Fetches raw messages and display summaries from the Gmail API.

    ``credentials_for`` maps an owner id to that owner's Gmail credentials;
    without it every owner resolves to the refresh token from the settings.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        credentials_for: Optional[CredentialsFactory] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._credentials_for = credentials_for or (lambda _owner: refresh_token_credentials(self._settings))

    def _service(self, owner_id: str):
        # Discovery resources are not thread-safe, so each call builds its own.
        credentials = self._credentials_for(owner_id)
        return build("gmail", "v1", credentials=credentials, cache_discovery=False)

    def _get(self, owner_id: str, email_id: str, **params: Any) -> Dict[str, Any]:
        try:
            return (
                self._service(owner_id)
                .users()
                .messages()
                .get(userId=self._settings.gmail_user_id, id=email_id, **params)
                .execute()
            )
        except HttpError as exc:
            if exc.resp.status == 404:
                raise MessageNotFoundError(email_id) from exc
            raise DependencyError(f"Gmail request for {email_id} failed with status {exc.resp.status}") from exc

    def fetch(self, owner_id: str, email_id: str) -> Dict[str, Any]:
        """Return the full raw payload of a message."""
        return self._get(owner_id, email_id, format="full")

    def get_summary(self, owner_id: str, email_id: str) -> Optional[EmailSummary]:
        """Return display metadata for a message, or ``None`` when it is gone."""
        try:
            message = self._get(owner_id, email_id, format="metadata", metadataHeaders=SUMMARY_HEADERS)
        except MessageNotFoundError:
            logger.info("Email %s not found while hydrating search results", email_id)
            return None
        return self.summarize(message)

    @staticmethod
    def summarize(message: Dict[str, Any]) -> EmailSummary:
        name, address = parseaddr(_decode_header(header_value(message, "from")))
        timestamp = None
        internal_date = message.get("internalDate")
        if internal_date:
            timestamp = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
        return EmailSummary(
            email_id=message.get("id", ""),
            subject=_decode_header(header_value(message, "subject")) or "No Subject",
            preview=message.get("snippet") or "",
            sender=Sender(name=name, email=address),
            timestamp=timestamp,
            is_read="UNREAD" not in (message.get("labelIds") or []),
        )

    def list_message_ids(
        self,
        owner_id: str,
        query: str = "",
        limit: int = 50,
        label_ids: Optional[Sequence[str]] = None,
    ) -> list[str]:
        """Ids of the most recent messages matching a Gmail search query."""
        service = self._service(owner_id)
        params: Dict[str, Any] = {"userId": self._settings.gmail_user_id, "q": query, "maxResults": min(limit, 500)}
        if label_ids:
            params["labelIds"] = list(label_ids)
        request = service.users().messages().list(**params)
        ids: list[str] = []
        while request is not None and len(ids) < limit:
            try:
                response = request.execute()
            except HttpError as exc:
                raise DependencyError(f"Gmail list request failed with status {exc.resp.status}") from exc
            ids.extend(item["id"] for item in response.get("messages", []))
            request = service.users().messages().list_next(previous_request=request, previous_response=response)
        return ids[:limit]

    def recent_summaries(self, owner_id: str, limit: int = 100) -> List[EmailSummary]:
        """Summaries of the latest inbox messages, newest first."""
        summaries = []
        for email_id in self.list_message_ids(owner_id, limit=limit, label_ids=["INBOX"]):
            summary = self.get_summary(owner_id, email_id)
            if summary is not None:
                summaries.append(summary)
        return summaries


__all__ = ["GmailClient", "refresh_token_credentials"]
