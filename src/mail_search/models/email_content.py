"""Canonical searchable text recovered from a provider message."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

BODY_FROM_PLAIN = "text/plain"
BODY_FROM_HTML = "text/html"
BODY_FROM_SINGLE_PART = "body"
BODY_FROM_SNIPPET = "snippet"


@dataclass(frozen=True)
class EmailContent:
    """Fields extracted from one message. Built once per extraction call."""

    subject: str
    from_header: str
    to_header: str
    date_header: str
    message_id: str
    body: str
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    body_source: str = ""

    @property
    def body_is_html(self) -> bool:
        return self.body_source == BODY_FROM_HTML
