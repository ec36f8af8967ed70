"""Recover canonical searchable text from Gmail API message payloads."""

from __future__ import annotations

import base64
import binascii
import re
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .models.email_content import (
    BODY_FROM_HTML,
    BODY_FROM_PLAIN,
    BODY_FROM_SINGLE_PART,
    BODY_FROM_SNIPPET,
    EmailContent,
)

DEFAULT_SUBJECT = "No Subject"

_STYLE_BLOCK = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_SCRIPT_BLOCK = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)


def decode_base64url(data: str) -> str:
    """Decode a URL-safe base64 payload, restoring any stripped padding."""
    padding = "=" * ((4 - len(data) % 4) % 4)
    standard = data.replace("-", "+").replace("_", "/") + padding
    return base64.b64decode(standard.encode("ascii")).decode("utf-8", errors="replace")


def _safe_decode(data: str) -> str:
    # A corrupt part is treated as empty so the next fallback can apply.
    try:
        return decode_base64url(data)
    except (binascii.Error, ValueError):
        return ""


def strip_markup(html: str) -> str:
    """Reduce an HTML body to plain text."""
    text = _STYLE_BLOCK.sub("", html)
    text = _SCRIPT_BLOCK.sub("", text)
    text = _TAG.sub("", text)
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    return text.strip()


def _headers(message: Mapping[str, Any]) -> list:
    return (message.get("payload") or {}).get("headers") or []


def header_value(message: Mapping[str, Any], name: str) -> Optional[str]:
    """Return the first header matching ``name`` case-insensitively."""
    wanted = name.lower()
    for header in _headers(message):
        if (header.get("name") or "").lower() == wanted:
            return header.get("value")
    return None


def _header_map(message: Mapping[str, Any]) -> Mapping[str, str]:
    mapping: Dict[str, str] = {}
    for header in _headers(message):
        name = header.get("name")
        if name:
            mapping.setdefault(name.lower(), header.get("value") or "")
    return MappingProxyType(mapping)


def _find_part(part: Mapping[str, Any], mime_type: str) -> Optional[str]:
    data = (part.get("body") or {}).get("data")
    if part.get("mimeType") == mime_type and data:
        return _safe_decode(data)
    for child in part.get("parts") or []:
        found = _find_part(child, mime_type)
        if found:
            return found
    return None


def _resolve_body(message: Mapping[str, Any]) -> tuple[str, str]:
    payload = message.get("payload") or {}

    if payload.get("parts"):
        for mime_type in (BODY_FROM_PLAIN, BODY_FROM_HTML):
            body = _find_part(payload, mime_type)
            if body:
                return body, mime_type
    else:
        data = (payload.get("body") or {}).get("data")
        if data:
            body = _safe_decode(data)
            if body:
                return body, BODY_FROM_SINGLE_PART

    snippet = message.get("snippet") or ""
    if snippet:
        return snippet, BODY_FROM_SNIPPET
    return "", ""


def extract(message: Mapping[str, Any]) -> EmailContent:
    """Extract subject, address headers and body text from a raw message.

    Never raises for missing fields: the subject falls back to ``"No Subject"``
    and the remaining headers to empty strings. The body is the first
    ``text/plain`` part found depth-first, else the first ``text/html`` part,
    else the single-part body, else the snippet, else ``""``.
    """
    body, source = _resolve_body(message)
    return EmailContent(
        subject=header_value(message, "subject") or DEFAULT_SUBJECT,
        from_header=header_value(message, "from") or "",
        to_header=header_value(message, "to") or "",
        date_header=header_value(message, "date") or "",
        message_id=header_value(message, "message-id") or "",
        body=body,
        headers=_header_map(message),
        body_source=source,
    )


__all__ = ["DEFAULT_SUBJECT", "decode_base64url", "extract", "header_value", "strip_markup"]
