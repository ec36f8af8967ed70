"""Build the single string per email that is handed to the embedding provider."""

from __future__ import annotations

from .extraction import DEFAULT_SUBJECT, strip_markup
from .models.email_content import EmailContent

DEFAULT_MAX_CHARS = 10_000
DEFAULT_BODY_CHARS = 5_000


def build_embedding_text(
    content: EmailContent,
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
    body_chars: int = DEFAULT_BODY_CHARS,
) -> str:
    """Join subject and body with a blank line, truncated to ``max_chars``.

    Returns ``""`` when neither a real subject nor a body is available.
    """
    subject = content.subject.strip()
    if subject == DEFAULT_SUBJECT:
        subject = ""

    body = strip_markup(content.body) if content.body_is_html else content.body
    body = body.strip()[:body_chars]

    text = "\n\n".join(part for part in (subject, body) if part)
    return text[:max_chars]


__all__ = ["DEFAULT_BODY_CHARS", "DEFAULT_MAX_CHARS", "build_embedding_text"]
