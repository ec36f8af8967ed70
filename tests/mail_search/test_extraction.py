"""Tests for the content extractor."""

from __future__ import annotations

import base64

from conftest import encode, make_message

from mail_search.extraction import decode_base64url, extract, header_value, strip_markup


class TestBodyResolution:
    """Ordered fallback from plain text to snippet."""

    def test_plain_text_part_nested_deep_in_tree_wins_over_html(self) -> None:
        message = {
            "snippet": "snippet text",
            "payload": {
                "mimeType": "multipart/mixed",
                "parts": [
                    {"mimeType": "text/html", "body": {"data": encode("<p>html first</p>")}},
                    {
                        "mimeType": "multipart/alternative",
                        "parts": [
                            {"mimeType": "application/pdf", "body": {"attachmentId": "a1"}},
                            {"mimeType": "text/plain", "body": {"data": encode("plain body")}},
                        ],
                    },
                ],
            },
        }

        content = extract(message)

        assert content.body == "plain body"
        assert content.body_source == "text/plain"

    def test_html_only_returns_unstripped_html(self) -> None:
        message = make_message("m1", html="<p>Hello <b>world</b></p>")

        content = extract(message)

        assert content.body == "<p>Hello <b>world</b></p>"
        assert content.body_is_html

    def test_single_part_body_is_decoded(self) -> None:
        message = {"payload": {"mimeType": "text/plain", "body": {"data": encode("single part")}}}

        assert extract(message).body == "single part"

    def test_falls_back_to_snippet(self) -> None:
        message = make_message("m1", snippet="just the snippet")

        content = extract(message)

        assert content.body == "just the snippet"
        assert content.body_source == "snippet"

    def test_empty_body_when_nothing_available(self) -> None:
        content = extract({"payload": {"parts": [{"mimeType": "image/png", "body": {}}]}})

        assert content.body == ""
        assert content.body_source == ""

    def test_multipart_without_readable_parts_uses_snippet(self) -> None:
        message = {
            "snippet": "fallback",
            "payload": {"parts": [{"mimeType": "text/plain", "body": {"size": 0}}]},
        }

        assert extract(message).body == "fallback"

    def test_corrupt_part_data_falls_through(self) -> None:
        message = {
            "snippet": "fallback",
            "payload": {"parts": [{"mimeType": "text/plain", "body": {"data": "a"}}]},
        }

        assert extract(message).body == "fallback"

    def test_empty_message_never_fails(self) -> None:
        content = extract({})

        assert content.subject == "No Subject"
        assert content.from_header == ""
        assert content.to_header == ""
        assert content.date_header == ""
        assert content.message_id == ""
        assert content.body == ""


class TestHeaders:
    def test_lookup_is_case_insensitive(self) -> None:
        upper = {"payload": {"headers": [{"name": "Subject", "value": "Hi"}]}}
        lower = {"payload": {"headers": [{"name": "subject", "value": "Hi"}]}}

        assert extract(upper).subject == extract(lower).subject == "Hi"
        assert header_value(upper, "SUBJECT") == "Hi"

    def test_first_duplicate_header_wins(self) -> None:
        message = {
            "payload": {
                "headers": [
                    {"name": "To", "value": "first@example.com"},
                    {"name": "to", "value": "second@example.com"},
                ]
            }
        }

        content = extract(message)

        assert content.to_header == "first@example.com"
        assert content.headers["to"] == "first@example.com"

    def test_empty_first_header_still_wins(self) -> None:
        message = {
            "payload": {
                "headers": [
                    {"name": "Subject", "value": ""},
                    {"name": "Subject", "value": "Second subject"},
                ]
            }
        }

        content = extract(message)

        assert content.subject == "No Subject"
        assert content.headers["subject"] == ""

    def test_extracts_all_address_fields(self) -> None:
        message = {
            "payload": {
                "headers": [
                    {"name": "From", "value": "a@example.com"},
                    {"name": "To", "value": "b@example.com"},
                    {"name": "Date", "value": "Mon, 1 Jan 2024 10:00:00 +0000"},
                    {"name": "Message-ID", "value": "<abc@mail>"},
                ]
            }
        }

        content = extract(message)

        assert content.subject == "No Subject"
        assert content.from_header == "a@example.com"
        assert content.to_header == "b@example.com"
        assert content.date_header == "Mon, 1 Jan 2024 10:00:00 +0000"
        assert content.message_id == "<abc@mail>"


class TestDecoding:
    def test_restores_url_safe_alphabet(self) -> None:
        assert decode_base64url("PDw_Pz4-") == "<<??>>"

    def test_restores_missing_padding(self) -> None:
        assert decode_base64url("YWJjZA") == "abcd"

    def test_decodes_utf8(self) -> None:
        data = base64.urlsafe_b64encode("caf\u00e9".encode("utf-8")).decode("ascii").rstrip("=")

        assert decode_base64url(data) == "caf\u00e9"

    def test_already_padded_input(self) -> None:
        assert decode_base64url(base64.urlsafe_b64encode(b"ab").decode("ascii")) == "ab"


class TestStripMarkup:
    def test_example_from_inline_markup(self) -> None:
        assert strip_markup("<p>Hi&nbsp;<b>there</b></p>") == "Hi there"

    def test_removes_style_and_script_blocks_with_content(self) -> None:
        html = "<style>p {color: red}</style><SCRIPT type='x'>alert(1)</SCRIPT><div>Body</div>"

        assert strip_markup(html) == "Body"

    def test_decodes_common_entities(self) -> None:
        assert strip_markup("&lt;a&gt; &amp; &quot;b&quot; &#39;c&#39;") == "<a> & \"b\" 'c'"
