"""Tests for build_message — bytes are parsed back with the stdlib email parser."""

import email
from email import policy
from email.message import EmailMessage
from pathlib import Path

import pytest

from gmail_mcp.errors import InvalidInput, SecurityBlocked
from gmail_mcp.gmail.message_builder import build_message
from gmail_mcp.gmail.types import SecureMessageRequest
from gmail_mcp.security.path_guard import PathGuard


# ── Helpers ────────────────────────────────────────────────────────────────────


def _parse(raw: bytes) -> EmailMessage:
    return email.message_from_bytes(raw, policy=policy.default)


def _text(part: EmailMessage) -> str:
    return part.get_content().replace("\r\n", "\n").rstrip("\n")


def _request(**overrides) -> SecureMessageRequest:
    fields = {"to": ["bob@example.com"], "subject": "Hello", "body": "Hi Bob"}
    fields.update(overrides)
    return SecureMessageRequest(**fields)


# ── Bodies ─────────────────────────────────────────────────────────────────────


class TestBodies:
    def test_plain_only(self, guard: PathGuard) -> None:
        msg = _parse(build_message(_request(), guard))
        assert msg.get_content_type() == "text/plain"
        assert _text(msg) == "Hi Bob"
        assert msg["To"] == "bob@example.com"
        assert msg["Subject"] == "Hello"

    def test_plain_and_html_is_alternative_plain_first(self, guard: PathGuard) -> None:
        msg = _parse(build_message(_request(html_body="<p>Hi Bob</p>"), guard))
        assert msg.get_content_type() == "multipart/alternative"
        parts = list(msg.iter_parts())
        assert [p.get_content_type() for p in parts] == ["text/plain", "text/html"]
        assert _text(parts[1]) == "<p>Hi Bob</p>"

    def test_plain_part_matches_plain_only_message(self, guard: PathGuard) -> None:
        body = "Hi Bob,\n\nThe numbers are in; see below.\n  indented line\nnaïve café"
        plain_only = _parse(build_message(_request(body=body), guard))
        alternative = _parse(build_message(_request(body=body, html_body="<p>Hi</p>"), guard))
        plain_part = next(alternative.iter_parts())
        assert plain_part.get_content() == plain_only.get_content()
        assert _text(plain_part) == body

    def test_line_breaks_normalised_to_crlf(self, guard: PathGuard) -> None:
        plain_only = _parse(build_message(_request(body="line1\rline2"), guard))
        alternative = _parse(build_message(_request(body="line1\rline2", html_body="<p>x</p>"), guard))
        assert _text(plain_only) == "line1\nline2"
        assert _text(next(alternative.iter_parts())) == "line1\nline2"

    def test_html_only(self, guard: PathGuard) -> None:
        msg = _parse(build_message(_request(body="", html_body="<b>x</b>"), guard))
        assert msg.get_content_type() == "text/html"

    def test_wire_format_uses_crlf(self, guard: PathGuard) -> None:
        raw = build_message(_request(), guard)
        assert b"\r\n" in raw
        assert b"\n" not in raw.replace(b"\r\n", b"")

    def test_non_ascii_subject_is_encoded_word(self, guard: PathGuard) -> None:
        raw = build_message(_request(subject="Grüße aus Köln"), guard)
        header_block = raw.split(b"\r\n\r\n", 1)[0]
        assert b"=?utf-8?" in header_block.lower()
        assert _parse(raw)["Subject"] == "Grüße aus Köln"

    def test_non_ascii_body_survives(self, guard: PathGuard) -> None:
        msg = _parse(build_message(_request(body="naïve café ☕"), guard))
        assert _text(msg) == "naïve café ☕"


# ── Headers ────────────────────────────────────────────────────────────────────


class TestHeaders:
    def test_crlf_in_subject_cannot_inject_header(self, guard: PathGuard) -> None:
        raw = build_message(_request(subject="Hi\r\nBcc: evil@attacker.com"), guard)
        msg = _parse(raw)
        assert msg["Bcc"] is None
        assert msg["Subject"] == "HiBcc: evil@attacker.com"

    def test_cc_and_bcc(self, guard: PathGuard) -> None:
        msg = _parse(
            build_message(_request(cc=["c@example.com", "d@example.com"], bcc=["e@example.com"]), guard)
        )
        assert msg["Cc"] == "c@example.com, d@example.com"
        assert msg["Bcc"] == "e@example.com"

    def test_reply_headers(self, guard: PathGuard) -> None:
        msg = _parse(build_message(_request(in_reply_to="<abc@mail.example.com>"), guard))
        assert msg["In-Reply-To"] == "<abc@mail.example.com>"
        assert msg["References"] == "<abc@mail.example.com>"

    def test_no_reply_headers_by_default(self, guard: PathGuard) -> None:
        msg = _parse(build_message(_request(), guard))
        assert msg["In-Reply-To"] is None
        assert msg["References"] is None


# ── Validation ─────────────────────────────────────────────────────────────────


class TestValidation:
    def test_requires_recipient(self, guard: PathGuard) -> None:
        with pytest.raises(InvalidInput, match="recipient"):
            build_message(_request(to=[]), guard)

    @pytest.mark.parametrize("field", ["to", "cc", "bcc"])
    def test_rejects_malformed_address(self, guard: PathGuard, field: str) -> None:
        with pytest.raises(InvalidInput, match="not-an-address"):
            build_message(_request(**{field: ["not-an-address"]}), guard)


# ── Attachments ────────────────────────────────────────────────────────────────


class TestAttachments:
    def test_attachment_wraps_in_mixed(self, guard: PathGuard, tmp_path: Path) -> None:
        doc = tmp_path / "report.pdf"
        doc.write_bytes(b"%PDF-1.4 fake")
        msg = _parse(build_message(_request(attachments=[str(doc)]), guard))
        assert msg.get_content_type() == "multipart/mixed"
        attachments = list(msg.iter_attachments())
        assert len(attachments) == 1
        assert attachments[0].get_filename() == "report.pdf"
        assert attachments[0].get_content_type() == "application/pdf"
        assert attachments[0].get_content() == b"%PDF-1.4 fake"

    def test_alternative_body_with_attachment(self, guard: PathGuard, tmp_path: Path) -> None:
        doc = tmp_path / "notes.txt"
        doc.write_text("notes")
        msg = _parse(build_message(_request(html_body="<p>x</p>", attachments=[str(doc)]), guard))
        assert msg.get_content_type() == "multipart/mixed"
        first = next(msg.iter_parts())
        assert first.get_content_type() == "multipart/alternative"

    def test_unknown_extension_is_octet_stream(self, guard: PathGuard, tmp_path: Path) -> None:
        blob = tmp_path / "data.weirdext"
        blob.write_bytes(b"\x00\x01")
        msg = _parse(build_message(_request(attachments=[str(blob)]), guard))
        assert next(msg.iter_attachments()).get_content_type() == "application/octet-stream"

    def test_sensitive_path_blocked(self, guard: PathGuard) -> None:
        with pytest.raises(SecurityBlocked, match="Attachment blocked"):
            build_message(_request(attachments=["~/.ssh/id_rsa"]), guard)

    def test_credential_store_path_blocked(self, guard: PathGuard, accounts_dir: Path) -> None:
        secret = accounts_dir / "bob@example.com" / "notes.txt"
        secret.parent.mkdir(parents=True)
        secret.write_text("x")
        with pytest.raises(SecurityBlocked):
            build_message(_request(attachments=[str(secret)]), guard)

    def test_missing_file(self, guard: PathGuard, tmp_path: Path) -> None:
        with pytest.raises(InvalidInput, match="File does not exist"):
            build_message(_request(attachments=[str(tmp_path / "nope.pdf")]), guard)

    def test_directory_is_not_a_file(self, guard: PathGuard, tmp_path: Path) -> None:
        with pytest.raises(InvalidInput):
            build_message(_request(attachments=[str(tmp_path)]), guard)
