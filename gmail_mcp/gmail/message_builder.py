"""Secure message builder — structured request in, RFC 5322 bytes out.

Every header-bound value goes through ``sanitize_header_value`` before it
reaches the message, every recipient is syntax-checked, and every
attachment path is vetted by the path guard and read in full before any
part is assembled.  A build either returns complete bytes or raises.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from email import policy
from email.message import EmailMessage
from pathlib import Path

from gmail_mcp.errors import InvalidInput
from gmail_mcp.gmail.types import SecureMessageRequest
from gmail_mcp.security.path_guard import PathGuard
from gmail_mcp.security.sanitize import is_valid_email, sanitize_header_value

logger = logging.getLogger(__name__)

# CRLF line endings, RFC 2047 encoded-words for non-ASCII headers, and
# 7-bit-safe transfer encodings for bodies.
_POLICY = policy.SMTP.clone(cte_type="7bit")


@dataclass(frozen=True)
class _AttachmentFile:
    filename: str
    data: bytes
    maintype: str
    subtype: str


def build_message(request: SecureMessageRequest, guard: PathGuard) -> bytes:
    """Assemble a wire-ready message.

    Content type follows the bodies given: plain only → ``text/plain``;
    plain + HTML → ``multipart/alternative`` (plain first); HTML only →
    ``text/html``.  Attachments wrap the result in ``multipart/mixed``.

    Bodies are line-normalised on the way in: every line break (including a
    lone ``\\r``) becomes CRLF and a final CRLF is appended.  The plain part
    is normalised the same way in both the plain-only and the alternative
    shape.

    Raises:
        InvalidInput: no recipients, a malformed address, or an attachment
            that does not exist or cannot be read.
        SecurityBlocked: an attachment path is vetoed by the path guard.
    """
    if not request.to:
        raise InvalidInput("At least one recipient is required")
    _validate_recipients([*request.to, *request.cc, *request.bcc])

    files = [_read_attachment(path, guard) for path in request.attachments]

    msg = EmailMessage(policy=_POLICY)
    msg["To"] = _address_list(request.to)
    if request.cc:
        msg["Cc"] = _address_list(request.cc)
    if request.bcc:
        msg["Bcc"] = _address_list(request.bcc)
    msg["Subject"] = sanitize_header_value(request.subject)

    if request.in_reply_to:
        reply_to_id = sanitize_header_value(request.in_reply_to)
        msg["In-Reply-To"] = reply_to_id
        msg["References"] = reply_to_id

    if request.html_body and request.body:
        msg.set_content(request.body)
        msg.add_alternative(request.html_body, subtype="html")
    elif request.html_body:
        msg.set_content(request.html_body, subtype="html")
    else:
        msg.set_content(request.body)

    for f in files:
        msg.add_attachment(f.data, maintype=f.maintype, subtype=f.subtype, filename=f.filename)

    logger.debug(
        "Built %s message for %d recipient(s), %d attachment(s)",
        msg.get_content_type(),
        len(request.to) + len(request.cc) + len(request.bcc),
        len(files),
    )
    return msg.as_bytes()


# ── Helpers ────────────────────────────────────────────────────────────────────


def _validate_recipients(addresses: list[str]) -> None:
    for address in addresses:
        if not is_valid_email(address):
            raise InvalidInput(f"Recipient email address is invalid: {address}")


def _address_list(addresses: list[str]) -> str:
    return ", ".join(sanitize_header_value(a) for a in addresses)


def _read_attachment(path: str, guard: PathGuard) -> _AttachmentFile:
    resolved: Path = guard.ensure_allowed(path, purpose="Attachment")
    if not resolved.is_file():
        raise InvalidInput(f"File does not exist: {path}")
    try:
        data = resolved.read_bytes()
    except OSError as exc:
        raise InvalidInput(f"File is not readable: {path}") from exc

    content_type, encoding = mimetypes.guess_type(resolved.name)
    if content_type is None or encoding is not None:
        content_type = "application/octet-stream"
    maintype, subtype = content_type.split("/", 1)
    return _AttachmentFile(
        filename=sanitize_header_value(resolved.name),
        data=data,
        maintype=maintype,
        subtype=subtype,
    )
