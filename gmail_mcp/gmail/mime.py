"""MIME part tree for messages fetched from the Gmail API (``format=full``).

Gmail returns a nested ``payload`` dict; ``MessagePart.from_payload`` turns
it into a typed tree and ``walk()`` visits it depth-first with an explicit
stack, skipping anything nested deeper than ``MAX_PART_DEPTH``.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from gmail_mcp.gmail.types import EmailAttachment

logger = logging.getLogger(__name__)

MAX_PART_DEPTH = 32


@dataclass
class MessagePart:
    mime_type: str = ""
    filename: str = ""
    headers: dict[str, str] = field(default_factory=dict)  # lower-cased names
    data: str | None = None             # base64url body, inline parts only
    attachment_id: str | None = None
    size: int = 0
    parts: list[MessagePart] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> MessagePart:
        """Build the tree iteratively; children past MAX_PART_DEPTH are dropped."""
        root = cls()
        if not payload:
            return root
        stack: list[tuple[dict[str, Any], MessagePart, int]] = [(payload, root, 0)]
        while stack:
            raw, node, depth = stack.pop()
            body = raw.get("body") or {}
            node.mime_type = str(raw.get("mimeType") or "")
            node.filename = str(raw.get("filename") or "")
            node.headers = {
                str(h.get("name", "")).lower(): str(h.get("value", ""))
                for h in raw.get("headers") or []
                if isinstance(h, dict)
            }
            node.data = body.get("data")
            node.attachment_id = body.get("attachmentId")
            node.size = int(body.get("size") or 0)
            children = raw.get("parts") or []
            if children and depth >= MAX_PART_DEPTH:
                logger.warning("MIME tree deeper than %d levels; truncating", MAX_PART_DEPTH)
                continue
            for child_raw in children:
                child = cls()
                node.parts.append(child)
                stack.append((child_raw, child, depth + 1))
        return root

    def header(self, name: str) -> str:
        return self.headers.get(name.lower(), "")

    def walk(self) -> Iterator[MessagePart]:
        """Yield this part and every descendant, depth-first, in document order."""
        stack: list[tuple[MessagePart, int]] = [(self, 0)]
        while stack:
            part, depth = stack.pop()
            yield part
            if depth >= MAX_PART_DEPTH:
                continue
            stack.extend((child, depth + 1) for child in reversed(part.parts))

    def decoded_text(self) -> str:
        """Decode the inline base64url body as UTF-8 (empty if there is none)."""
        if not self.data:
            return ""
        return decode_base64url(self.data).decode("utf-8", errors="replace")


def decode_base64url(data: str) -> bytes:
    """Decode Gmail's unpadded base64url; malformed input yields b""."""
    try:
        return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError):
        logger.warning("Could not decode base64url body (%d chars)", len(data))
        return b""


def extract_content(root: MessagePart) -> tuple[str, str]:
    """Return (plain text, html) concatenated across every matching part."""
    text: list[str] = []
    html: list[str] = []
    for part in root.walk():
        if part.attachment_id:
            continue
        if part.mime_type == "text/plain":
            text.append(part.decoded_text())
        elif part.mime_type == "text/html":
            html.append(part.decoded_text())
    return "".join(text), "".join(html)


def extract_attachments(root: MessagePart) -> list[EmailAttachment]:
    return [
        EmailAttachment(
            id=part.attachment_id,
            filename=part.filename or f"attachment-{part.attachment_id}",
            mime_type=part.mime_type or "application/octet-stream",
            size=part.size,
        )
        for part in root.walk()
        if part.attachment_id
    ]


def find_attachment_filename(root: MessagePart, attachment_id: str) -> str | None:
    for part in root.walk():
        if part.attachment_id == attachment_id:
            return part.filename or None
    return None
