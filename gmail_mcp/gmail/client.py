"""Gmail API client — wraps google-api-python-client behind a typed async API."""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Callable
from typing import Any

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from gmail_mcp.accounts.credentials import CredentialHandle
from gmail_mcp.errors import NotFound, RemoteFailure
from gmail_mcp.gmail.batch import BatchExecutor
from gmail_mcp.gmail.message_builder import build_message
from gmail_mcp.gmail.mime import (
    MessagePart,
    decode_base64url,
    extract_attachments,
    extract_content,
    find_attachment_filename,
)
from gmail_mcp.gmail.types import (
    BatchResult,
    EmailSummary,
    ParsedMessage,
    SearchResult,
    SecureMessageRequest,
)
from gmail_mcp.security.path_guard import PathGuard

logger = logging.getLogger(__name__)

_USER = "me"
_UNREAD = "UNREAD"

# JSON body of a Gmail API response
_JsonDict = dict[str, Any]


class GmailClient:
    """Thin async wrapper around the Gmail REST API for one account.

    The discovery-built ``service`` is synchronous; every request is executed
    in a worker thread.  ``http_factory`` supplies a fresh authorised
    transport per request so batch chunks can fan out safely.  Use
    ``open_gmail_client()`` to construct one from a credential handle.
    """

    def __init__(
        self,
        service: Any,
        account_id: str,
        guard: PathGuard,
        batch: BatchExecutor | None = None,
        http_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._service = service
        self._account_id = account_id
        self._guard = guard
        self._batch = batch or BatchExecutor()
        self._http_factory = http_factory

    @property
    def account_id(self) -> str:
        return self._account_id

    def users(self) -> Any:
        """The ``users()`` resource, for label and filter helpers."""
        return self._service.users()

    # ── Messages ───────────────────────────────────────────────────────────────

    async def send_email(self, request: SecureMessageRequest) -> str:
        """Build, encode and send a message.  Returns the new Gmail message ID."""
        raw = build_message(request, self._guard)
        body: _JsonDict = {"raw": base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")}
        if request.thread_id:
            body["threadId"] = request.thread_id
        result = await self.execute(self.users().messages().send(userId=_USER, body=body))
        message_id = str(result.get("id", ""))
        logger.info("Sent message %s from %s", message_id, self._account_id)
        return message_id

    async def search_emails(self, query: str, max_results: int = 10) -> SearchResult:
        """Run a Gmail search and fetch Subject/From/Date for each hit."""
        listing = await self.execute(
            self.users().messages().list(userId=_USER, q=query, maxResults=max_results)
        )
        refs = listing.get("messages") or []
        messages = await asyncio.gather(*(self._get_summary(ref) for ref in refs))
        return SearchResult(
            messages=list(messages),
            result_size_estimate=int(listing.get("resultSizeEstimate") or 0),
            next_page_token=listing.get("nextPageToken"),
        )

    async def get_message(self, message_id: str) -> ParsedMessage:
        """Fetch a full message and decode its bodies and attachment list."""
        data = await self.execute(
            self.users().messages().get(userId=_USER, id=message_id, format="full"),
            not_found=f"Message {message_id} not found",
        )
        root = MessagePart.from_payload(data.get("payload"))
        text, html = extract_content(root)
        return ParsedMessage(
            id=str(data.get("id") or message_id),
            thread_id=str(data.get("threadId") or ""),
            subject=root.header("Subject"),
            sender=root.header("From"),
            recipient=root.header("To"),
            date=root.header("Date"),
            body=text,
            html_body=html,
            snippet=str(data.get("snippet") or ""),
            label_ids=list(data.get("labelIds") or []),
            attachments=extract_attachments(root),
        )

    async def modify_email(
        self,
        message_id: str,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> str:
        body: _JsonDict = {}
        if add_label_ids:
            body["addLabelIds"] = add_label_ids
        if remove_label_ids:
            body["removeLabelIds"] = remove_label_ids
        await self.execute(
            self.users().messages().modify(userId=_USER, id=message_id, body=body),
            not_found=f"Message {message_id} not found",
        )
        logger.debug("Modified labels on %s (+%s -%s)", message_id, add_label_ids, remove_label_ids)
        return message_id

    async def delete_email(self, message_id: str) -> None:
        """Permanently delete a message (bypasses Trash)."""
        await self.execute(
            self.users().messages().delete(userId=_USER, id=message_id),
            not_found=f"Message {message_id} not found",
        )
        logger.debug("Deleted message %s", message_id)

    async def mark_as_read(self, message_id: str) -> str:
        return await self.modify_email(message_id, remove_label_ids=[_UNREAD])

    async def mark_as_unread(self, message_id: str) -> str:
        return await self.modify_email(message_id, add_label_ids=[_UNREAD])

    # ── Bulk ───────────────────────────────────────────────────────────────────

    async def batch_modify_emails(
        self,
        message_ids: list[str],
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
        batch_size: int | None = None,
    ) -> BatchResult:
        """Apply the same label change to many messages; failures are reported, not raised."""

        async def _modify(message_id: str) -> str:
            return await self.modify_email(message_id, add_label_ids, remove_label_ids)

        return await self._batch.run(message_ids, _modify, batch_size)

    async def batch_delete_emails(
        self, message_ids: list[str], batch_size: int | None = None
    ) -> BatchResult:
        """Permanently delete many messages; failures are reported, not raised."""
        return await self._batch.run(message_ids, self.delete_email, batch_size)

    # ── Attachments ────────────────────────────────────────────────────────────

    async def download_attachment(self, message_id: str, attachment_id: str) -> tuple[bytes, str]:
        """Return (content, original filename) for one attachment."""
        attachment = await self.execute(
            self.users().messages().attachments().get(
                userId=_USER, messageId=message_id, id=attachment_id
            ),
            not_found=f"Attachment {attachment_id} not found on message {message_id}",
        )
        encoded = attachment.get("data")
        if not encoded:
            raise RemoteFailure(None, "No attachment data received")

        message = await self.execute(
            self.users().messages().get(userId=_USER, id=message_id, format="full"),
            not_found=f"Message {message_id} not found",
        )
        root = MessagePart.from_payload(message.get("payload"))
        filename = find_attachment_filename(root, attachment_id) or f"attachment-{attachment_id}"
        return decode_base64url(encoded), filename

    # ── Transport ──────────────────────────────────────────────────────────────

    async def execute(self, request: Any, *, not_found: str | None = None) -> _JsonDict:
        """Execute an API request in a worker thread.

        Raises:
            NotFound: the API answered 404 (``not_found`` is used as the message).
            RemoteFailure: any other API error, with its status and reason.
        """

        def _run() -> Any:
            if self._http_factory is None:
                return request.execute()
            return request.execute(http=self._http_factory())

        try:
            result = await asyncio.to_thread(_run)
        except HttpError as exc:
            raise _to_gmail_error(exc, not_found) from exc
        return result if isinstance(result, dict) else {}

    async def _get_summary(self, ref: _JsonDict) -> EmailSummary:
        message_id = str(ref.get("id", ""))
        detail = await self.execute(
            self.users().messages().get(
                userId=_USER,
                id=message_id,
                format="metadata",
                metadataHeaders=["Subject", "From", "Date"],
            ),
            not_found=f"Message {message_id} not found",
        )
        root = MessagePart.from_payload(detail.get("payload"))
        return EmailSummary(
            id=message_id,
            thread_id=str(ref.get("threadId") or ""),
            subject=root.header("Subject"),
            sender=root.header("From"),
            date=root.header("Date"),
            snippet=str(detail.get("snippet") or ""),
        )


def _to_gmail_error(exc: HttpError, not_found: str | None) -> NotFound | RemoteFailure:
    status = getattr(exc.resp, "status", None)
    status = int(status) if status is not None else None
    reason = getattr(exc, "reason", "") or str(exc)
    if status == 404:
        return NotFound(not_found or f"Not found: {reason}")
    logger.debug("Gmail API error %s: %s", status, reason)
    return RemoteFailure(status, f"Gmail API error ({status}): {reason}")


async def open_gmail_client(
    handle: CredentialHandle,
    guard: PathGuard,
    batch: BatchExecutor | None = None,
    timeout: float | None = None,
) -> GmailClient:
    """Build a GmailClient for the account behind ``handle``.

    Each request gets its own authorised httplib2 transport with ``timeout``
    as the socket timeout.
    """

    def _http() -> Any:
        return handle.authorized_http(timeout)

    def _build() -> Any:
        return build("gmail", "v1", http=_http(), cache_discovery=False)

    service = await asyncio.to_thread(_build)
    return GmailClient(service, handle.account_id, guard, batch=batch, http_factory=_http)
