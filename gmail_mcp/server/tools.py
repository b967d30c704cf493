"""MCP tool implementations — each tool resolves an account and returns plain text."""

import asyncio
import functools
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from gmail_mcp.agent import MailboxAgent
from gmail_mcp.errors import AlreadyExists, GmailMCPError
from gmail_mcp.gmail import filters, labels
from gmail_mcp.gmail.attachments import save_attachment
from gmail_mcp.gmail.types import BatchResult, ParsedMessage, SecureMessageRequest

logger = logging.getLogger(__name__)


def _reports_errors(fn: Callable[..., Awaitable[str]]) -> Callable[..., Awaitable[str]]:
    """Turn a GmailMCPError into an ``Error: ...`` reply instead of a traceback."""

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> str:
        try:
            return await fn(*args, **kwargs)
        except GmailMCPError as exc:
            logger.warning("Tool %s failed: %s", fn.__name__, exc)
            return f"Error: {exc}"

    return wrapper


def format_parsed_email(message: ParsedMessage, account_id: str) -> str:
    note = ""
    if not message.body and message.html_body:
        note = "[Note: This email is HTML-formatted. Plain text version not available.]\n\n"
    body = message.body or message.html_body or ""
    attachment_info = ""
    if message.attachments:
        attachment_info = f"\n\nAttachments ({len(message.attachments)}):\n" + "\n".join(
            f"- {a.filename} ({a.mime_type}, {round(a.size / 1024)} KB, ID: {a.id})"
            for a in message.attachments
        )
    return (
        f"Email from account: {account_id}\n"
        f"Thread ID: {message.thread_id}\n"
        f"Subject: {message.subject}\n"
        f"From: {message.sender}\n"
        f"To: {message.recipient}\n"
        f"Date: {message.date}\n"
        f"Labels: {', '.join(message.label_ids)}\n\n"
        f"{note}{body}{attachment_info}"
    )


def format_batch_result(heading: str, verb: str, result: BatchResult) -> str:
    lines = [heading, f"Successfully {verb}: {result.success_count} messages"]
    if result.failure_count:
        lines.append(f"Failed: {result.failure_count} messages")
        lines.extend(f"- {f.target}: {f.error}" for f in result.failures)
    return "\n".join(lines)


class MailTools:
    """The tool surface exposed over MCP.

    Every mailbox tool takes an optional ``account``; when omitted the
    default account is used.
    """

    def __init__(self, agent: MailboxAgent) -> None:
        self._agent = agent

    # ── Email ──────────────────────────────────────────────────────────────────

    @_reports_errors
    async def send_email(
        self,
        to: list[str],
        subject: str,
        body: str,
        html_body: str | None = None,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
        thread_id: str | None = None,
        in_reply_to: str | None = None,
        attachments: list[str] | None = None,
        account: str | None = None,
    ) -> str:
        """Send an email. Supports HTML alternative bodies, replies (thread_id +
        in_reply_to Message-ID) and local file attachments."""
        client = await self._agent.client(account)
        message_id = await client.send_email(
            SecureMessageRequest(
                to=to,
                subject=subject,
                body=body,
                html_body=html_body,
                cc=cc or [],
                bcc=bcc or [],
                thread_id=thread_id,
                in_reply_to=in_reply_to,
                attachments=attachments or [],
            )
        )
        return f"Email sent successfully from {client.account_id}. Message ID: {message_id}"

    @_reports_errors
    async def search_emails(self, query: str, max_results: int = 10, account: str | None = None) -> str:
        """Search emails using Gmail query syntax (e.g. 'from:alice is:unread')."""
        client = await self._agent.client(account)
        results = await client.search_emails(query, max_results)
        formatted = "\n".join(
            f"ID: {m.id}\nSubject: {m.subject}\nFrom: {m.sender}\nDate: {m.date}\n"
            for m in results.messages
        )
        return (
            f"Search results from {client.account_id} "
            f"({results.result_size_estimate} estimated):\n\n{formatted}"
        )

    @_reports_errors
    async def read_email(self, message_id: str, account: str | None = None) -> str:
        """Read the full content of an email, including its attachment list."""
        client = await self._agent.client(account)
        message = await client.get_message(message_id)
        return format_parsed_email(message, client.account_id)

    @_reports_errors
    async def modify_email(
        self,
        message_id: str,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
        account: str | None = None,
    ) -> str:
        """Add or remove labels on one email."""
        client = await self._agent.client(account)
        await client.modify_email(message_id, add_label_ids, remove_label_ids)
        return f"Email {message_id} labels updated successfully (account: {client.account_id})"

    @_reports_errors
    async def delete_email(self, message_id: str, account: str | None = None) -> str:
        """Permanently delete one email (does not go to Trash)."""
        client = await self._agent.client(account)
        await client.delete_email(message_id)
        return f"Email {message_id} deleted successfully (account: {client.account_id})"

    @_reports_errors
    async def mark_as_read(self, message_id: str, account: str | None = None) -> str:
        """Mark an email as read."""
        client = await self._agent.client(account)
        await client.mark_as_read(message_id)
        return f"Email {message_id} marked as read (account: {client.account_id})"

    @_reports_errors
    async def mark_as_unread(self, message_id: str, account: str | None = None) -> str:
        """Mark an email as unread."""
        client = await self._agent.client(account)
        await client.mark_as_unread(message_id)
        return f"Email {message_id} marked as unread (account: {client.account_id})"

    # ── Batch ──────────────────────────────────────────────────────────────────

    @_reports_errors
    async def batch_modify_emails(
        self,
        message_ids: list[str],
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
        batch_size: int | None = None,
        account: str | None = None,
    ) -> str:
        """Add/remove labels on many emails. Each message succeeds or fails on its own."""
        client = await self._agent.client(account)
        result = await client.batch_modify_emails(
            message_ids, add_label_ids, remove_label_ids, batch_size
        )
        return format_batch_result(
            f"Batch label modification complete (account: {client.account_id}).",
            "processed",
            result,
        )

    @_reports_errors
    async def batch_delete_emails(
        self, message_ids: list[str], batch_size: int | None = None, account: str | None = None
    ) -> str:
        """Permanently delete many emails. Each message succeeds or fails on its own."""
        client = await self._agent.client(account)
        result = await client.batch_delete_emails(message_ids, batch_size)
        return format_batch_result(
            f"Batch delete complete (account: {client.account_id}).", "deleted", result
        )

    # ── Attachments ────────────────────────────────────────────────────────────

    @_reports_errors
    async def download_attachment(
        self,
        message_id: str,
        attachment_id: str,
        filename: str | None = None,
        save_path: str | None = None,
        account: str | None = None,
    ) -> str:
        """Download an attachment to a local directory (default: the configured download dir)."""
        client = await self._agent.client(account)
        data, original_name = await client.download_attachment(message_id, attachment_id)
        target = await asyncio.to_thread(
            save_attachment,
            data,
            filename or original_name,
            save_path or self._agent.settings.download_dir,
            self._agent.guard,
        )
        return (
            "Attachment downloaded successfully:\n"
            f"File: {target.name}\nSize: {len(data)} bytes\nSaved to: {target}"
        )

    # ── Labels ─────────────────────────────────────────────────────────────────

    @_reports_errors
    async def list_email_labels(self, account: str | None = None) -> str:
        """List system and user labels with their IDs."""
        client = await self._agent.client(account)
        result = await labels.list_labels(client)
        system = "\n".join(f"- {lbl.name} (ID: {lbl.id})" for lbl in result.system)
        user = "\n".join(f"- {lbl.name} (ID: {lbl.id})" for lbl in result.user)
        return (
            f"Labels for {client.account_id} ({len(result.all)} total):\n\n"
            f"System labels ({len(result.system)}):\n{system}\n\n"
            f"User labels ({len(result.user)}):\n{user}"
        )

    @_reports_errors
    async def create_label(
        self,
        name: str,
        message_list_visibility: str = "show",
        label_list_visibility: str = "labelShow",
        account: str | None = None,
    ) -> str:
        """Create a new user label."""
        client = await self._agent.client(account)
        label = await labels.create_label(client, name, message_list_visibility, label_list_visibility)
        return f"Label created (account: {client.account_id}):\nID: {label.id}\nName: {label.name}"

    @_reports_errors
    async def update_label(
        self,
        label_id: str,
        name: str | None = None,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
        account: str | None = None,
    ) -> str:
        """Rename a label or change its visibility."""
        client = await self._agent.client(account)
        label = await labels.update_label(
            client,
            label_id,
            name=name,
            messageListVisibility=message_list_visibility,
            labelListVisibility=label_list_visibility,
        )
        return f"Label updated (account: {client.account_id}):\nID: {label.id}\nName: {label.name}"

    @_reports_errors
    async def delete_label(self, label_id: str, account: str | None = None) -> str:
        """Delete a user label. System labels cannot be deleted."""
        client = await self._agent.client(account)
        name = await labels.delete_label(client, label_id)
        return f'Label "{name}" deleted successfully.'

    @_reports_errors
    async def get_or_create_label(self, name: str, account: str | None = None) -> str:
        """Find a label by name (case-insensitive) or create it."""
        client = await self._agent.client(account)
        label, created = await labels.get_or_create_label(client, name)
        action = "Created new" if created else "Found existing"
        return f"{action} label (account: {client.account_id}):\nID: {label.id}\nName: {label.name}"

    # ── Filters ────────────────────────────────────────────────────────────────

    @_reports_errors
    async def create_filter(
        self, criteria: dict[str, Any], action: dict[str, Any], account: str | None = None
    ) -> str:
        """Create a filter. criteria keys: from, to, subject, query, negatedQuery,
        hasAttachment, excludeChats, size, sizeComparison. action keys:
        addLabelIds, removeLabelIds, forward."""
        client = await self._agent.client(account)
        result = await filters.create_filter(client, criteria, action)
        return (
            f"Filter created (account: {client.account_id}):\nID: {result.get('id')}\n"
            f"Criteria: {filters.describe(criteria)}\nActions: {filters.describe(action)}"
        )

    @_reports_errors
    async def list_filters(self, account: str | None = None) -> str:
        """List every filter on the account."""
        client = await self._agent.client(account)
        result = await filters.list_filters(client)
        if not result:
            return f"No filters found for {client.account_id}."
        text = "\n".join(
            f"ID: {f.get('id')}\nCriteria: {filters.describe(f.get('criteria'))}\n"
            f"Actions: {filters.describe(f.get('action'))}\n"
            for f in result
        )
        return f"Filters for {client.account_id} ({len(result)}):\n\n{text}"

    @_reports_errors
    async def get_filter(self, filter_id: str, account: str | None = None) -> str:
        """Show one filter's criteria and actions."""
        client = await self._agent.client(account)
        result = await filters.get_filter(client, filter_id)
        return (
            f"Filter details:\nID: {result.get('id')}\n"
            f"Criteria: {filters.describe(result.get('criteria'))}\n"
            f"Actions: {filters.describe(result.get('action'))}"
        )

    @_reports_errors
    async def delete_filter(self, filter_id: str, account: str | None = None) -> str:
        """Delete a filter by ID."""
        client = await self._agent.client(account)
        await filters.delete_filter(client, filter_id)
        return f'Filter "{filter_id}" deleted successfully.'

    @_reports_errors
    async def create_filter_from_template(
        self, template: str, parameters: dict[str, Any], account: str | None = None
    ) -> str:
        """Create a filter from a template: fromSender (senderEmail), withSubject
        (subjectText), withAttachments, largeEmails (sizeInBytes), containingText
        (searchText), mailingList (listIdentifier). Optional: labelIds, archive,
        markAsRead, markImportant."""
        criteria, action = filters.filter_from_template(template, parameters)
        client = await self._agent.client(account)
        result = await filters.create_filter(client, criteria, action)
        return (
            f"Filter created from template '{template}' "
            f"(account: {client.account_id}):\nID: {result.get('id')}"
        )

    # ── Accounts ───────────────────────────────────────────────────────────────

    @_reports_errors
    async def list_accounts(self) -> str:
        """List configured Gmail accounts and which one is the default."""
        identities, default = await asyncio.to_thread(self._agent.store.snapshot)
        if not identities:
            return "No Gmail accounts configured. Use 'add_account' to add one."
        infos = [
            {
                "email": ident.account_id,
                "addedAt": ident.added_at,
                "lastUsed": ident.last_used_at,
                "isDefault": ident.account_id == default,
            }
            for ident in identities
        ]
        return f"Configured Gmail accounts:\n{json.dumps(infos, indent=2)}"

    @_reports_errors
    async def add_account(self, email: str) -> str:
        """Add a Gmail account. Opens a browser window for Google OAuth consent."""
        try:
            await asyncio.to_thread(self._agent.store.add_identity, email)
        except AlreadyExists:
            return f"Account {email} already exists."
        return f"Account {email} added successfully."

    @_reports_errors
    async def remove_account(self, email: str) -> str:
        """Remove a Gmail account and delete its stored credentials."""
        await asyncio.to_thread(self._agent.store.remove_identity, email)
        return f"Account {email} removed successfully."

    @_reports_errors
    async def set_default_account(self, email: str) -> str:
        """Set the account used when a tool call omits 'account'."""
        await asyncio.to_thread(self._agent.store.set_default, email)
        return f"Default account set to {email}."


TOOL_NAMES: list[str] = [
    "send_email",
    "search_emails",
    "read_email",
    "modify_email",
    "delete_email",
    "mark_as_read",
    "mark_as_unread",
    "batch_modify_emails",
    "batch_delete_emails",
    "download_attachment",
    "list_email_labels",
    "create_label",
    "update_label",
    "delete_label",
    "get_or_create_label",
    "create_filter",
    "list_filters",
    "get_filter",
    "delete_filter",
    "create_filter_from_template",
    "list_accounts",
    "add_account",
    "remove_account",
    "set_default_account",
]
