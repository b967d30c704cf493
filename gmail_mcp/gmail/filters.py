"""Gmail filter management and pre-built filter templates."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from gmail_mcp.errors import InvalidInput, RemoteFailure
from gmail_mcp.gmail.client import GmailClient

logger = logging.getLogger(__name__)

_USER = "me"

# Gmail filter resources are plain JSON: {"id", "criteria": {...}, "action": {...}}
FilterDict = dict[str, Any]


async def create_filter(client: GmailClient, criteria: dict[str, Any], action: dict[str, Any]) -> FilterDict:
    body = {"criteria": _compact(criteria), "action": _compact(action)}
    try:
        data = await client.execute(
            client.users().settings().filters().create(userId=_USER, body=body)
        )
    except RemoteFailure as exc:
        if exc.status == 400:
            raise InvalidInput(f"Invalid filter criteria or action: {exc.message}") from exc
        raise
    logger.info("Created filter %s for %s", data.get("id"), client.account_id)
    return data


async def list_filters(client: GmailClient) -> list[FilterDict]:
    data = await client.execute(client.users().settings().filters().list(userId=_USER))
    return list(data.get("filter") or [])


async def get_filter(client: GmailClient, filter_id: str) -> FilterDict:
    return await client.execute(
        client.users().settings().filters().get(userId=_USER, id=filter_id),
        not_found=f'Filter with ID "{filter_id}" not found.',
    )


async def delete_filter(client: GmailClient, filter_id: str) -> None:
    await client.execute(
        client.users().settings().filters().delete(userId=_USER, id=filter_id),
        not_found=f'Filter with ID "{filter_id}" not found.',
    )
    logger.info("Deleted filter %s for %s", filter_id, client.account_id)


def describe(section: dict[str, Any] | None) -> str:
    """Render criteria/action as ``key: value, ...`` skipping empty entries."""
    parts = []
    for key, value in (section or {}).items():
        if value is None or value == []:
            continue
        parts.append(f"{key}: {', '.join(value) if isinstance(value, list) else value}")
    return ", ".join(parts)


def _compact(section: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in section.items() if value is not None}


# ── Templates ──────────────────────────────────────────────────────────────────

FilterSpec = tuple[dict[str, Any], dict[str, Any]]  # (criteria, action)


def from_sender(sender_email: str, label_ids: list[str] | None = None, archive: bool = False) -> FilterSpec:
    return (
        {"from": sender_email},
        {"addLabelIds": label_ids or [], "removeLabelIds": ["INBOX"] if archive else None},
    )


def with_subject(subject_text: str, label_ids: list[str] | None = None, mark_as_read: bool = False) -> FilterSpec:
    return (
        {"subject": subject_text},
        {"addLabelIds": label_ids or [], "removeLabelIds": ["UNREAD"] if mark_as_read else None},
    )


def with_attachments(label_ids: list[str] | None = None) -> FilterSpec:
    return {"hasAttachment": True}, {"addLabelIds": label_ids or []}


def large_emails(size_in_bytes: int, label_ids: list[str] | None = None) -> FilterSpec:
    return {"size": size_in_bytes, "sizeComparison": "larger"}, {"addLabelIds": label_ids or []}


def containing_text(search_text: str, label_ids: list[str] | None = None, mark_important: bool = False) -> FilterSpec:
    labels = list(label_ids or [])
    if mark_important:
        labels.append("IMPORTANT")
    return {"query": f'"{search_text}"'}, {"addLabelIds": labels}


def mailing_list(list_identifier: str, label_ids: list[str] | None = None, archive: bool = True) -> FilterSpec:
    return (
        {"query": f"list:{list_identifier} OR subject:[{list_identifier}]"},
        {"addLabelIds": label_ids or [], "removeLabelIds": ["INBOX"] if archive else None},
    )


# template name → (builder, required parameter or None)
_TEMPLATES: dict[str, tuple[Callable[[dict[str, Any]], FilterSpec], str | None]] = {
    "fromSender": (
        lambda p: from_sender(p["senderEmail"], p.get("labelIds"), bool(p.get("archive"))),
        "senderEmail",
    ),
    "withSubject": (
        lambda p: with_subject(p["subjectText"], p.get("labelIds"), bool(p.get("markAsRead"))),
        "subjectText",
    ),
    "withAttachments": (lambda p: with_attachments(p.get("labelIds")), None),
    "largeEmails": (
        lambda p: large_emails(int(p["sizeInBytes"]), p.get("labelIds")),
        "sizeInBytes",
    ),
    "containingText": (
        lambda p: containing_text(p["searchText"], p.get("labelIds"), bool(p.get("markImportant"))),
        "searchText",
    ),
    "mailingList": (
        lambda p: mailing_list(
            p["listIdentifier"],
            p.get("labelIds"),
            True if p.get("archive") is None else bool(p["archive"]),
        ),
        "listIdentifier",
    ),
}

TEMPLATE_NAMES: list[str] = list(_TEMPLATES)


def filter_from_template(template: str, params: dict[str, Any]) -> FilterSpec:
    """Expand a named template into (criteria, action).

    Raises:
        InvalidInput: unknown template, or its required parameter is missing.
    """
    entry = _TEMPLATES.get(template)
    if entry is None:
        raise InvalidInput(f"Unknown filter template {template!r}; choose from {', '.join(TEMPLATE_NAMES)}")
    builder, required = entry
    if required is not None and not params.get(required):
        raise InvalidInput(f"{required} is required for {template} template")
    return builder(params)
