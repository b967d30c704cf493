"""Gmail label management."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from gmail_mcp.errors import AlreadyExists, InvalidInput, RemoteFailure
from gmail_mcp.gmail.client import GmailClient

logger = logging.getLogger(__name__)

_USER = "me"


@dataclass(frozen=True)
class Label:
    id: str
    name: str
    type: str = "user"
    messages_total: int | None = None
    messages_unread: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Label:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            type=str(data.get("type") or "user"),
            messages_total=data.get("messagesTotal"),
            messages_unread=data.get("messagesUnread"),
        )


@dataclass(frozen=True)
class LabelList:
    system: list[Label] = field(default_factory=list)
    user: list[Label] = field(default_factory=list)

    @property
    def all(self) -> list[Label]:
        return [*self.system, *self.user]


async def create_label(
    client: GmailClient,
    name: str,
    message_list_visibility: str = "show",
    label_list_visibility: str = "labelShow",
) -> Label:
    body = {
        "name": name,
        "messageListVisibility": message_list_visibility,
        "labelListVisibility": label_list_visibility,
    }
    try:
        data = await client.execute(client.users().labels().create(userId=_USER, body=body))
    except RemoteFailure as exc:
        if "already exists" in exc.message.lower() or exc.status == 409:
            raise AlreadyExists(f'Label "{name}" already exists.') from exc
        raise
    logger.info("Created label %s for %s", name, client.account_id)
    return Label.from_api(data)


async def update_label(client: GmailClient, label_id: str, **updates: str) -> Label:
    """Rename a label or change its visibility (camelCase API field names)."""
    body = {key: value for key, value in updates.items() if value is not None}
    if not body:
        raise InvalidInput("Nothing to update: give a name or visibility setting")
    data = await client.execute(
        client.users().labels().patch(userId=_USER, id=label_id, body=body),
        not_found=f'Label with ID "{label_id}" not found.',
    )
    return Label.from_api(data)


async def delete_label(client: GmailClient, label_id: str) -> str:
    """Delete a user label and return its name.  System labels are refused."""
    data = await client.execute(
        client.users().labels().get(userId=_USER, id=label_id),
        not_found=f'Label with ID "{label_id}" not found.',
    )
    label = Label.from_api(data)
    if label.type == "system":
        raise InvalidInput("Cannot delete system label.")
    await client.execute(
        client.users().labels().delete(userId=_USER, id=label_id),
        not_found=f'Label with ID "{label_id}" not found.',
    )
    logger.info("Deleted label %s for %s", label.name, client.account_id)
    return label.name


async def list_labels(client: GmailClient) -> LabelList:
    data = await client.execute(client.users().labels().list(userId=_USER))
    labels = [Label.from_api(raw) for raw in data.get("labels") or []]
    return LabelList(
        system=[label for label in labels if label.type == "system"],
        user=[label for label in labels if label.type != "system"],
    )


async def find_label_by_name(client: GmailClient, name: str) -> Label | None:
    """Case-insensitive lookup by display name."""
    wanted = name.lower()
    for label in (await list_labels(client)).all:
        if label.name.lower() == wanted:
            return label
    return None


async def get_or_create_label(client: GmailClient, name: str) -> tuple[Label, bool]:
    """Return (label, created)."""
    existing = await find_label_by_name(client, name)
    if existing is not None:
        return existing, False
    return await create_label(client, name), True
