"""Wiring: one object that owns the store, resolver, path guard and batch executor."""

from __future__ import annotations

import asyncio
import logging

from gmail_mcp.accounts.credentials import ConsentFlow, InstalledAppConsentFlow
from gmail_mcp.accounts.resolver import IdentityResolver
from gmail_mcp.accounts.store import CredentialStore
from gmail_mcp.config import Settings
from gmail_mcp.gmail.batch import BatchExecutor
from gmail_mcp.gmail.client import GmailClient, open_gmail_client
from gmail_mcp.security.path_guard import PathGuard

logger = logging.getLogger(__name__)


class MailboxAgent:
    """Everything an entry point needs to act on behalf of managed accounts.

    Usage::

        agent = MailboxAgent.from_settings(Settings.from_env())
        client = await agent.client("alice@example.com")   # or None for the default
    """

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        guard: PathGuard,
        batch: BatchExecutor,
    ) -> None:
        self.settings = settings
        self.store = store
        self.resolver = IdentityResolver(store)
        self.guard = guard
        self.batch = batch

    @classmethod
    def from_settings(cls, settings: Settings, consent_flow: ConsentFlow | None = None) -> MailboxAgent:
        consent = consent_flow or InstalledAppConsentFlow(
            settings.client_secrets_path, settings.scopes
        )
        store = CredentialStore(settings.accounts_dir, consent, settings.scopes)
        logger.debug("Using data directory %s", settings.home)
        return cls(
            settings=settings,
            store=store,
            guard=PathGuard(settings.accounts_dir),
            batch=BatchExecutor(settings.batch_size),
        )

    async def client(self, account_id: str | None = None) -> GmailClient:
        """Resolve the account (explicit, else default) and open a Gmail client for it."""
        handle = await asyncio.to_thread(self.resolver.resolve, account_id)
        return await open_gmail_client(
            handle, self.guard, batch=self.batch, timeout=self.settings.request_timeout
        )
