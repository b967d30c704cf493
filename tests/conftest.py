"""Shared pytest fixtures."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gmail_mcp.accounts.store import CredentialStore
from gmail_mcp.config import SCOPES
from gmail_mcp.gmail.batch import BatchExecutor
from gmail_mcp.gmail.client import GmailClient
from gmail_mcp.security.path_guard import PathGuard


class FakeConsentFlow:
    """Stands in for the browser flow: hands out a bundle per account, or fails."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = fail_for or set()
        self.calls: list[str] = []

    def authorize(self, account_id: str) -> dict[str, str]:
        self.calls.append(account_id)
        if account_id in self.fail_for:
            raise RuntimeError("user closed the consent window")
        return {
            "type": "authorized_user",
            "client_id": "client-123.apps.googleusercontent.com",
            "client_secret": "s3cret",
            "refresh_token": f"refresh-{account_id}",
        }


class TickingClock:
    """Each call returns a time one second after the previous one."""

    def __init__(self) -> None:
        self._now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


@pytest.fixture
def consent() -> FakeConsentFlow:
    return FakeConsentFlow()


@pytest.fixture
def accounts_dir(tmp_path: Path) -> Path:
    return tmp_path / "home" / "accounts"


@pytest.fixture
def store(accounts_dir: Path, consent: FakeConsentFlow) -> CredentialStore:
    return CredentialStore(accounts_dir, consent, SCOPES, clock=TickingClock())


@pytest.fixture
def guard(accounts_dir: Path) -> PathGuard:
    return PathGuard(accounts_dir)


@pytest.fixture
def service() -> MagicMock:
    """Stand-in for the discovery-built Gmail service; configure per test."""
    return MagicMock()


@pytest.fixture
def gmail(service: MagicMock, guard: PathGuard) -> GmailClient:
    return GmailClient(service, "alice@example.com", guard, batch=BatchExecutor(2))
