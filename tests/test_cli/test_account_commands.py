"""Tests for the gmail-accounts CLI — real store in a temp dir, CliRunner throughout."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner, Result

from gmail_mcp.accounts.store import CredentialStore
from gmail_mcp.agent import MailboxAgent
from gmail_mcp.config import Settings
from gmail_mcp.gmail.batch import BatchExecutor
from gmail_mcp.security.path_guard import PathGuard


# ── Helpers ─────────────────────────────────────────────────────────────────────


@pytest.fixture
def agent(tmp_path: Path, store: CredentialStore, guard: PathGuard) -> MailboxAgent:
    return MailboxAgent(Settings(home=tmp_path / "home"), store, guard, BatchExecutor())


def _invoke(agent: MailboxAgent, *args: str, input: str | None = None) -> Result:
    from gmail_mcp.cli.main import cli

    runner = CliRunner()
    with patch("gmail_mcp.cli.main.MailboxAgent.from_settings", return_value=agent):
        return runner.invoke(cli, list(args), input=input, catch_exceptions=False)


# ── add ─────────────────────────────────────────────────────────────────────────


class TestAddCommand:
    def test_adds_and_becomes_default(self, agent: MailboxAgent) -> None:
        result = _invoke(agent, "add", "a@example.com")
        assert result.exit_code == 0
        assert "added successfully" in result.output
        assert "now the default" in result.output
        assert agent.store.get_default() == "a@example.com"

    def test_duplicate_exits_1(self, agent: MailboxAgent) -> None:
        agent.store.add_identity("a@example.com")
        result = _invoke(agent, "add", "a@example.com")
        assert result.exit_code == 1
        assert "Error: Account a@example.com already exists" in result.output

    def test_invalid_email_exits_1(self, agent: MailboxAgent) -> None:
        result = _invoke(agent, "add", "nope")
        assert result.exit_code == 1
        assert "Invalid account email address" in result.output


# ── remove ──────────────────────────────────────────────────────────────────────


class TestRemoveCommand:
    def test_remove_with_yes_reassigns_default(self, agent: MailboxAgent) -> None:
        agent.store.add_identity("a@example.com")
        agent.store.add_identity("b@example.com")
        result = _invoke(agent, "remove", "a@example.com", "--yes")
        assert result.exit_code == 0
        assert "Default account: b@example.com" in result.output

    def test_confirmation_declined(self, agent: MailboxAgent) -> None:
        agent.store.add_identity("a@example.com")
        result = _invoke(agent, "remove", "a@example.com", input="n\n")
        assert result.exit_code == 1
        assert agent.store.exists("a@example.com")

    def test_unknown(self, agent: MailboxAgent) -> None:
        result = _invoke(agent, "remove", "ghost@example.com", "-y")
        assert result.exit_code == 1
        assert "not found" in result.output


# ── list / default / path ───────────────────────────────────────────────────────


class TestListCommand:
    def test_empty(self, agent: MailboxAgent) -> None:
        result = _invoke(agent, "list")
        assert result.exit_code == 0
        assert "No accounts configured" in result.output

    def test_table(self, agent: MailboxAgent) -> None:
        agent.store.add_identity("a@example.com")
        agent.store.add_identity("b@example.com")
        result = _invoke(agent, "list")
        assert "a@example.com" in result.output
        assert "b@example.com" in result.output
        assert "never" in result.output


class TestDefaultCommand:
    def test_show_when_unset(self, agent: MailboxAgent) -> None:
        assert "No default account set" in _invoke(agent, "default").output

    def test_set_and_show(self, agent: MailboxAgent) -> None:
        agent.store.add_identity("a@example.com")
        agent.store.add_identity("b@example.com")
        assert _invoke(agent, "default", "b@example.com").exit_code == 0
        assert "b@example.com" in _invoke(agent, "default").output

    def test_set_unknown(self, agent: MailboxAgent) -> None:
        assert _invoke(agent, "default", "ghost@example.com").exit_code == 1


class TestReauthCommand:
    def test_reauth(self, agent: MailboxAgent, consent) -> None:
        agent.store.add_identity("a@example.com")
        result = _invoke(agent, "reauth", "a@example.com")
        assert result.exit_code == 0
        assert consent.calls == ["a@example.com", "a@example.com"]


def test_path_prints_directories(agent: MailboxAgent, tmp_path: Path) -> None:
    result = _invoke(agent, "path")
    assert result.exit_code == 0
    assert "accounts" in result.output
    assert "credentials.json" in result.output


def test_serve_runs_stdio_server(agent: MailboxAgent) -> None:
    server = MagicMock()
    with patch("gmail_mcp.server.app.build_server", return_value=server):
        result = _invoke(agent, "serve")
    assert result.exit_code == 0
    server.run.assert_called_once_with(transport="stdio")
