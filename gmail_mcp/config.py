"""Runtime settings, read from environment variables (and .env via python-dotenv)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# The directory that contains the gmail_mcp package. The MCP host usually
# launches us with an unrelated working directory, so never default to cwd.
_INSTALL_ROOT = Path(__file__).resolve().parent.parent

_DEFAULT_BATCH_SIZE = 50
_DEFAULT_REQUEST_TIMEOUT = 60.0

SCOPES: list[str] = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.settings.basic",
]


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        value = int(raw) if raw else default
    except ValueError:
        logger.warning("Invalid %s %r; defaulting to %d", name, raw, default)
        return default
    return value if value >= 1 else default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        value = float(raw) if raw else default
    except ValueError:
        logger.warning("Invalid %s %r; defaulting to %s", name, raw, default)
        return default
    return value if value > 0 else default


@dataclass
class Settings:
    """Where state lives and how the Gmail collaborator is called."""

    home: Path = field(default_factory=lambda: _INSTALL_ROOT)
    client_secrets_path: Path | None = None
    batch_size: int = _DEFAULT_BATCH_SIZE
    request_timeout: float = _DEFAULT_REQUEST_TIMEOUT
    download_dir: Path = field(default_factory=lambda: Path.home() / "Downloads")
    scopes: list[str] = field(default_factory=lambda: list(SCOPES))

    def __post_init__(self) -> None:
        self.home = Path(self.home).expanduser().resolve()
        if self.client_secrets_path is None:
            self.client_secrets_path = self.home / "credentials.json"

    @property
    def accounts_dir(self) -> Path:
        """Root of the credential storage namespace (one subdirectory per account)."""
        return self.home / "accounts"

    @classmethod
    def from_env(cls) -> Settings:
        """Build Settings from GMAIL_MCP_* environment variables."""
        home = os.environ.get("GMAIL_MCP_HOME", "")
        secrets = os.environ.get("GMAIL_MCP_CLIENT_SECRETS", "")
        downloads = os.environ.get("GMAIL_MCP_DOWNLOAD_DIR", "")
        return cls(
            home=Path(home) if home else _INSTALL_ROOT,
            client_secrets_path=Path(secrets).expanduser() if secrets else None,
            batch_size=_int_env("GMAIL_MCP_BATCH_SIZE", _DEFAULT_BATCH_SIZE),
            request_timeout=_float_env("GMAIL_MCP_REQUEST_TIMEOUT", _DEFAULT_REQUEST_TIMEOUT),
            download_dir=Path(downloads).expanduser() if downloads else Path.home() / "Downloads",
        )
