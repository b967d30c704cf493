"""Credential store — the account registry plus one credential bundle per account.

Layout under ``accounts_dir``::

    config.json                  registry: accounts map + default account
    <account_id>/token.json      authorized-user bundle for that account

Secrets only ever live in the per-account ``token.json``; the registry holds
metadata alone.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gmail_mcp.accounts.credentials import (
    ConsentFlow,
    CredentialHandle,
    load_credentials,
    write_bundle,
)
from gmail_mcp.errors import AlreadyExists, AuthFailure, GmailMCPError, InvalidInput, NotFound
from gmail_mcp.security.sanitize import is_valid_email

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "config.json"
TOKEN_FILENAME = "token.json"


@dataclass
class _DirectoryState:
    """Lock and in-flight adds for one accounts directory."""

    lock: threading.RLock = field(default_factory=threading.RLock)
    pending: set[str] = field(default_factory=set)


# Shared by every store instance in the process that points at the same directory.
_directory_states: dict[str, _DirectoryState] = {}
_directory_states_guard = threading.Lock()


def _state_for(accounts_dir: Path) -> _DirectoryState:
    key = os.path.abspath(accounts_dir)
    with _directory_states_guard:
        return _directory_states.setdefault(key, _DirectoryState())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ── Data model ─────────────────────────────────────────────────────────────────


@dataclass
class Identity:
    """One managed Gmail account.  ``added_at`` never changes after creation."""

    account_id: str
    added_at: str
    last_used_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"account_id": self.account_id, "added_at": self.added_at}
        if self.last_used_at:
            data["last_used_at"] = self.last_used_at
        return data

    @classmethod
    def from_dict(cls, account_id: str, data: dict[str, Any]) -> Identity:
        return cls(
            account_id=account_id,
            added_at=str(data.get("added_at", "")),
            last_used_at=data.get("last_used_at") or None,
        )


@dataclass
class Registry:
    """All identities in storage order plus the optional default."""

    accounts: dict[str, Identity] = field(default_factory=dict)
    default_account: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "accounts": {key: ident.to_dict() for key, ident in self.accounts.items()}
        }
        if self.default_account:
            data["default_account"] = self.default_account
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Registry:
        raw_accounts = data.get("accounts") or {}
        accounts = {
            str(key): Identity.from_dict(str(key), value)
            for key, value in raw_accounts.items()
            if isinstance(value, dict)
        }
        registry = cls(accounts=accounts, default_account=data.get("default_account") or None)
        if registry.default_account not in registry.accounts:
            registry.default_account = registry.next_default()
        return registry

    def next_default(self) -> str | None:
        """Pick the replacement default: oldest ``added_at``, then smallest account id."""
        if not self.accounts:
            return None
        return min(self.accounts.values(), key=lambda i: (i.added_at, i.account_id)).account_id


# ── Store ──────────────────────────────────────────────────────────────────────


class CredentialStore:
    """Persists the account registry and per-account credential bundles.

    Every registry read-modify-write runs under a process-wide lock and the
    registry file is replaced atomically, so concurrent callers in one
    process cannot lose each other's updates.

    The interactive consent step runs outside the lock; an account that is
    mid-consent is tracked in a pending set shared by every store on the
    same directory, so a second add of the same id fails instead of racing.

    Usage::

        store = CredentialStore(settings.accounts_dir, InstalledAppConsentFlow(...), SCOPES)
        store.add_identity("alice@example.com")
        handle = store.get_credential("alice@example.com")
    """

    def __init__(
        self,
        accounts_dir: str | Path,
        consent_flow: ConsentFlow,
        scopes: list[str],
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._dir = Path(accounts_dir)
        self._registry_path = self._dir / REGISTRY_FILENAME
        self._consent = consent_flow
        self._scopes = list(scopes)
        self._clock = clock
        state = _state_for(self._dir)
        self._lock = state.lock
        self._pending = state.pending

    @property
    def accounts_dir(self) -> Path:
        return self._dir

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    def add_identity(self, account_id: str) -> Identity:
        """Run consent for a new account, store its bundle, and register it.

        The first account added becomes the default.

        Raises:
            AlreadyExists: the account is registered (or being added).
            InvalidInput: account_id is not a usable email address.
        """
        namespace = self._namespace(account_id)
        with self._lock:
            if account_id in self._load().accounts or account_id in self._pending:
                raise AlreadyExists(
                    f"Account {account_id} already exists. Use 'reauth' to re-authenticate."
                )
            self._pending.add(account_id)

        created = False
        try:
            bundle = self._consent.authorize(account_id)
            with self._lock:
                registry = self._load()
                if account_id in registry.accounts:
                    raise AlreadyExists(
                        f"Account {account_id} already exists. "
                        "Use 'reauth' to re-authenticate."
                    )
                created = not namespace.exists()
                namespace.mkdir(parents=True, exist_ok=True)
                write_bundle(namespace / TOKEN_FILENAME, bundle)
                identity = Identity(account_id=account_id, added_at=self._now())
                registry.accounts[account_id] = identity
                if len(registry.accounts) == 1 or registry.default_account is None:
                    registry.default_account = account_id
                self._save(registry)
        except BaseException:
            # Only a namespace this call created is ours to remove.
            if created:
                shutil.rmtree(namespace, ignore_errors=True)
            raise
        finally:
            with self._lock:
                self._pending.discard(account_id)

        logger.info("Added account %s", account_id)
        return identity

    def reauthenticate(self, account_id: str) -> None:
        """Re-run consent for an existing account and replace its stored bundle."""
        namespace = self._namespace(account_id)
        self._require(account_id)
        bundle = self._consent.authorize(account_id)
        with self._lock:
            self._require(account_id)
            namespace.mkdir(parents=True, exist_ok=True)
            write_bundle(namespace / TOKEN_FILENAME, bundle)
        logger.info("Re-authenticated account %s", account_id)

    def remove_identity(self, account_id: str) -> None:
        """Delete an account's credential namespace and registry entry.

        If it was the default, the default moves to the oldest remaining
        account (or is cleared when none remain).
        """
        with self._lock:
            registry = self._load()
            if account_id not in registry.accounts:
                raise NotFound(f"Account {account_id} not found")
            namespace = self._child_dir(account_id)
            if namespace is not None:
                shutil.rmtree(namespace, ignore_errors=True)
            del registry.accounts[account_id]
            if registry.default_account == account_id:
                registry.default_account = registry.next_default()
                logger.info("Default account is now %s", registry.default_account)
            self._save(registry)
        logger.info("Removed account %s", account_id)

    # ── Credentials ────────────────────────────────────────────────────────────

    def get_credential(self, account_id: str) -> CredentialHandle:
        """Return a refreshable handle for the account and record the use.

        Raises:
            NotFound: the account is not registered.
            AuthFailure: its stored bundle is missing or corrupt.
        """
        with self._lock:
            registry = self._load()
            identity = registry.accounts.get(account_id)
            if identity is None:
                raise NotFound(f"Account {account_id} not found")
            try:
                credentials = load_credentials(
                    self._namespace(account_id) / TOKEN_FILENAME, self._scopes
                )
            except AuthFailure as exc:
                raise AuthFailure(
                    f"Failed to load credentials for {account_id}. "
                    "You may need to re-authenticate."
                ) from exc
            identity.last_used_at = self._now()
            self._save(registry)
        return CredentialHandle(account_id, credentials)

    # ── Registry queries ───────────────────────────────────────────────────────

    def list_identities(self) -> list[Identity]:
        """All registered identities in registry storage order."""
        with self._lock:
            return list(self._load().accounts.values())

    def snapshot(self) -> tuple[list[Identity], str | None]:
        """Identities and the default, read together from one registry load."""
        with self._lock:
            registry = self._load()
            return list(registry.accounts.values()), registry.default_account

    def exists(self, account_id: str) -> bool:
        with self._lock:
            return account_id in self._load().accounts

    def get_default(self) -> str | None:
        with self._lock:
            return self._load().default_account

    def set_default(self, account_id: str) -> None:
        with self._lock:
            registry = self._load()
            if account_id not in registry.accounts:
                raise NotFound(f"Account {account_id} not found")
            registry.default_account = account_id
            self._save(registry)
        logger.info("Default account set to %s", account_id)

    # ── Private ────────────────────────────────────────────────────────────────

    def _now(self) -> str:
        return self._clock().isoformat()

    def _require(self, account_id: str) -> None:
        with self._lock:
            if account_id not in self._load().accounts:
                raise NotFound(f"Account {account_id} not found")

    def _namespace(self, account_id: str) -> Path:
        """Return the account's storage directory, refusing ids that would escape it."""
        if not is_valid_email(account_id):
            raise InvalidInput(f"Invalid account email address: {account_id!r}")
        namespace = self._child_dir(account_id)
        if namespace is None:
            raise InvalidInput(f"Account id cannot be used as a directory name: {account_id!r}")
        return namespace

    def _child_dir(self, account_id: str) -> Path | None:
        """``accounts_dir / account_id`` if the id is a single plain path component."""
        if not account_id or Path(account_id).name != account_id or account_id.startswith("."):
            return None
        return self._dir / account_id

    def _load(self) -> Registry:
        try:
            raw = self._registry_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Registry()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Account registry %s is not valid JSON: %s", self._registry_path, exc)
            raise GmailMCPError(
                f"Account registry at {self._registry_path} is corrupt; fix or delete it"
            ) from exc
        if not isinstance(data, dict):
            raise GmailMCPError(f"Account registry at {self._registry_path} is corrupt")
        return Registry.from_dict(data)

    def _save(self, registry: Registry) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = self._registry_path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(registry.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp, self._registry_path)
