"""OAuth credential handles and the interactive consent collaborator."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import google_auth_httplib2
import httplib2
from google.auth.exceptions import GoogleAuthError, RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from gmail_mcp.errors import AuthFailure

logger = logging.getLogger(__name__)

# Keys persisted in each account's token.json.  The access token is not
# stored; it is re-minted from the refresh token on demand.
_BUNDLE_KEYS = ("type", "client_id", "client_secret", "refresh_token")


# ── Consent collaborator ───────────────────────────────────────────────────────


@runtime_checkable
class ConsentFlow(Protocol):
    """Runs an interactive OAuth grant and returns an authorized-user bundle."""

    def authorize(self, account_id: str) -> dict[str, str]:
        """Return a bundle with at least client_id, client_secret and refresh_token."""
        ...


class InstalledAppConsentFlow:
    """Browser-based consent using Google's installed-app flow.

    Reads the OAuth client registration from ``client_secrets_path``
    (the ``credentials.json`` downloaded from Google Cloud Console).
    """

    def __init__(self, client_secrets_path: Path, scopes: list[str]) -> None:
        self._client_secrets_path = Path(client_secrets_path)
        self._scopes = list(scopes)

    def authorize(self, account_id: str) -> dict[str, str]:
        if not self._client_secrets_path.is_file():
            raise AuthFailure(
                f"OAuth client file not found at {self._client_secrets_path}. "
                "Download credentials.json from Google Cloud Console first."
            )
        logger.info("Starting OAuth consent for %s", account_id)
        flow = InstalledAppFlow.from_client_secrets_file(
            str(self._client_secrets_path), self._scopes
        )
        # login_hint pre-selects the account on Google's consent screen.
        creds = flow.run_local_server(port=0, login_hint=account_id)
        if not creds.refresh_token:
            raise AuthFailure(f"Consent for {account_id} did not return a refresh token")
        return {
            "type": "authorized_user",
            "client_id": creds.client_id,
            "client_secret": creds.client_secret,
            "refresh_token": creds.refresh_token,
        }


# ── Bundle persistence ─────────────────────────────────────────────────────────


def write_bundle(path: Path, bundle: dict[str, Any]) -> None:
    """Persist a credential bundle, readable only by the current user."""
    payload = {key: bundle[key] for key in _BUNDLE_KEYS if key in bundle}
    payload.setdefault("type", "authorized_user")
    path.write_text(json.dumps(payload), encoding="utf-8")
    path.chmod(0o600)


def load_credentials(path: Path, scopes: list[str]) -> Credentials:
    """Load refreshable credentials from a bundle file.

    Raises:
        AuthFailure: the file is missing, unreadable, or not a valid bundle.
    """
    try:
        info = json.loads(path.read_text(encoding="utf-8"))
        return Credentials.from_authorized_user_info(info, scopes)
    except (OSError, ValueError, TypeError) as exc:
        raise AuthFailure("stored credentials could not be loaded") from exc


# ── Capability handle ──────────────────────────────────────────────────────────


class CredentialHandle:
    """Live, self-refreshing credential for exactly one account.

    Callers get tokens and authorised transports from the handle; the
    underlying client secret and refresh token never leave it.
    """

    def __init__(self, account_id: str, credentials: Credentials) -> None:
        self._account_id = account_id
        self._credentials = credentials
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"CredentialHandle(account_id={self._account_id!r})"

    @property
    def account_id(self) -> str:
        return self._account_id

    def token(self) -> str:
        """Return a valid access token, refreshing first if it is missing or expired."""
        with self._lock:
            if not self._credentials.valid:
                self._refresh_locked()
            return str(self._credentials.token)

    def refresh(self) -> None:
        """Force a token refresh."""
        with self._lock:
            self._refresh_locked()

    def authorized_http(self, timeout: float | None = None) -> google_auth_httplib2.AuthorizedHttp:
        """Return a fresh authorised transport.

        One per request: httplib2 connections are not safe to share between
        the worker threads a batch chunk fans out to.
        """
        if not self._credentials.valid:
            self.refresh()
        return google_auth_httplib2.AuthorizedHttp(
            self._credentials, http=httplib2.Http(timeout=timeout)
        )

    def _refresh_locked(self) -> None:
        try:
            self._credentials.refresh(Request())
        except (RefreshError, GoogleAuthError) as exc:
            logger.warning("Token refresh failed for %s: %s", self._account_id, exc)
            raise AuthFailure(
                f"Failed to refresh credentials for {self._account_id}. "
                "You may need to re-authenticate."
            ) from exc
        logger.debug("Refreshed access token for %s", self._account_id)
