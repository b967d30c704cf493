"""Path guard — vetoes reads and writes under sensitive or credential-storage paths.

Used on every attachment source path before it is opened and on every
download destination before it is written.  Classification works on the
fully resolved absolute path, so ``..`` segments and ``~`` cannot be used to
step around a pattern.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from gmail_mcp.errors import SecurityBlocked

logger = logging.getLogger(__name__)

_SEP = r"[/\\]"

# (pattern, human-readable category) — matched case-insensitively against the
# resolved absolute path.
SENSITIVE_PATH_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(rf"{_SEP}\.ssh{_SEP}", re.I), "SSH keys"),
    (re.compile(rf"{_SEP}\.gnupg{_SEP}", re.I), "GnuPG keyring"),
    (re.compile(rf"{_SEP}\.aws{_SEP}", re.I), "AWS credentials"),
    (re.compile(rf"{_SEP}\.config{_SEP}gcloud{_SEP}", re.I), "gcloud credentials"),
    (re.compile(rf"{_SEP}\.docker{_SEP}", re.I), "Docker config"),
    (re.compile(rf"{_SEP}\.kube{_SEP}", re.I), "Kubernetes config"),
    (re.compile(rf"{_SEP}\.npmrc$", re.I), "npm credentials"),
    (re.compile(rf"{_SEP}\.netrc$", re.I), "netrc credentials"),
    (re.compile(rf"{_SEP}\.env(\..+)?$", re.I), "environment file"),
    (re.compile(rf"{_SEP}credentials\.json$", re.I), "credentials file"),
    (re.compile(rf"{_SEP}token\.json$", re.I), "token file"),
    (re.compile(rf"{_SEP}\.git{_SEP}", re.I), "git metadata"),
    (re.compile(r"^/etc/", re.I), "system configuration"),
]


@dataclass(frozen=True)
class PathVerdict:
    """Outcome of classifying one path.  ``reason`` is set only when blocked."""

    path: str
    reason: str | None = None

    @property
    def allowed(self) -> bool:
        return self.reason is None

    @classmethod
    def allow(cls, path: str) -> PathVerdict:
        return cls(path=path)

    @classmethod
    def block(cls, path: str, reason: str) -> PathVerdict:
        return cls(path=path, reason=reason)


def resolve_path(path: str | os.PathLike[str]) -> str:
    """Expand ``~`` and normalise to an absolute path without following symlinks."""
    return os.path.abspath(os.path.expanduser(os.fspath(path)))


class PathGuard:
    """Classifies filesystem paths as safe or sensitive.

    ``credential_root`` is the credential store's accounts directory; it and
    everything beneath it is always blocked so message operations can never
    read or overwrite stored secrets.

    Usage::

        guard = PathGuard(settings.accounts_dir)
        guard.ensure_allowed("~/report.pdf", purpose="Attachment")
    """

    def __init__(self, credential_root: str | os.PathLike[str]) -> None:
        root = os.fspath(credential_root)
        self._roots = {resolve_path(root), os.path.realpath(os.path.expanduser(root))}

    def classify(self, path: str | os.PathLike[str]) -> PathVerdict:
        """Return the verdict for ``path``.  Pure: no filesystem access beyond resolution."""
        resolved = resolve_path(path)

        for pattern, category in SENSITIVE_PATH_PATTERNS:
            if pattern.search(resolved):
                return PathVerdict.block(resolved, f"matches a sensitive path pattern ({category})")

        for root in self._roots:
            if resolved == root or resolved.startswith(root + os.sep):
                return PathVerdict.block(resolved, "is inside the credential storage directory")

        return PathVerdict.allow(resolved)

    def ensure_allowed(self, path: str | os.PathLike[str], purpose: str = "Access") -> Path:
        """Return the resolved path, or raise SecurityBlocked if the guard vetoes it."""
        verdict = self.classify(path)
        if not verdict.allowed:
            logger.warning("%s blocked: %s %s", purpose, verdict.path, verdict.reason)
            raise SecurityBlocked(
                f"{purpose} blocked for security reasons: {os.fspath(path)} {verdict.reason}"
            )
        return Path(verdict.path)
