"""Error taxonomy shared by every gmail_mcp component."""


class GmailMCPError(Exception):
    """Base class for all errors surfaced to tool callers and the CLI."""


class NotFound(GmailMCPError):
    """An identity, message, label or filter does not exist."""


class AlreadyExists(GmailMCPError):
    """Raised when adding an identity or label that is already present."""


class InvalidInput(GmailMCPError):
    """Malformed address, missing template parameter, bad path, etc."""


class SecurityBlocked(GmailMCPError):
    """The path guard vetoed a read or write."""


class AuthFailure(GmailMCPError):
    """Stored credentials are missing, corrupt, or could not be refreshed.

    Always user-actionable: the fix is to re-authenticate the account.
    """


class NoDefaultIdentity(GmailMCPError):
    """No account was given and no default account is configured."""


class RemoteFailure(GmailMCPError):
    """Wraps a Gmail API error, keeping its HTTP status and message."""

    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
