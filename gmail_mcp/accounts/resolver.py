"""Identity resolver — turns an optional account hint into a credential handle."""

import logging

from gmail_mcp.accounts.credentials import CredentialHandle
from gmail_mcp.accounts.store import CredentialStore
from gmail_mcp.errors import NoDefaultIdentity

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Uniform explicit-else-default account selection for every operation."""

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def resolve(self, account_id: str | None = None) -> CredentialHandle:
        """Return the handle for ``account_id``, or for the default when omitted.

        Errors from the store (NotFound, AuthFailure) propagate unchanged.

        Raises:
            NoDefaultIdentity: no account given and no default configured.
        """
        if account_id:
            return self._store.get_credential(account_id)

        default = self._store.get_default()
        if default is None:
            raise NoDefaultIdentity(
                "No account specified and no default account set. Please add an account first."
            )
        logger.debug("No account given; using default %s", default)
        return self._store.get_credential(default)
