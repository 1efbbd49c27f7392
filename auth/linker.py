"""
auth/linker.py -- Map login credentials to an internal account.

The linker is an orchestration shim: it picks the account service call that
matches the credential type, and turns the returned account into a
Principal. It keeps no state and persists nothing -- the account service is
the source of truth and decides whether to link, create, or refuse.

Credential dispatch:
  NormalizedProfile     -> social_login (find-or-create by provider profile)
  PasswordCredentials   -> login        (verify-password)
  MagicLinkCredentials  -> passwordless (magic-link token)

Errors from the account service (AccountNotFound, WrongPassword,
PasswordLoginDisabledForPasswordlessAccount, ...) propagate unchanged.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.clients import AccountService
from auth.errors import AccountServiceError
from auth.models import Credentials, MagicLinkCredentials, NormalizedProfile, PasswordCredentials, Principal


def principal_from_account(account: dict) -> Principal:
    """Build a Principal from an account service response.

    Accepts both "id" and "_id" because the account service exposes storage
    documents as-is.
    """
    if not isinstance(account, dict):
        raise AccountServiceError("Account service returned no account")
    user_id = account.get("id") or account.get("_id")
    if not user_id:
        raise AccountServiceError("Account service returned an account without id")
    roles = account.get("roles") or []
    return Principal(user_id=str(user_id), roles=frozenset(str(r) for r in roles))


class IdentityLinker:
    def __init__(self, accounts: AccountService, logger: logging.Logger | None = None) -> None:
        self._accounts = accounts
        self._logger = logger or logging.getLogger("kantab.auth.linker")

    async def sign_in(self, credentials: Credentials, current_user_id: str | None = None) -> Principal:
        """Resolve credentials to a Principal through the account service.

        current_user_id is the already signed-in user, if any. Social logins
        then link the provider identity to that account instead of looking
        one up.
        """
        if isinstance(credentials, NormalizedProfile):
            self._logger.debug("Social sign-in via %r (external id %s)", credentials.provider, credentials.external_id)
            account = await self._accounts.social_login(credentials, current_user_id)
        elif isinstance(credentials, PasswordCredentials):
            account = await self._accounts.login(credentials.email, credentials.password)
        elif isinstance(credentials, MagicLinkCredentials):
            account = await self._accounts.passwordless(credentials.token)
        else:
            raise TypeError(f"Unsupported credentials type: {type(credentials).__name__}")

        principal = principal_from_account(account)
        self._logger.info("Signed in account %s", principal.user_id)
        return principal
