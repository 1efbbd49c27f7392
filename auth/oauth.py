"""
auth/oauth.py -- OAuth redirect / callback handshake for enabled providers.

One login attempt has two legs:
  Redirecting -- GET /auth/{provider}: authlib builds the authorization URL
                 and stores the OAuth state in the Starlette session.
  Callback    -- GET /auth/{provider}/callback: authlib checks the state and
                 exchanges the authorization artifact for a token.

The orchestrator holds no per-attempt state of its own; correlating the two
legs is authlib's job (SessionMiddleware must be installed).

On callback:
  1. Exchange the artifact for a provider token (authlib).
  2. Fetch the raw profile and normalize it (provider descriptor).
  3. Hand the NormalizedProfile to the IdentityLinker.
  4. Issue our own token for the resulting Principal.

complete() never raises. It returns a SignInResult -- Ok(principal, token) or
Err(error) -- and the route turns Err into a redirect back to the login page
with ?error=<code>. Provider transport errors and unexpected exceptions are
logged and reported as oauth_failed.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

import httpx
from authlib.integrations.starlette_client import OAuthError

from auth.errors import AuthError, OAuthExchangeError, ProviderNotEnabled
from auth.linker import IdentityLinker
from auth.models import SignInResult
from auth.strategies import Strategy, StrategyRegistry
from auth.tokens import TokenService


class OAuthCallbackOrchestrator:
    def __init__(
        self,
        registry: StrategyRegistry,
        linker: IdentityLinker,
        tokens: TokenService,
        logger: logging.Logger | None = None,
    ) -> None:
        self._registry = registry
        self._linker = linker
        self._tokens = tokens
        self._logger = logger or logging.getLogger("kantab.auth.oauth")

    def strategy(self, provider: str) -> Strategy:
        """Return the enabled strategy for `provider` or raise ProviderNotEnabled (404)."""
        strategy = self._registry.get(provider)
        if strategy is None:
            raise ProviderNotEnabled(f"Provider {provider!r} is not enabled", provider=provider)
        return strategy

    async def begin(self, request, provider: str, redirect_uri: str):
        """Redirect the browser to the provider's authorization page."""
        strategy = self.strategy(provider)
        return await strategy.client.authorize_redirect(request, redirect_uri)

    async def complete(self, request, provider: str, current_user_id: str | None = None) -> SignInResult:
        """Finish the handshake and sign the user in. Every failure becomes Err."""
        try:
            strategy = self.strategy(provider)
            token = await self._exchange(strategy, request)
            raw_profile = await self._fetch_profile(strategy, token)
            profile = strategy.descriptor.profile_normalizer(raw_profile)
            self._logger.debug("Received %r social profile for external id %s", provider, profile.external_id)

            principal = await self._linker.sign_in(profile, current_user_id=current_user_id)
            issued = self._tokens.issue_with_retry({"sub": principal.user_id, "roles": sorted(principal.roles)})
        except AuthError as exc:
            self._logger.warning("Authentication with %r failed: %s (%s)", provider, exc.code, exc.message)
            return SignInResult.failure(exc)
        except Exception:
            self._logger.exception("Unexpected error during %r authentication", provider)
            return SignInResult.failure(OAuthExchangeError("Authentication with the provider failed", provider=provider))

        self._logger.info("Successful authentication with %r for account %s", provider, principal.user_id)
        return SignInResult.success(principal, issued)

    async def _exchange(self, strategy: Strategy, request) -> dict:
        try:
            return await strategy.client.authorize_access_token(request)
        except (OAuthError, httpx.HTTPError) as exc:
            self._logger.warning("OAuth token exchange failed for provider %r: %s", strategy.name, exc)
            raise OAuthExchangeError("OAuth token exchange failed", provider=strategy.name) from exc

    async def _fetch_profile(self, strategy: Strategy, token: dict) -> dict:
        try:
            return await strategy.descriptor.fetch_profile(strategy.client, token)
        except (httpx.HTTPError, OAuthError, ValueError) as exc:
            self._logger.warning("Fetching %r profile failed: %s", strategy.name, exc)
            raise OAuthExchangeError("Unable to fetch the provider profile", provider=strategy.name) from exc
