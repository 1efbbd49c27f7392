"""
auth/strategies.py -- Registry of identity-provider strategies.

Each provider is described once by a frozen ProviderDescriptor (scope,
endpoints, profile fetch + normalization, credential env keys, required
modules). At startup load_all() resolves every configured provider to either
an enabled Strategy (registered on the authlib OAuth registry) or "disabled".

A provider is disabled -- logged, never raised -- when:
  1. No descriptor is registered under its name.
  2. One of its required modules is not importable (MissingStrategyModule).
  3. Its {PROVIDER}_CLIENT_ID / {PROVIDER}_CLIENT_SECRET are not configured.
  4. authlib refuses the registration.

One provider's failure never blocks the others or the service start. After
startup the registry is read-only: routes only call get() / enabled().

Layer rule: no imports from api/. Settings are injected, not imported.
"""

from __future__ import annotations

import importlib.util
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from auth.errors import DuplicateProvider, MissingStrategyModule
from auth.models import NormalizedProfile

ProfileNormalizer = Callable[[dict], NormalizedProfile]
ProfileFetcher = Callable[[Any, dict], Awaitable[dict]]

_DEFAULT_REQUIRES = ("authlib.integrations.starlette_client",)


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of one identity provider.

    client_kwargs are the authlib registration endpoints (authorize_url,
    access_token_url, server_metadata_url, ...). credential_env_keys default
    to ("{NAME}_CLIENT_ID", "{NAME}_CLIENT_SECRET").
    """

    name: str
    label: str
    default_scope: str
    profile_normalizer: ProfileNormalizer
    fetch_profile: ProfileFetcher
    client_kwargs: Mapping[str, Any] = field(default_factory=dict)
    credential_env_keys: tuple[str, str] = ("", "")
    requires: tuple[str, ...] = _DEFAULT_REQUIRES

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Provider descriptor needs a name.")
        if not all(self.credential_env_keys):
            prefix = self.name.upper()
            object.__setattr__(self, "credential_env_keys", (f"{prefix}_CLIENT_ID", f"{prefix}_CLIENT_SECRET"))
        object.__setattr__(self, "client_kwargs", MappingProxyType(dict(self.client_kwargs)))


@dataclass(frozen=True)
class Strategy:
    """An enabled provider: its descriptor plus the authlib client bound to it."""

    descriptor: ProviderDescriptor
    client: Any

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def label(self) -> str:
        return self.descriptor.label


class StrategyRegistry:
    """Lookup table of provider descriptors and the strategies enabled from them.

    Usage:
        registry = StrategyRegistry(settings)
        registry.register(GITHUB)
        registry.load_all(OAuth(), ["github"])
        registry.get("github")   # Strategy or None
    """

    def __init__(self, settings, logger: logging.Logger | None = None) -> None:
        self._settings = settings
        self._logger = logger or logging.getLogger("kantab.auth.strategies")
        self._descriptors: dict[str, ProviderDescriptor] = {}
        self._enabled: dict[str, Strategy] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, descriptor: ProviderDescriptor) -> None:
        if descriptor.name in self._descriptors:
            raise DuplicateProvider(f"Provider {descriptor.name!r} is already registered", provider=descriptor.name)
        self._descriptors[descriptor.name] = descriptor

    def descriptor(self, name: str) -> ProviderDescriptor | None:
        return self._descriptors.get(name)

    def names(self) -> list[str]:
        return list(self._descriptors)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, name: str, oauth) -> Strategy | None:
        """Enable provider `name` on the authlib registry, or return None if it is unavailable."""
        if name in self._enabled:
            return self._enabled[name]

        descriptor = self._descriptors.get(name)
        if descriptor is None:
            self._logger.warning("No strategy registered for provider %r -- provider disabled", name)
            return None

        try:
            _check_requirements(descriptor)
        except MissingStrategyModule as exc:
            self._logger.warning("%s -- provider %r disabled", exc.message, name)
            return None

        client_id, client_secret = self._settings.provider_credentials(*descriptor.credential_env_keys)
        if not (client_id and client_secret):
            self._logger.warning(
                "Missing %s / %s -- provider %r disabled",
                descriptor.credential_env_keys[0],
                descriptor.credential_env_keys[1],
                name,
            )
            return None

        kwargs = dict(descriptor.client_kwargs)
        if descriptor.default_scope:
            kwargs["client_kwargs"] = {**kwargs.get("client_kwargs", {}), "scope": descriptor.default_scope}
        try:
            oauth.register(name=name, client_id=client_id, client_secret=client_secret, **kwargs)
            client = oauth.create_client(name)
        except Exception:
            self._logger.exception("Registering OAuth client for %r failed -- provider disabled", name)
            return None
        if client is None:
            self._logger.warning("OAuth registry returned no client for %r -- provider disabled", name)
            return None

        strategy = Strategy(descriptor=descriptor, client=client)
        self._enabled[name] = strategy
        self._logger.info("%s OAuth provider registered", descriptor.label)
        return strategy

    def load_all(self, oauth, names: Iterable[str] | None = None) -> list[Strategy]:
        """Load every provider in `names` (default: all registered). Returns the enabled ones."""
        loaded = []
        for name in self.names() if names is None else names:
            strategy = self.load(name, oauth)
            if strategy is not None:
                loaded.append(strategy)
        return loaded

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Strategy | None:
        return self._enabled.get(name)

    def is_enabled(self, name: str) -> bool:
        return name in self._enabled

    def enabled(self) -> list[Strategy]:
        return list(self._enabled.values())


def _check_requirements(descriptor: ProviderDescriptor) -> None:
    for module in descriptor.requires:
        try:
            found = importlib.util.find_spec(module) is not None
        except (ImportError, ValueError):
            found = False
        if not found:
            raise MissingStrategyModule(
                f"The {module!r} module required by {descriptor.name!r} is missing",
                provider=descriptor.name,
                module=module,
            )
