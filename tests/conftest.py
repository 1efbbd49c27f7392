"""
tests/conftest.py -- Shared fixtures and fakes for the KanTab auth tests.

This module provides:
  - In-memory fakes for the external collaborators (account service,
    resource service) and for the authlib OAuth registry / client.
  - _patch_lifespan(): wires the fakes into app.state, bypassing real startup
    (no network, no real providers).
  - api_client: (client, token) for JSON API tests; token belongs to u1.
  - web_client: (client, token) with follow_redirects=False for login redirects.

Scenario data (used across test modules):
  board b1 -- owner u1, members {u1, u2}
  list  l1 -- on board b1
  card  c1 -- on list l1
  list  l9 -- points at a board that does not exist

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from urllib.parse import urlencode

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import httpx
import pytest
from fastapi.responses import RedirectResponse
from fastapi.testclient import TestClient

from asgi import app
from auth.errors import (
    AccountNotFound,
    InvalidToken,
    MissingSocialEmail,
    PasswordLoginDisabledForPasswordlessAccount,
    WrongPassword,
)
from auth.linker import IdentityLinker
from auth.models import Board, BoardList, NormalizedProfile
from auth.oauth import OAuthCallbackOrchestrator
from auth.permissions import PermissionResolver
from auth.providers import GITHUB, GOOGLE
from auth.secure_id import SecureIdCodec
from auth.strategies import ProviderDescriptor, StrategyRegistry
from auth.tokens import TokenService
from core.config import get_settings

# Hex object ids, as the resource services store them.
BOARD_ID = "5f1b2c3d4e5f6a7b8c9d0e1f"
LIST_ID = "5f1b2c3d4e5f6a7b8c9d0e20"
CARD_ID = "5f1b2c3d4e5f6a7b8c9d0e21"
ORPHAN_LIST_ID = "5f1b2c3d4e5f6a7b8c9d0e29"
MISSING_BOARD_ID = "5f1b2c3d4e5f6a7b8c9d0eff"


# ---------------------------------------------------------------------------
# External collaborator fakes
# ---------------------------------------------------------------------------


class FakeAccountService:
    """In-memory stand-in for the external account service."""

    def __init__(self) -> None:
        self.accounts = {
            "alice@example.com": {"id": "u1", "password": "correct-horse", "roles": ["user"]},
            "pat@example.com": {"id": "u4", "passwordless": True, "roles": ["user"]},
        }
        self.social_links = {("github", "1001"): "u2"}
        self.magic_tokens = {"magic-123": "u3"}
        self.calls: list[tuple] = []

    async def social_login(self, profile: NormalizedProfile, current_user_id: str | None = None) -> dict:
        self.calls.append(("social_login", profile, current_user_id))
        key = (profile.provider, profile.external_id)
        if current_user_id:
            self.social_links[key] = current_user_id
            return {"id": current_user_id, "roles": ["user"]}
        if key in self.social_links:
            return {"id": self.social_links[key], "roles": ["user"]}
        if not profile.email:
            raise MissingSocialEmail("Missing e-mail address in social profile")
        user_id = f"u-{profile.provider}-{profile.external_id}"
        self.social_links[key] = user_id
        return {"_id": user_id, "roles": ["user"]}

    async def login(self, email: str, password: str) -> dict:
        self.calls.append(("login", email))
        account = self.accounts.get(email)
        if account is None:
            raise AccountNotFound("User not found!")
        if account.get("passwordless"):
            raise PasswordLoginDisabledForPasswordlessAccount("This is a passwordless account!")
        if account["password"] != password:
            raise WrongPassword("Wrong password!")
        return {"id": account["id"], "roles": account["roles"]}

    async def passwordless(self, token: str) -> dict:
        self.calls.append(("passwordless", token))
        user_id = self.magic_tokens.get(token)
        if user_id is None:
            raise InvalidToken("Invalid token")
        return {"id": user_id, "roles": ["user"]}


class FakeResourceService:
    """In-memory stand-in for the board/list services. Records every lookup."""

    def __init__(self) -> None:
        self.boards = {BOARD_ID: Board(id=BOARD_ID, owner="u1", members=frozenset({"u1", "u2"}))}
        self.lists = {
            LIST_ID: BoardList(id=LIST_ID, board_id=BOARD_ID),
            ORPHAN_LIST_ID: BoardList(id=ORPHAN_LIST_ID, board_id=MISSING_BOARD_ID),
        }
        self.lookups: list[tuple[str, str]] = []

    async def resolve_board(self, board_id: str) -> Board | None:
        self.lookups.append(("board", board_id))
        return self.boards.get(board_id)

    async def resolve_list(self, list_id: str) -> BoardList | None:
        self.lookups.append(("list", list_id))
        return self.lists.get(list_id)


# ---------------------------------------------------------------------------
# authlib fakes
# ---------------------------------------------------------------------------


def _json_response(url: str, data) -> httpx.Response:
    return httpx.Response(200, json=data, request=httpx.Request("GET", url))


class FakeOAuthClient:
    """Mimics the authlib Starlette client surface the orchestrator uses."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.reset()

    def reset(self) -> None:
        self.token = {"access_token": "provider-access-token", "token_type": "bearer"}
        self.responses = {
            "user": {"id": 1001, "login": "octocat", "name": "Mona Lisa", "avatar_url": "https://a.example/1001"},
            "user/emails": [{"email": "mona@example.com", "primary": True, "verified": True}],
        }
        self.exchange_error: Exception | None = None

    async def authorize_redirect(self, request, redirect_uri: str):
        query = urlencode({"redirect_uri": redirect_uri, "state": "state-xyz"})
        return RedirectResponse(f"https://provider.example/{self.name}/authorize?{query}", status_code=302)

    async def authorize_access_token(self, request) -> dict:
        if self.exchange_error is not None:
            raise self.exchange_error
        return dict(self.token)

    async def get(self, path: str, token=None, **kwargs) -> httpx.Response:
        return _json_response(f"https://api.example/{path}", self.responses[path])


class FakeOAuthRegistry:
    """Mimics authlib's OAuth registry: register() then create_client()."""

    def __init__(self) -> None:
        self.registered: dict[str, dict] = {}
        self.clients: dict[str, FakeOAuthClient] = {}

    def register(self, name: str, **kwargs) -> None:
        self.registered[name] = kwargs
        self.clients[name] = FakeOAuthClient(name)

    def create_client(self, name: str):
        return self.clients.get(name)


class FakeCredentials:
    """Settings stand-in exposing only provider_credentials()."""

    def __init__(self, configured: dict[str, tuple[str, str]]) -> None:
        self.configured = configured

    def provider_credentials(self, client_id_key: str, client_secret_key: str) -> tuple[str, str]:
        provider = client_id_key.removesuffix("_CLIENT_ID").lower()
        return self.configured.get(provider, ("", ""))


BROKEN = ProviderDescriptor(
    name="broken",
    label="Broken",
    default_scope="",
    profile_normalizer=GITHUB.profile_normalizer,
    fetch_profile=GITHUB.fetch_profile,
    requires=("kantab_provider_module_that_is_not_installed",),
)


def build_registry(oauth: FakeOAuthRegistry) -> StrategyRegistry:
    """github enabled; google without credentials; broken without its module."""
    registry = StrategyRegistry(FakeCredentials({"github": ("gh-id", "gh-secret"), "broken": ("b-id", "b-secret")}))
    for descriptor in (GITHUB, GOOGLE, BROKEN):
        registry.register(descriptor)
    registry.load_all(oauth)
    return registry


# ---------------------------------------------------------------------------
# Lifespan patch
# ---------------------------------------------------------------------------


def _patch_lifespan():
    """Return an async context manager that replaces the real lifespan.

    Mirrors api.main.lifespan but with fakes for every network collaborator.
    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.settings = settings
        app.state.tokens = TokenService(settings.secret_key, expire_seconds=settings.token_expire_seconds)
        app.state.secure_ids = SecureIdCodec(settings.hashid_salt)
        app.state.oauth = FakeOAuthRegistry()
        app.state.strategies = build_registry(app.state.oauth)
        app.state.accounts = FakeAccountService()
        app.state.resources = FakeResourceService()
        app.state.linker = IdentityLinker(app.state.accounts)
        app.state.permissions = PermissionResolver(app.state.resources)
        app.state.orchestrator = OAuthCallbackOrchestrator(app.state.strategies, app.state.linker, app.state.tokens)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _owner_token(client: TestClient) -> str:
    """Token for u1, the owner of the scenario board."""
    return client.app.state.tokens.issue({"sub": "u1", "roles": ["user"]})


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str], None, None]:
    """Yield (client, token) bound to the real app with the patched lifespan.

    token is a valid bearer token for u1. Components are reachable through
    client.app.state (tokens, secure_ids, accounts, resources, oauth, ...).
    """
    app.router.lifespan_context = _patch_lifespan()
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, _owner_token(client)


@pytest.fixture(scope="module")
def web_client() -> Generator[tuple[TestClient, str], None, None]:
    """Yield (client, token) for a TestClient that does not follow redirects.

    Login tests assert on redirect *locations* and Set-Cookie headers, which
    are invisible once the client follows the redirect.
    """
    app.router.lifespan_context = _patch_lifespan()
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, _owner_token(client)


@pytest.fixture
def resources() -> FakeResourceService:
    return FakeResourceService()


@pytest.fixture
def accounts() -> FakeAccountService:
    return FakeAccountService()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
