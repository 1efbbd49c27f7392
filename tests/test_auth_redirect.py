"""
tests/test_auth_redirect.py -- Integration tests for the browser login routes.

These tests run the OAuth redirect / callback chain and the local login end
to end through the real ASGI stack using the web_client fixture
(follow_redirects=False). We assert on Location and Set-Cookie headers
directly -- following the redirect would hide them.

Coverage:
  - GET /auth/{provider}: enabled -> 302 to the provider; disabled/unknown -> 404
  - GET /auth/{provider}/callback success -> 302 SUCCESS_REDIRECT + token cookie
  - Callback failures -> 302 LOGIN_REDIRECT?error=<code>, no cookie
  - Callback while signed in links the identity to the current account
  - POST /auth/local: password and magic-link login, account errors keep their codes
"""

from __future__ import annotations

from collections.abc import Iterator
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from authlib.integrations.starlette_client import OAuthError
from fastapi.testclient import TestClient

from conftest import bearer


def _set_cookies(resp) -> list[str]:
    return [v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]


@pytest.fixture(autouse=True)
def fresh_login_state(web_client: tuple[TestClient, str]) -> Iterator[None]:
    """Each test starts signed out with the default GitHub fake behaviour."""
    client, _token = web_client
    client.cookies.clear()
    client.app.state.oauth.clients["github"].reset()
    yield
    client.cookies.clear()


class TestProviderRedirect:
    def test_enabled_provider_redirects(self, web_client: tuple[TestClient, str]) -> None:
        client, _token = web_client
        resp = client.get("/auth/github")
        assert resp.status_code == 302
        location = urlparse(resp.headers["location"])
        assert location.netloc == "provider.example"
        assert parse_qs(location.query)["redirect_uri"] == ["http://testserver/auth/github/callback"]

    @pytest.mark.parametrize("provider", ["google", "broken", "myspace"])
    def test_disabled_provider_is_404(self, web_client: tuple[TestClient, str], provider: str) -> None:
        client, _token = web_client
        resp = client.get(f"/auth/{provider}")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "provider_not_enabled"


class TestCallback:
    def test_success_sets_cookie_and_redirects(self, web_client: tuple[TestClient, str]) -> None:
        client, _token = web_client
        resp = client.get("/auth/github/callback?code=abc&state=state-xyz")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert resp.headers["cache-control"] == "no-store"

        cookies = [c for c in _set_cookies(resp) if c.startswith("jwt-token=")]
        assert len(cookies) == 1
        assert "samesite=lax" in cookies[0].lower()

        token = cookies[0].split(";", 1)[0].split("=", 1)[1]
        assert client.app.state.tokens.verify(token).subject == "u2"

    def test_exchange_failure_redirects_to_login(self, web_client: tuple[TestClient, str]) -> None:
        client, _token = web_client
        client.app.state.oauth.clients["github"].exchange_error = OAuthError(error="access_denied")
        resp = client.get("/auth/github/callback?error=access_denied")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?error=oauth_failed"
        assert not any(c.startswith("jwt-token=") for c in _set_cookies(resp))

    def test_provider_timeout_redirects_to_login(self, web_client: tuple[TestClient, str]) -> None:
        client, _token = web_client
        client.app.state.oauth.clients["github"].exchange_error = httpx.ReadTimeout("slow provider")
        resp = client.get("/auth/github/callback?code=abc")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?error=oauth_failed"

    def test_provider_unreachable_redirects_to_login(self, web_client: tuple[TestClient, str]) -> None:
        client, _token = web_client
        client.app.state.oauth.clients["github"].exchange_error = httpx.ConnectError("provider unreachable")
        resp = client.get("/auth/github/callback?code=abc")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?error=oauth_failed"

    def test_account_refusal_redirect_carries_code(self, web_client: tuple[TestClient, str]) -> None:
        client, _token = web_client
        fake = client.app.state.oauth.clients["github"]
        fake.responses["user"] = {"id": 4004, "login": "nomail"}
        fake.responses["user/emails"] = []
        resp = client.get("/auth/github/callback?code=abc")
        assert resp.headers["location"] == "/login?error=missing_social_email"

    def test_disabled_provider_callback_redirects(self, web_client: tuple[TestClient, str]) -> None:
        client, _token = web_client
        resp = client.get("/auth/google/callback?code=abc")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?error=provider_not_enabled"

    def test_signed_in_user_links_identity(self, web_client: tuple[TestClient, str]) -> None:
        client, token = web_client
        client.app.state.oauth.clients["github"].responses["user"] = {"id": 5005, "login": "alice-gh"}
        resp = client.get("/auth/github/callback?code=abc", headers=bearer(token))
        assert resp.status_code == 302
        assert client.app.state.accounts.social_links[("github", "5005")] == "u1"


class TestLocalLogin:
    def test_password_login(self, web_client: tuple[TestClient, str]) -> None:
        client, _token = web_client
        resp = client.post("/auth/local", json={"email": "alice@example.com", "password": "correct-horse"})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()
        assert data["user_id"] == "u1"
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == client.app.state.tokens.expire_seconds
        assert client.app.state.tokens.verify(data["token"]).subject == "u1"

    def test_magic_link_login(self, web_client: tuple[TestClient, str]) -> None:
        client, _token = web_client
        resp = client.post("/auth/local", json={"token": "magic-123"})
        assert resp.status_code == 200
        assert resp.json()["user_id"] == "u3"

    @pytest.mark.parametrize(
        "body, status, code",
        [
            ({"email": "nobody@example.com", "password": "x"}, 401, "account_not_found"),
            ({"email": "alice@example.com", "password": "wrong"}, 401, "wrong_password"),
            ({"email": "pat@example.com", "password": "x"}, 400, "passwordless_account"),
            ({"token": "expired-magic"}, 401, "invalid_token"),
        ],
    )
    def test_account_errors_keep_their_codes(
        self, web_client: tuple[TestClient, str], body: dict, status: int, code: str
    ) -> None:
        client, _token = web_client
        resp = client.post("/auth/local", json=body)
        assert resp.status_code == status
        assert resp.json()["error"]["code"] == code

    @pytest.mark.parametrize(
        "body",
        [{}, {"email": "alice@example.com"}, {"token": "magic-123", "email": "alice@example.com"}],
    )
    def test_incomplete_credentials_are_422(self, web_client: tuple[TestClient, str], body: dict) -> None:
        client, _token = web_client
        assert client.post("/auth/local", json=body).status_code == 422
