"""
auth/clients.py -- Interfaces and HTTP clients for external collaborators.

The auth subsystem owns no accounts and no boards. It reaches them through
two narrow interfaces:

  AccountService  -- find-or-create-account-by-profile, verify-password,
                     passwordless magic-link login. Source of truth for users.
  ResourceService -- resolve-board-by-id, resolve-list-by-id. Read-only.

HttpAccountService / HttpResourceService implement them with a shared
httpx.AsyncClient per collaborator. Tests substitute in-memory fakes that
satisfy the same Protocols.

Account service errors arrive as JSON bodies carrying an error code, either
the {"error": {"code": ...}} envelope or a bare {"type": "ERR_..."} object.
_ACCOUNT_ERRORS maps both spellings into the auth error taxonomy; anything
unmapped becomes AccountServiceError (retryable).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from auth import errors
from auth.models import Board, BoardList, NormalizedProfile

logger = logging.getLogger("kantab.auth.clients")


class AccountService(Protocol):
    async def social_login(self, profile: NormalizedProfile, current_user_id: str | None = None) -> dict: ...

    async def login(self, email: str, password: str) -> dict: ...

    async def passwordless(self, token: str) -> dict: ...


class ResourceService(Protocol):
    async def resolve_board(self, board_id: str) -> Board | None: ...

    async def resolve_list(self, list_id: str) -> BoardList | None: ...


# ---------------------------------------------------------------------------
# Account service
# ---------------------------------------------------------------------------

_ACCOUNT_ERRORS: dict[str, type[errors.AuthError]] = {
    "ERR_USER_NOT_FOUND": errors.AccountNotFound,
    "USER_NOT_FOUND": errors.AccountNotFound,
    "ERR_WRONG_PASSWORD": errors.WrongPassword,
    "ERR_PASSWORDLESS_WITH_PASSWORD": errors.PasswordLoginDisabledForPasswordlessAccount,
    "ERR_ACCOUNT_DISABLED": errors.AccountDisabled,
    "ACCOUNT_DISABLED": errors.AccountDisabled,
    "ERR_ACCOUNT_NOT_VERIFIED": errors.AccountNotVerified,
    "ERR_SOCIAL_ACCOUNT_MISMATCH": errors.SocialAccountMismatch,
    "ERR_NO_SOCIAL_EMAIL": errors.MissingSocialEmail,
    "ERR_SIGNUP_DISABLED": errors.SignupDisabled,
    "ERR_PASSWORDLESS_DISABLED": errors.PasswordlessDisabled,
    "ERR_PASSWORDLESS_UNAVAILABLE": errors.PasswordlessDisabled,
    "INVALID_TOKEN": errors.InvalidToken,
    "TOKEN_EXPIRED": errors.TokenExpired,
}


def account_error_from_response(resp: httpx.Response) -> errors.AuthError:
    """Translate a non-2xx account service response into an AuthError."""
    try:
        body = resp.json()
    except ValueError:
        body = {}

    code = ""
    message = ""
    if isinstance(body, dict):
        envelope = body.get("error")
        if isinstance(envelope, dict):
            code = str(envelope.get("code", ""))
            message = str(envelope.get("message", ""))
        else:
            code = str(body.get("type", ""))
            message = str(body.get("message", ""))

    error_cls = _ACCOUNT_ERRORS.get(code.upper(), errors.AccountServiceError)
    return error_cls(message or f"Account service responded {resp.status_code}", upstream_code=code)


class HttpAccountService:
    """AccountService over HTTP.

    Endpoints (relative to base_url):
      POST /social-login   {provider, profile, currentUserId}
      POST /login          {email, password}
      POST /passwordless   {token}
    """

    def __init__(self, base_url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/") + "/", timeout=timeout)

    async def social_login(self, profile: NormalizedProfile, current_user_id: str | None = None) -> dict:
        body: dict[str, Any] = {
            "provider": profile.provider,
            "profile": {
                "socialID": profile.external_id,
                "fullName": profile.full_name,
                "email": profile.email,
                "avatar": profile.avatar_url,
                "username": profile.username,
            },
        }
        if current_user_id:
            body["currentUserId"] = current_user_id
        return await self._post("social-login", body)

    async def login(self, email: str, password: str) -> dict:
        return await self._post("login", {"email": email, "password": password})

    async def passwordless(self, token: str) -> dict:
        return await self._post("passwordless", {"token": token})

    async def _post(self, path: str, body: dict) -> dict:
        try:
            resp = await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            logger.warning("Account service request %s failed: %s", path, exc)
            raise errors.AccountServiceError("Account service unavailable") from exc
        if resp.status_code >= 400:
            raise account_error_from_response(resp)
        try:
            return resp.json()
        except ValueError as exc:
            raise errors.AccountServiceError("Account service returned invalid JSON") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Resource service
# ---------------------------------------------------------------------------


def _ref_id(value) -> str | None:
    """Board/list references come back either as an id string or an embedded object."""
    if isinstance(value, dict):
        value = value.get("id") or value.get("_id")
    if value is None or value == "":
        return None
    return str(value)


def board_from_json(data: dict) -> Board | None:
    board_id = _ref_id(data)
    if board_id is None:
        return None
    owner = _ref_id(data.get("owner"))
    members = data.get("members")
    return Board(
        id=board_id,
        owner=owner,
        members=frozenset(m for m in (_ref_id(x) for x in members) if m) if isinstance(members, list) else None,
    )


def list_from_json(data: dict) -> BoardList | None:
    list_id = _ref_id(data)
    if list_id is None:
        return None
    return BoardList(id=list_id, board_id=_ref_id(data.get("board")))


class HttpResourceService:
    """ResourceService over HTTP: GET /boards/{id} and GET /lists/{id}.

    404 means "no such entity" and resolves to None. Any other failure
    propagates -- the caller's request fails rather than silently denying.
    A 200 whose body is not JSON raises ResourceServiceError (502).
    """

    def __init__(self, base_url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/") + "/", timeout=timeout)

    async def resolve_board(self, board_id: str) -> Board | None:
        data = await self._get(f"boards/{board_id}")
        return board_from_json(data) if isinstance(data, dict) else None

    async def resolve_list(self, list_id: str) -> BoardList | None:
        data = await self._get(f"lists/{list_id}")
        return list_from_json(data) if isinstance(data, dict) else None

    async def _get(self, path: str):
        resp = await self._client.get(path)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as exc:
            logger.warning("Resource service returned invalid JSON for %s", path)
            raise errors.ResourceServiceError("Resource service returned invalid JSON") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
