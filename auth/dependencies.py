"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. The login cookie (COOKIE_NAME, default "jwt-token") -- set by the OAuth
     callback for browser sessions.

Both converge on a Principal built from the verified TokenClaims.

try_get_principal() is the soft variant (returns None on failure).
get_principal() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: auth/dependencies.py may import from fastapi (for Request and
HTTPException) because this module is part of the FastAPI dependency
injection system. It reads its collaborators from request.app.state.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import InvalidToken, TokenExpired
from auth.models import Principal, TokenClaims
from auth.tokens import TokenService


def principal_from_claims(claims: TokenClaims) -> Principal:
    """Build the request Principal from verified claims.

    operator is only honoured when the claim is literally True -- it is set
    by operational tooling that signs with the server secret, never by login.
    """
    roles = claims.extra.get("roles") or []
    return Principal(
        user_id=claims.subject,
        roles=frozenset(str(r) for r in roles) if isinstance(roles, list) else frozenset(),
        operator=claims.extra.get("operator") is True,
    )


def _extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None

    cookie_name = request.app.state.settings.cookie_name
    if cookie_name:
        return request.cookies.get(cookie_name) or None
    return None


def try_get_principal(request: Request) -> Principal | None:
    """Attempt to authenticate the request. Returns None on any failure, never raises."""
    token = _extract_token(request)
    if not token:
        return None
    tokens: TokenService = request.app.state.tokens
    try:
        claims = tokens.verify(token)
    except (InvalidToken, TokenExpired):
        return None
    return principal_from_claims(claims)


def get_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_principal)): ...
    """
    principal = try_get_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal
