"""
api/routes/v1/auth.py -- Token verification and identity REST endpoints.

Routes:
  POST /api/v1/auth/verify-token  -- verify a token, return its claims (cached)
  GET  /api/v1/auth/providers     -- list enabled OAuth providers (public)
  GET  /api/v1/auth/me            -- current principal (requires auth)

verify-token is the action the request-routing layer calls to authenticate
inbound API calls. InvalidToken and TokenExpired propagate to the AuthError
handler in api/main.py, which renders them as 401 with their own codes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MeResponse, ProviderInfo, TokenClaimsResponse, VerifyTokenRequest
from auth.dependencies import get_principal
from auth.models import Principal
from auth.strategies import StrategyRegistry
from auth.tokens import TokenService

# Auth policy:
# - POST /api/v1/auth/verify-token: public -- the token in the body is the credential
# - GET  /api/v1/auth/providers:    public -- login page calls this to render provider buttons
# - GET  /api/v1/auth/me:           requires auth (get_principal)
router = APIRouter()


@router.post("/auth/verify-token", response_model=TokenClaimsResponse)
async def verify_token(request: Request, body: VerifyTokenRequest) -> TokenClaimsResponse:
    """Verify a token's signature and expiry and return its claims."""
    tokens: TokenService = request.app.state.tokens
    claims = tokens.verify(body.token)
    return TokenClaimsResponse(
        subject=claims.subject,
        issued_at=claims.issued_at,
        expires_at=claims.expires_at,
        extra=claims.extra,
    )


@router.get("/auth/providers", response_model=list[ProviderInfo])
async def list_providers(request: Request) -> list[ProviderInfo]:
    """Return the enabled OAuth providers. Empty when no provider credentials are set."""
    registry: StrategyRegistry = request.app.state.strategies
    return [ProviderInfo(name=s.name, label=s.label) for s in registry.enabled()]


@router.get("/auth/me", response_model=MeResponse)
async def me(principal: Principal = Depends(get_principal)) -> MeResponse:
    """Return identity information for the currently authenticated principal."""
    return MeResponse(
        user_id=principal.user_id,
        roles=sorted(principal.roles),
        operator=principal.operator,
    )
