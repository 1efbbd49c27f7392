"""
web/routes.py -- Browser-facing login routes.

These routes drive redirects and cookies rather than JSON APIs. They share
app.state with the API routes (token service, strategy registry, linker) and
are mounted by asgi.py, not api/main.py.

Routes:
  GET  /auth/{provider}           -- redirect to the provider's authorization page
  GET  /auth/{provider}/callback  -- finish the handshake, set cookie, redirect
  POST /auth/local                -- password or magic-link login; returns the token

Failure handling:
  GET /auth/{provider} for an unknown or disabled provider is a 404.
  Every callback failure redirects to LOGIN_REDIRECT?error=<code> -- the user
  is never left on a hanging request or an error page from the provider leg.
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.models import LocalLoginRequest, LoginResponse
from auth.dependencies import try_get_principal
from auth.linker import IdentityLinker
from auth.models import MagicLinkCredentials, PasswordCredentials
from auth.oauth import OAuthCallbackOrchestrator
from auth.tokens import TokenService, set_auth_cookie

logger = logging.getLogger("kantab.web")

router = APIRouter()


def _login_error_url(login_redirect: str, code: str) -> str:
    separator = "&" if "?" in login_redirect else "?"
    return f"{login_redirect}{separator}{urlencode({'error': code})}"


# Route registration order: POST /auth/local is registered before the
# /auth/{provider} pattern so the static path is matched first.


@router.post("/auth/local", response_model=LoginResponse)
async def local_login(request: Request, body: LocalLoginRequest) -> JSONResponse:
    """Sign in with email + password or a passwordless magic-link token.

    Account service failures (AccountNotFound, WrongPassword, ...) propagate
    to the AuthError handler and keep their distinct codes.
    """
    linker: IdentityLinker = request.app.state.linker
    tokens: TokenService = request.app.state.tokens

    if body.token:
        credentials = MagicLinkCredentials(token=body.token)
    else:
        credentials = PasswordCredentials(email=body.email, password=body.password)

    principal = await linker.sign_in(credentials)
    token = tokens.issue_with_retry({"sub": principal.user_id, "roles": sorted(principal.roles)})
    resp = JSONResponse(
        content=LoginResponse(token=token, expires_in=tokens.expire_seconds, user_id=principal.user_id).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/{provider}")
async def oauth_redirect(request: Request, provider: str):
    """Redirect the browser to the provider. Unknown or disabled provider -> 404."""
    orchestrator: OAuthCallbackOrchestrator = request.app.state.orchestrator
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await orchestrator.begin(request, provider, redirect_uri)


@router.get("/auth/{provider}/callback", name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Finish the OAuth handshake, write the token cookie, and redirect.

    A signed-in caller (valid token already present) links the provider
    identity to their own account instead of signing in as someone else.
    """
    orchestrator: OAuthCallbackOrchestrator = request.app.state.orchestrator
    settings = request.app.state.settings

    current = try_get_principal(request)
    result = await orchestrator.complete(request, provider, current_user_id=current.user_id if current else None)

    if not result.ok:
        code = getattr(result.error, "code", "oauth_failed")
        return RedirectResponse(_login_error_url(settings.login_redirect, code), status_code=302)

    resp = RedirectResponse(settings.success_redirect, status_code=302)
    set_auth_cookie(
        resp,
        result.token,
        cookie_name=settings.cookie_name,
        max_age=request.app.state.tokens.expire_seconds,
        secure=settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
