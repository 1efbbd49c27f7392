"""
auth/providers.py -- Built-in identity providers and their profile normalization.

Supported providers (closed set):
  google   -- OIDC discovery; profile from the id_token userinfo claims.
  facebook -- OAuth 2.0; profile from the Graph API /me endpoint.
  github   -- OAuth 2.0; profile from /user plus /user/emails.
  twitter  -- OAuth 1.0a; profile from account/verify_credentials.

Each provider contributes two functions:
  fetch_*_profile(client, token) -> raw dict   (network, via the authlib client)
  normalize_*_profile(raw) -> NormalizedProfile (pure)

A normalizer raises ProfileNormalizationError when the raw profile has no
usable stable id, or when the profile is not a JSON object. Every other
field is best effort: values of the wrong type are dropped.

Security notes:
  [H1] GitHub e-mails are only taken when GitHub reports them verified. An
       unverified address could belong to someone else and the account
       service links accounts by e-mail.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from auth.errors import ProfileNormalizationError
from auth.models import NormalizedProfile
from auth.strategies import ProviderDescriptor, StrategyRegistry


def _require_dict(provider: str, raw) -> dict:
    if not isinstance(raw, dict):
        raise ProfileNormalizationError(f"{provider}: profile response is not an object", provider=provider)
    return raw


def _require_id(provider: str, value) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)) or str(value).strip() == "":
        raise ProfileNormalizationError(f"{provider}: profile has no usable identifier", provider=provider)
    return str(value)


def _str(value) -> str | None:
    return value if isinstance(value, str) and value else None


def _join_name(*parts) -> str:
    return " ".join(p for p in parts if isinstance(p, str) and p)


# ---------------------------------------------------------------------------
# Google
# ---------------------------------------------------------------------------


async def fetch_google_profile(client, token: dict) -> dict:
    """Google returns the profile as id_token claims; fall back to the userinfo endpoint."""
    userinfo = token.get("userinfo")
    if userinfo:
        return _require_dict("google", userinfo)
    return _require_dict("google", await client.userinfo(token=token))


def normalize_google_profile(raw: dict) -> NormalizedProfile:
    raw = _require_dict("google", raw)
    external_id = _require_id("google", raw.get("sub") or raw.get("id"))
    avatar = _str(raw.get("picture"))
    if avatar:
        avatar = avatar.replace("sz=50", "sz=200")
    return NormalizedProfile(
        provider="google",
        external_id=external_id,
        full_name=_str(raw.get("name")) or _join_name(raw.get("given_name"), raw.get("family_name")),
        email=_str(raw.get("email")),
        avatar_url=avatar,
    )


# ---------------------------------------------------------------------------
# Facebook
# ---------------------------------------------------------------------------


async def fetch_facebook_profile(client, token: dict) -> dict:
    resp = await client.get("me", params={"fields": "id,name,first_name,last_name,email"}, token=token)
    resp.raise_for_status()
    return resp.json()


def normalize_facebook_profile(raw: dict) -> NormalizedProfile:
    raw = _require_dict("facebook", raw)
    external_id = _require_id("facebook", raw.get("id"))
    return NormalizedProfile(
        provider="facebook",
        external_id=external_id,
        full_name=_str(raw.get("name")) or _join_name(raw.get("first_name"), raw.get("last_name")),
        email=_str(raw.get("email")),
        avatar_url=f"https://graph.facebook.com/{external_id}/picture?type=large",
    )


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------


async def fetch_github_profile(client, token: dict) -> dict:
    """GitHub needs two calls: /user for the id, /user/emails for verified addresses."""
    resp = await client.get("user", token=token)
    resp.raise_for_status()
    profile = _require_dict("github", resp.json())

    emails_resp = await client.get("user/emails", token=token)
    emails_resp.raise_for_status()
    return {**profile, "emails": emails_resp.json()}


def _github_email(emails) -> str | None:
    if not isinstance(emails, list):
        return None
    verified = [e for e in emails if isinstance(e, dict) and e.get("verified") is True and _str(e.get("email"))]
    for entry in verified:
        if entry.get("primary"):
            return entry["email"]
    return verified[0]["email"] if verified else None


def normalize_github_profile(raw: dict) -> NormalizedProfile:
    raw = _require_dict("github", raw)
    external_id = _require_id("github", raw.get("id"))
    username = _str(raw.get("login"))
    return NormalizedProfile(
        provider="github",
        external_id=external_id,
        full_name=_str(raw.get("name")) or username or "",
        email=_github_email(raw.get("emails")),  # [H1]
        avatar_url=_str(raw.get("avatar_url")),
        username=username,
    )


# ---------------------------------------------------------------------------
# Twitter (OAuth 1.0a)
# ---------------------------------------------------------------------------


async def fetch_twitter_profile(client, token: dict) -> dict:
    resp = await client.get(
        "account/verify_credentials.json",
        params={"include_email": "true", "skip_status": "true"},
        token=token,
    )
    resp.raise_for_status()
    return resp.json()


def normalize_twitter_profile(raw: dict) -> NormalizedProfile:
    raw = _require_dict("twitter", raw)
    external_id = _require_id("twitter", raw.get("id_str") or raw.get("id"))
    username = _str(raw.get("screen_name"))
    # Twitter only returns an e-mail for apps with the elevated permission.
    email = _str(raw.get("email")) or (f"{username}@twitter.com" if username else None)
    return NormalizedProfile(
        provider="twitter",
        external_id=external_id,
        full_name=_str(raw.get("name")) or username or "",
        email=email,
        avatar_url=_str(raw.get("profile_image_url_https")),
        username=username,
    )


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------

GOOGLE = ProviderDescriptor(
    name="google",
    label="Google",
    default_scope="openid email profile",
    profile_normalizer=normalize_google_profile,
    fetch_profile=fetch_google_profile,
    client_kwargs={"server_metadata_url": "https://accounts.google.com/.well-known/openid-configuration"},
)

FACEBOOK = ProviderDescriptor(
    name="facebook",
    label="Facebook",
    default_scope="email",
    profile_normalizer=normalize_facebook_profile,
    fetch_profile=fetch_facebook_profile,
    client_kwargs={
        "authorize_url": "https://www.facebook.com/v18.0/dialog/oauth",
        "access_token_url": "https://graph.facebook.com/v18.0/oauth/access_token",  # noqa: S106 -- URL, not a password
        "api_base_url": "https://graph.facebook.com/v18.0/",
    },
)

GITHUB = ProviderDescriptor(
    name="github",
    label="GitHub",
    default_scope="read:user user:email",
    profile_normalizer=normalize_github_profile,
    fetch_profile=fetch_github_profile,
    client_kwargs={
        "authorize_url": "https://github.com/login/oauth/authorize",
        "access_token_url": "https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
        "api_base_url": "https://api.github.com/",
    },
)

TWITTER = ProviderDescriptor(
    name="twitter",
    label="Twitter",
    default_scope="",
    profile_normalizer=normalize_twitter_profile,
    fetch_profile=fetch_twitter_profile,
    client_kwargs={
        "request_token_url": "https://api.twitter.com/oauth/request_token",  # noqa: S106 -- URL, not a password
        "access_token_url": "https://api.twitter.com/oauth/access_token",  # noqa: S106 -- URL, not a password
        "authorize_url": "https://api.twitter.com/oauth/authenticate",
        "api_base_url": "https://api.twitter.com/1.1/",
    },
)

BUILTIN_PROVIDERS = (GOOGLE, FACEBOOK, GITHUB, TWITTER)


def default_registry(settings) -> StrategyRegistry:
    """Return a registry with every built-in provider registered (none loaded yet)."""
    registry = StrategyRegistry(settings)
    for descriptor in BUILTIN_PROVIDERS:
        registry.register(descriptor)
    return registry
