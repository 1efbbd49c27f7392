"""
auth/tokens.py -- Signed bearer token issuance, verification, and caching.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry a
       subject (the account id), iat, exp, and any extra claims the caller
       passes. issue() refuses a non-positive ttl, so exp > iat always holds.

  Failure taxonomy: a signing-backend error is TokenGenerationFailure and is
       retryable (issue_with_retry bounds the attempts). A bad signature or a
       malformed token is InvalidToken, an expired one TokenExpired. Both are
       terminal -- the API layer renders them as 401.

  Verification cache: sha256(token) -> (claims, cached_at). A hit inside the
       cache TTL (1 hour by default) skips the signature check. Entries are
       evicted lazily on lookup once past TTL, and a hit is never served once
       the claims themselves have expired. No lock: racing verifications of
       the same token derive identical claims from the same signature check,
       so last write wins harmlessly.

Layer rule: no imports from api/ or core/. The service receives its secret,
lifetimes, clock, and logger through the constructor.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidToken, TokenExpired, TokenGenerationFailure
from auth.models import TokenClaims

_ALGORITHM = "HS256"

_RESERVED_CLAIMS = ("sub", "iat", "exp")

# 90 days
DEFAULT_EXPIRE_SECONDS = 60 * 60 * 24 * 90
DEFAULT_CACHE_TTL = 60 * 60


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class TokenService:
    """Issue and verify HS256 tokens with a verification cache.

    Usage:
        tokens = TokenService(settings.secret_key)
        token = tokens.issue({"sub": "u1"})
        claims = tokens.verify(token)   # TokenClaims(subject="u1", ...)
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int = DEFAULT_EXPIRE_SECONDS,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._logger = logger or logging.getLogger("kantab.auth.tokens")
        self._cache: dict[str, tuple[TokenClaims, float]] = {}

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, payload: dict[str, Any], ttl: int | None = None) -> str:
        """Sign payload into a token that expires ttl seconds from now.

        The subject is taken from payload["sub"], falling back to
        payload["id"] (the account id shape the account service returns).
        Remaining keys travel as extra claims.

        Raises:
            ValueError: ttl is not positive or the payload has no subject.
            TokenGenerationFailure: the signing backend failed (retryable).
        """
        duration = self.expire_seconds if ttl is None else ttl
        if duration <= 0:
            raise ValueError("Token ttl must be positive.")

        subject = payload.get("sub") or payload.get("id")
        if subject is None or subject == "":
            raise ValueError("Token payload must carry a subject ('sub' or 'id').")

        issued_at = int(self._clock())
        claims = {k: v for k, v in payload.items() if k not in _RESERVED_CLAIMS}
        claims.update(sub=str(subject), iat=issued_at, exp=issued_at + duration)

        try:
            return jwt.encode(claims, self._secret_key, algorithm=_ALGORITHM)
        except (JWTError, TypeError, ValueError) as exc:
            self._logger.warning("Token generation error: %s", exc)
            raise TokenGenerationFailure("Unable to generate token") from exc

    def issue_with_retry(self, payload: dict[str, Any], ttl: int | None = None, attempts: int = 3) -> str:
        """issue() with a bounded retry of TokenGenerationFailure."""
        if attempts < 1:
            raise ValueError("attempts must be at least 1.")
        last_exc: TokenGenerationFailure | None = None
        for attempt in range(1, attempts + 1):
            if last_exc is not None:
                self._logger.info("Retrying token generation (attempt %d/%d)", attempt, attempts)
            try:
                return self.issue(payload, ttl)
            except TokenGenerationFailure as exc:
                last_exc = exc
        raise last_exc

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, token: str) -> TokenClaims:
        """Return the claims of a valid token.

        Raises:
            InvalidToken: bad signature, malformed token, or missing subject.
            TokenExpired: the token's exp has passed.
        """
        key = _token_hash(token)
        now = self._clock()

        cached = self._cache.get(key)
        if cached is not None:
            claims, cached_at = cached
            if now - cached_at > self.cache_ttl:
                self._cache.pop(key, None)
            elif claims.expires_at.timestamp() <= now:
                self._cache.pop(key, None)
                raise TokenExpired("Token has expired")
            else:
                return claims

        claims = self._decode(token, now)
        self._cache[key] = (claims, now)
        return claims

    def _decode(self, token: str, now: float) -> TokenClaims:
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            self._logger.info("Rejected expired token")
            raise TokenExpired("Token has expired") from exc
        except JWTError as exc:
            self._logger.warning("Token verification error: %s", exc)
            raise InvalidToken("Invalid token") from exc

        subject = payload.get("sub")
        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not subject or not isinstance(issued_at, int) or not isinstance(expires_at, int):
            raise InvalidToken("Invalid token")
        if expires_at <= now:
            raise TokenExpired("Token has expired")

        return TokenClaims(
            subject=subject,
            issued_at=_to_datetime(issued_at),
            expires_at=_to_datetime(expires_at),
            extra={k: v for k, v in payload.items() if k not in _RESERVED_CLAIMS},
        )

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Delete cache entries past TTL or past their claims' expiry. Returns number removed."""
        now = self._clock()
        stale = [
            key
            for key, (claims, cached_at) in list(self._cache.items())
            if now - cached_at > self.cache_ttl or claims.expires_at.timestamp() <= now
        ]
        for key in stale:
            self._cache.pop(key, None)
        return len(stale)

    def cache_size(self) -> int:
        return len(self._cache)


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, cookie_name: str, max_age: int, secure: bool = False) -> None:
    """Write the issued token as a cookie on the response.

    samesite="lax": the cookie rides along on the top-level redirect back
        from the provider but not on cross-site POSTs.
    max_age: matches the token expiry so both expire together.
    An empty cookie_name disables the cookie entirely.
    """
    if not cookie_name:
        return
    response.set_cookie(
        cookie_name,
        value=token,
        path="/",
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )
