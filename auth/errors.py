"""
auth/errors.py -- Exception taxonomy for authentication and authorization.

Every error carries a stable machine-readable code and the HTTP status the API
layer renders it with. api/main.py installs one handler for AuthError, so
components raise these and never build HTTP responses themselves.

retryable=True marks transient failures the caller may retry (bounded).
Everything else is terminal.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth subsystem errors."""

    code = "auth_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str = "", **details) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details


# ---------------------------------------------------------------------------
# Startup / registry
# ---------------------------------------------------------------------------


class DuplicateProvider(AuthError):
    code = "duplicate_provider"
    status_code = 500


class MissingStrategyModule(AuthError):
    code = "missing_strategy_module"
    status_code = 500


class ProviderNotEnabled(AuthError):
    code = "provider_not_enabled"
    status_code = 404


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------


class ProfileNormalizationError(AuthError):
    code = "profile_normalization_failed"
    status_code = 401


class OAuthExchangeError(AuthError):
    code = "oauth_failed"
    status_code = 401


class AccountNotFound(AuthError):
    code = "account_not_found"
    status_code = 401


class WrongPassword(AuthError):
    code = "wrong_password"
    status_code = 401


class PasswordLoginDisabledForPasswordlessAccount(AuthError):
    code = "passwordless_account"
    status_code = 400


class AccountDisabled(AuthError):
    code = "account_disabled"
    status_code = 401


class AccountNotVerified(AuthError):
    code = "account_not_verified"
    status_code = 401


class SocialAccountMismatch(AuthError):
    code = "social_account_mismatch"
    status_code = 400


class MissingSocialEmail(AuthError):
    code = "missing_social_email"
    status_code = 400


class SignupDisabled(AuthError):
    code = "signup_disabled"
    status_code = 400


class PasswordlessDisabled(AuthError):
    code = "passwordless_disabled"
    status_code = 400


class AccountServiceError(AuthError):
    """The external account service failed in a way the taxonomy does not name."""

    code = "account_service_error"
    status_code = 502
    retryable = True


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class InvalidToken(AuthError):
    code = "invalid_token"
    status_code = 401


class TokenExpired(AuthError):
    code = "token_expired"
    status_code = 401


class TokenGenerationFailure(AuthError):
    code = "token_generation_failed"
    status_code = 500
    retryable = True


# ---------------------------------------------------------------------------
# Identifiers / permissions
# ---------------------------------------------------------------------------


class InvalidIdentifier(AuthError):
    code = "invalid_identifier"
    status_code = 400


class UnauthorizedAccess(AuthError):
    code = "forbidden"
    status_code = 403


class ResourceServiceError(AuthError):
    """The resource service answered, but not with a usable board or list."""

    code = "resource_service_error"
    status_code = 502
    retryable = True
