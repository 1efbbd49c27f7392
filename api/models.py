"""
API request and response models for the KanTab auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class VerifyTokenRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-token."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1, max_length=4096)


class TokenClaimsResponse(BaseModel):
    """Verified claims returned by POST /api/v1/auth/verify-token."""

    model_config = ConfigDict(frozen=True)

    subject: str
    issued_at: datetime
    expires_at: datetime
    extra: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class LocalLoginRequest(BaseModel):
    """Request body for POST /auth/local.

    Either email + password (password login) or token (passwordless
    magic-link login). Mixing the two is rejected.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    token: Optional[str] = Field(default=None, max_length=1024)

    @model_validator(mode="after")
    def one_credential_kind(self) -> "LocalLoginRequest":
        if self.token:
            if self.email or self.password:
                raise ValueError("Send either a magic-link token or email and password, not both.")
        elif not (self.email and self.password):
            raise ValueError("email and password are required.")
        return self


class LoginResponse(BaseModel):
    """Response for a successful POST /auth/local."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int
    user_id: str


class ProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    roles: list[str]
    operator: bool = False


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class ResourceKind(str, Enum):
    board = "board"
    list = "list"
    card = "card"
    none = "none"


class ResourceRefModel(BaseModel):
    """Target of an authorization check.

    ids (id, board, list) are secure ids as exposed to clients. Ownership and
    membership always come from the resource service; a board owner or member
    list in the request body is ignored.
    """

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    type: ResourceKind
    id: Optional[str] = Field(default=None, max_length=128)
    board_id: Optional[str] = Field(default=None, alias="board", max_length=128)
    list_id: Optional[str] = Field(default=None, alias="list", max_length=128)

    @model_validator(mode="after")
    def id_required_for_entities(self) -> "ResourceRefModel":
        if self.type != ResourceKind.none and not self.id:
            raise ValueError(f"id is required for type={self.type.value}")
        return self


class AuthzCheckRequest(BaseModel):
    """Request body for POST /api/v1/authz/check and /api/v1/authz/require."""

    permissions: list[str] = Field(
        min_length=1,
        max_length=20,
        description='Any one grants access. "$owner", "$member", or a role name.',
    )
    resource: ResourceRefModel


class AuthzCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    providers: list[str] = Field(default_factory=list)
