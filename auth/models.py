"""
auth/models.py -- Domain dataclasses for authentication and authorization.

Pattern: Data class (pure data container, zero logic). Components own the
behaviour; these types only fix the shapes that flow between them.

ResourceRef is a closed tagged union (Board | BoardList | Card | Unresolved).
The permission resolver dispatches on the concrete type rather than sniffing
field shapes at runtime.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NormalizedProfile:
    """Canonical shape every provider's raw profile is reduced to.

    external_id is the provider's stable user id; everything else is best
    effort and may be missing depending on the provider and granted scopes.
    """

    provider: str
    external_id: str
    full_name: str
    email: str | None = None
    avatar_url: str | None = None
    username: str | None = None


@dataclass(frozen=True)
class PasswordCredentials:
    email: str
    password: str


@dataclass(frozen=True)
class MagicLinkCredentials:
    """A passwordless login token delivered by e-mail."""

    token: str


Credentials = Union[NormalizedProfile, PasswordCredentials, MagicLinkCredentials]


@dataclass(frozen=True)
class Principal:
    """The authenticated identity attached to a request.

    operator marks operational tooling sessions that bypass ownership and
    membership checks. It is never derived from roles; it has to be set
    explicitly, and every bypass is logged.
    """

    user_id: str
    roles: frozenset[str] = frozenset()
    operator: bool = False


@dataclass(frozen=True)
class TokenClaims:
    """Decoded payload of a signed token."""

    subject: str
    issued_at: datetime
    expires_at: datetime
    extra: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Sign-in outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignInResult:
    """Ok(principal, token) or Err(error) for one login attempt."""

    principal: Principal | None = None
    token: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.principal is not None

    @classmethod
    def success(cls, principal: Principal, token: str) -> "SignInResult":
        return cls(principal=principal, token=token)

    @classmethod
    def failure(cls, error: Exception) -> "SignInResult":
        return cls(error=error)


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Board:
    """A board; owner and members are None when only the id is known."""

    id: str
    owner: str | None = None
    members: frozenset[str] | None = None

    @property
    def is_embedded(self) -> bool:
        return self.owner is not None and self.members is not None


@dataclass(frozen=True)
class BoardList:
    id: str
    board_id: str | None = None


@dataclass(frozen=True)
class Card:
    id: str
    list_id: str | None = None
    board_id: str | None = None


@dataclass(frozen=True)
class Unresolved:
    """No entity loaded yet -- only board/list ids supplied with the request."""

    board_id: str | None = None
    list_id: str | None = None


ResourceRef = Union[Board, BoardList, Card, Unresolved]
