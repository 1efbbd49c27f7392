"""
auth/permissions.py -- Board ownership and membership checks.

Every list and card belongs to exactly one board, so every "may this user
touch this thing" question reduces to "who owns / who is a member of the
board behind it". resolve_board() walks at most two hops:

  Board (owner + members present)  -> used as-is, no lookup
  Board (id only)                  -> board lookup
  BoardList                        -> board lookup
  Card with board_id               -> board lookup
  Card with list_id                -> list lookup, then board lookup
  Unresolved(board_id / list_id)   -> same as above, board id preferred

Anything that cannot be resolved (missing id, entity not found, board
without an owner) resolves to None and both predicates answer False. An
undeterminable owner never means "allowed".

Lookups are sequential awaits -- each depends on the previous result.
Cancelling the calling task abandons them; nothing is cached between checks.

Operator principals (operational tooling) bypass both predicates. Each
bypass is logged at WARNING with the user and target so it can be audited.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.clients import ResourceService
from auth.errors import UnauthorizedAccess
from auth.models import Board, BoardList, Card, Principal, ResourceRef, Unresolved

OWNER = "$owner"
MEMBER = "$member"


class PermissionResolver:
    """Answer is_owner / is_member for a principal against a resource.

    Usage:
        resolver = PermissionResolver(resource_service)
        await resolver.is_member(principal, Card(id="c1", list_id="l1"))
    """

    def __init__(self, resources: ResourceService, logger: logging.Logger | None = None) -> None:
        self._resources = resources
        self._logger = logger or logging.getLogger("kantab.auth.permissions")

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve_board(self, resource: ResourceRef) -> Board | None:
        """Return the fully populated board behind `resource`, or None."""
        if isinstance(resource, Board):
            if resource.is_embedded:
                return resource
            return await self._board(resource.id)
        if isinstance(resource, BoardList):
            return await self._board(resource.board_id)
        if isinstance(resource, (Card, Unresolved)):
            if resource.board_id:
                return await self._board(resource.board_id)
            return await self._board_via_list(resource.list_id)
        return None

    async def _board(self, board_id: str | None) -> Board | None:
        if not board_id:
            return None
        board = await self._resources.resolve_board(board_id)
        if board is None or not board.is_embedded:
            return None
        return board

    async def _board_via_list(self, list_id: str | None) -> Board | None:
        if not list_id:
            return None
        board_list = await self._resources.resolve_list(list_id)
        if board_list is None:
            return None
        return await self._board(board_list.board_id)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    async def is_owner(self, principal: Principal | None, resource: ResourceRef) -> bool:
        shortcut = self._shortcut(principal, OWNER, resource)
        if shortcut is not None:
            return shortcut
        board = await self.resolve_board(resource)
        if board is None:
            self._logger.debug("No board resolvable for %r -- owner check denied", resource)
            return False
        return board.owner == principal.user_id

    async def is_member(self, principal: Principal | None, resource: ResourceRef) -> bool:
        shortcut = self._shortcut(principal, MEMBER, resource)
        if shortcut is not None:
            return shortcut
        board = await self.resolve_board(resource)
        if board is None:
            self._logger.debug("No board resolvable for %r -- member check denied", resource)
            return False
        return principal.user_id in board.members

    def _shortcut(self, principal: Principal | None, check: str, resource: ResourceRef) -> bool | None:
        """Decide without a lookup where possible: anonymous -> False, operator -> True."""
        if principal is None:
            return False
        if principal.operator:
            self._logger.warning("Operator bypass: %s granted %s on %r", principal.user_id, check, resource)
            return True
        if not principal.user_id:
            return False
        return None

    # ------------------------------------------------------------------
    # Permission lists
    # ------------------------------------------------------------------

    async def check(self, principal: Principal | None, resource: ResourceRef, permissions: Iterable[str]) -> bool:
        """Return True when any one permission grants access.

        "$owner" and "$member" run the board predicates; any other entry is a
        role name the principal must hold. Role checks run first so a
        granting role never costs a lookup.
        """
        permissions = list(permissions)
        if principal is None:
            return False
        if principal.operator:
            self._logger.warning("Operator bypass: %s granted %s on %r", principal.user_id, permissions, resource)
            return True

        if any(p not in (OWNER, MEMBER) and p in principal.roles for p in permissions):
            return True
        if OWNER in permissions and await self.is_owner(principal, resource):
            return True
        if MEMBER in permissions and await self.is_member(principal, resource):
            return True
        return False

    async def require(self, principal: Principal | None, resource: ResourceRef, permissions: Iterable[str]) -> None:
        permissions = list(permissions)
        if not await self.check(principal, resource, permissions):
            raise UnauthorizedAccess(
                "You have no right for this operation!",
                permissions=permissions,
            )

    async def require_owner(self, principal: Principal | None, resource: ResourceRef) -> None:
        await self.require(principal, resource, [OWNER])

    async def require_member(self, principal: Principal | None, resource: ResourceRef) -> None:
        await self.require(principal, resource, [MEMBER])
