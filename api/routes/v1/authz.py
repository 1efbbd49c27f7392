"""
api/routes/v1/authz.py -- Board permission checks for the resource services.

Routes:
  POST /api/v1/authz/check    -- {"allowed": bool}; never 403
  POST /api/v1/authz/require  -- 204 when allowed, 403 otherwise

Both evaluate the request principal (bearer token or login cookie) against
the resource described in the body. Anonymous callers are evaluated as such
(always denied) rather than rejected with 401, so resource services can ask
about public requests too.

Resource ids in the body are secure ids; they are decoded here, at the
boundary, before the resolver looks anything up. A malformed id is a 400
(InvalidIdentifier), not a denial.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from api.models import AuthzCheckRequest, AuthzCheckResponse, ResourceKind, ResourceRefModel
from auth.dependencies import try_get_principal
from auth.models import Board, BoardList, Card, ResourceRef, Unresolved
from auth.permissions import PermissionResolver
from auth.secure_id import SecureIdCodec

router = APIRouter()


def to_resource_ref(model: ResourceRefModel, codec: SecureIdCodec) -> ResourceRef:
    """Map the transport model onto the ResourceRef union, decoding secure ids."""
    entity_id = codec.decode_hex(model.id)
    board_id = codec.decode_hex(model.board_id)
    list_id = codec.decode_hex(model.list_id)

    if model.type == ResourceKind.board:
        return Board(id=entity_id)
    if model.type == ResourceKind.list:
        return BoardList(id=entity_id, board_id=board_id)
    if model.type == ResourceKind.card:
        return Card(id=entity_id, list_id=list_id, board_id=board_id)
    return Unresolved(board_id=board_id, list_id=list_id)


@router.post("/authz/check", response_model=AuthzCheckResponse)
async def check(request: Request, body: AuthzCheckRequest) -> AuthzCheckResponse:
    """Return whether the caller holds any of the requested permissions on the resource."""
    resolver: PermissionResolver = request.app.state.permissions
    resource = to_resource_ref(body.resource, request.app.state.secure_ids)
    allowed = await resolver.check(try_get_principal(request), resource, body.permissions)
    return AuthzCheckResponse(allowed=allowed)


@router.post("/authz/require", status_code=204)
async def require(request: Request, body: AuthzCheckRequest) -> Response:
    """Like /authz/check, but answers 403 (UnauthorizedAccess) instead of allowed=false."""
    resolver: PermissionResolver = request.app.state.permissions
    resource = to_resource_ref(body.resource, request.app.state.secure_ids)
    await resolver.require(try_get_principal(request), resource, body.permissions)
    return Response(status_code=204)
