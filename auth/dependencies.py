"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Credentials arrive as an Authorization: Bearer <token> header. Two token
kinds exist (see auth/tokens.py):

  get_current_principal() -- session token -> Principal, or 401.
  get_action_claims()     -- post-OTP action token -> ActionClaims, or 401.

Authorization is layered on top of get_current_principal, so authentication
is always the first gate:

  require_roles(*roles)            -- role gate only.
  require_owner(resource_type, ..) -- ownership gate with an override set;
                                      404 for a missing resource, then 403.

Layer rule: no imports from api/ or content/. The ownership lookup is read
from request.app.state.content, which implements guard.ResourceLookup.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from fastapi import Depends, Request

from auth.guard import OwnershipCheck, authorize
from auth.models import ActionClaims, Principal, ResourceType, Role
from auth.tokens import verify_action_token, verify_session_token
from core.errors import ResourceNotFound, Unauthenticated

logger = logging.getLogger("deptconnect.auth")


def bearer_token(request: Request) -> str | None:
    """Return the token from an Authorization: Bearer header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_principal(request: Request) -> Principal:
    """Require a valid session token. Raises Unauthenticated (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_current_principal)): ...
    """
    try:
        return verify_session_token(bearer_token(request))
    except Unauthenticated as exc:
        logger.info("Rejected session credentials on %s (%s)", request.url.path, exc.reason)
        raise


def get_action_claims(request: Request) -> ActionClaims:
    """Require a valid post-OTP action token. Raises Unauthenticated (401) otherwise."""
    try:
        return verify_action_token(bearer_token(request))
    except Unauthenticated as exc:
        logger.info("Rejected action token on %s (%s)", request.url.path, exc.reason)
        raise


def require_roles(*roles: Role) -> Callable[..., Principal]:
    """Dependency factory: authenticated caller whose role is one of roles.

        @router.post("/announcements")
        def create(principal: Principal = Depends(require_roles(Role.admin, Role.lecturer))): ...
    """
    required = frozenset(roles)

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        authorize(principal, required)
        return principal

    return dependency


def require_owner(
    resource_type: ResourceType,
    id_param: str = "resource_id",
    override_roles: Iterable[Role] = (Role.admin,),
) -> Callable[..., Principal]:
    """Dependency factory: caller must own the resource at path param id_param,
    or hold one of override_roles.

    resource_type is checked against the ResourceType enum here, when the
    route module is imported, so a typo fails at startup.
    """
    resource_type = ResourceType(resource_type)
    overrides = frozenset(override_roles)

    def dependency(request: Request, principal: Principal = Depends(get_current_principal)) -> Principal:
        raw_id = request.path_params.get(id_param)
        try:
            resource_id = int(raw_id)
        except (TypeError, ValueError) as exc:
            # Ids are opaque to callers; one that cannot exist is simply not found.
            raise ResourceNotFound(f"{resource_type.value.capitalize()} not found.") from exc
        authorize(
            principal,
            required_roles=(),
            ownership=OwnershipCheck(resource_type, resource_id),
            lookup=request.app.state.content,
            override_roles=overrides,
        )
        return principal

    return dependency
