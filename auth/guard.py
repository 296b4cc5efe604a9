"""
auth/guard.py -- Resource-agnostic role + ownership authorization.

authorize() is a pure decision procedure over a Principal, a role set, and
optionally one resource looked up by (ResourceType, id):

  Role gate (no ownership check):
      allow iff principal.role in required_roles.

  Ownership gate:
      1. Fetch the resource. Absent -> ResourceNotFound, before any role test.
      2. Allow iff principal.subject_id == resource.created_by
         or principal.role in override_roles.

override_roles is deliberately separate from required_roles. The legacy
routes passed ["admin"] as the role list of an ownership check and meant
"owner OR admin"; here that bypass must be named explicitly.

The guard never writes. It performs one lookup when ownership is checked and
none otherwise. Authentication happens before it is called (see
auth/dependencies.py), which fixes the outcome order 401 -> 404 -> 403.

Layer rule: no imports from api/ or content/. The store is reached through
the ResourceLookup protocol.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from auth.models import Principal, ResourceType, Role
from core.errors import PermissionDenied, ResourceNotFound

logger = logging.getLogger("deptconnect.guard")


class OwnedResource(Protocol):
    id: int | None
    created_by: int


class ResourceLookup(Protocol):
    def find_by_id(self, resource_type: ResourceType, resource_id: int) -> OwnedResource | None: ...


@dataclass(frozen=True)
class OwnershipCheck:
    resource_type: ResourceType
    resource_id: int


def _role_set(roles: Iterable[Role | str]) -> frozenset[Role]:
    return frozenset(Role(r) for r in roles)


def authorize(
    principal: Principal,
    required_roles: Iterable[Role | str],
    ownership: OwnershipCheck | None = None,
    lookup: ResourceLookup | None = None,
    override_roles: Iterable[Role | str] = (),
) -> OwnedResource | None:
    """Allow or deny principal. Returns the fetched resource (or None) on allow.

    Raises:
        PermissionDenied: the role or ownership test failed.
        ResourceNotFound: ownership was checked and the resource is absent.
        ValueError:       programming errors -- an unknown role or resource
                          type, or an ownership check without a lookup.
    """
    required = _role_set(required_roles)

    if ownership is None:
        if principal.role in required:
            return None
        logger.info("Denied user %s (%s): role not in %s", principal.subject_id, principal.role.value, sorted(required))
        raise PermissionDenied()

    if lookup is None:
        raise ValueError("An ownership check needs a ResourceLookup")
    resource_type = ResourceType(ownership.resource_type)
    resource = lookup.find_by_id(resource_type, ownership.resource_id)
    if resource is None:
        raise ResourceNotFound(f"{resource_type.value.capitalize()} not found.")

    if resource.created_by == principal.subject_id:
        return resource
    if principal.role in _role_set(override_roles):
        return resource
    logger.info(
        "Denied user %s (%s): not the owner of %s %s",
        principal.subject_id,
        principal.role.value,
        resource_type.value,
        ownership.resource_id,
    )
    raise PermissionDenied()
