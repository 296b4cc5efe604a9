"""
content/lifecycle.py -- Archive / unarchive state machine shared by every resource type.

    Active --archive--> Archived --unarchive--> Active

archive():   Active -> Archived sets is_archived, archived_at = now and
             expires_at = archived_at + ARCHIVE_RETENTION. Archiving an
             already-archived resource is a no-op success: the conditional
             UPDATE only matches rows with is_archived = False, so the first
             call's timestamps survive.
unarchive(): clears all three fields unconditionally, cancelling any pending
             expiry.

Neither function deletes anything. The store's purge_expired() sweep removes
rows once expires_at has passed. Each transition is one atomic UPDATE, so a
cancelled request leaves no partial write.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from auth.models import ResourceType
from content.store import ContentStore, Resource, to_iso
from core.errors import ResourceNotFound

logger = logging.getLogger("deptconnect.lifecycle")

ARCHIVE_RETENTION = timedelta(days=180)

ACTIVE_FIELDS: dict = {"is_archived": False, "archived_at": None, "expires_at": None}


def archived_fields(now: Optional[datetime] = None) -> dict:
    """Return the lifecycle triplet for a resource archived at now."""
    archived_at = now or datetime.now(timezone.utc)
    return {
        "is_archived": True,
        "archived_at": to_iso(archived_at),
        "expires_at": to_iso(archived_at + ARCHIVE_RETENTION),
    }


def _reload(store: ContentStore, resource_type: ResourceType, resource_id: int) -> Resource:
    resource = store.find_by_id(resource_type, resource_id)
    if resource is None:
        raise ResourceNotFound(f"{ResourceType(resource_type).value.capitalize()} not found.")
    return resource


def archive(
    store: ContentStore,
    resource_type: ResourceType,
    resource_id: int,
    now: Optional[datetime] = None,
) -> Resource:
    """Archive a resource and return its current state. Raises ResourceNotFound."""
    resource_type = ResourceType(resource_type)
    changed = store.update_atomic(resource_type, resource_id, {"is_archived": False}, archived_fields(now))
    resource = _reload(store, resource_type, resource_id)
    if changed:
        logger.info("Archived %s %s (expires %s)", resource_type.value, resource_id, resource.expires_at)
    else:
        logger.info("%s %s already archived; nothing to do", resource_type.value, resource_id)
    return resource


def unarchive(store: ContentStore, resource_type: ResourceType, resource_id: int) -> Resource:
    """Restore a resource to Active and return its current state. Raises ResourceNotFound."""
    resource_type = ResourceType(resource_type)
    if not store.update_atomic(resource_type, resource_id, values=ACTIVE_FIELDS):
        raise ResourceNotFound(f"{resource_type.value.capitalize()} not found.")
    logger.info("Unarchived %s %s", resource_type.value, resource_id)
    return _reload(store, resource_type, resource_id)
