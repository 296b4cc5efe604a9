"""
api/routes/v1/announcements.py -- Announcement CRUD and archive lifecycle routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /announcements                              -- create (staff, studentAdmin)
  GET    /announcements                              -- list with filters + pagination
  GET    /announcements/{announcement_id}            -- full announcement
  PATCH  /announcements/{announcement_id}            -- edit (owner or admin)
  DELETE /announcements/{announcement_id}            -- delete (owner or admin)
  PATCH  /announcements/{announcement_id}/archive    -- archive (owner or admin)
  PATCH  /announcements/{announcement_id}/unarchive  -- restore (owner or admin)

Ownership routes go through require_owner(), which answers 401, then 404 for
a missing announcement, then 403 for a caller who neither wrote it nor holds
an override role.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    AnnouncementCreate,
    AnnouncementResponse,
    AnnouncementSummary,
    AnnouncementUpdate,
    CategoryEnum,
    Envelope,
)
from auth.dependencies import get_current_principal, require_owner, require_roles
from auth.models import Principal, ResourceType, Role
from content import lifecycle
from content.models import Announcement, Attachment
from content.store import ContentStore
from core.errors import ResourceNotFound, ValidationFailure

logger = logging.getLogger("deptconnect.api.announcements")

# Every announcement route requires a session token. Role and ownership
# dependencies below narrow that further per route.
router = APIRouter(dependencies=[Depends(get_current_principal)])

_can_publish = require_roles(Role.admin, Role.lecturer, Role.course_adviser, Role.student_admin)
_owner = require_owner(ResourceType.announcement, id_param="announcement_id")


def _get_or_404(content: ContentStore, announcement_id: int) -> Announcement:
    ann = content.get_announcement(announcement_id)
    if ann is None:
        raise ResourceNotFound("Announcement not found.")
    return ann


@router.post("/announcements", response_model=Envelope[AnnouncementResponse], status_code=201)
def create_announcement(
    request: Request,
    body: AnnouncementCreate,
    principal: Principal = Depends(_can_publish),
) -> Envelope[AnnouncementResponse]:
    content: ContentStore = request.app.state.content
    ann_id = content.create_announcement(
        Announcement(
            title=body.title,
            body=body.body,
            created_by=principal.subject_id,
            category=body.category.value,
            image_url=body.image_url,
            attachments=[Attachment(file_name=a.file_name, file_url=a.file_url) for a in body.attachments],
            admission_year=body.admission_year or None,
        )
    )
    logger.info("User %s created announcement %s", principal.subject_id, ann_id)
    return Envelope(
        message="Announcement created successfully",
        data=AnnouncementResponse.from_domain(_get_or_404(content, ann_id)),
    )


@router.get("/announcements", response_model=Envelope[list[AnnouncementSummary]])
def list_announcements(
    request: Request,
    title: Optional[str] = Query(None, max_length=150),
    created_by: Optional[int] = Query(None),
    category: Optional[CategoryEnum] = Query(None),
    admission_year: Optional[int] = Query(None),
    timeline: Optional[int] = Query(None, ge=1, description="Only announcements from the last N days"),
    archived: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Envelope[list[AnnouncementSummary]]:
    """List announcement summaries, newest first. Bodies are omitted; fetch one by id for the full text."""
    content: ContentStore = request.app.state.content
    rows = content.list_announcements(
        title=title,
        created_by=created_by,
        category=category.value if category else None,
        admission_year=admission_year,
        timeline_days=timeline,
        archived=archived,
        skip=(page - 1) * limit,
        limit=limit,
    )
    return Envelope(
        message="Announcements fetched successfully",
        data=[AnnouncementSummary.from_domain(a) for a in rows],
    )


@router.get("/announcements/{announcement_id}", response_model=Envelope[AnnouncementResponse])
def get_announcement(request: Request, announcement_id: int) -> Envelope[AnnouncementResponse]:
    ann = _get_or_404(request.app.state.content, announcement_id)
    return Envelope(message="Announcement fetched successfully", data=AnnouncementResponse.from_domain(ann))


@router.patch("/announcements/{announcement_id}", response_model=Envelope[AnnouncementResponse])
def update_announcement(
    request: Request,
    announcement_id: int,
    body: AnnouncementUpdate,
    principal: Principal = Depends(_owner),
) -> Envelope[AnnouncementResponse]:
    """Edit an announcement. Only fields present in the body change."""
    content: ContentStore = request.app.state.content
    fields = body.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    if not fields:
        raise ValidationFailure("Nothing to update.")
    if not content.update_announcement(announcement_id, **fields):
        raise ResourceNotFound("Announcement not found.")
    logger.info("User %s updated announcement %s (%s)", principal.subject_id, announcement_id, sorted(fields))
    return Envelope(
        message="Announcement updated successfully",
        data=AnnouncementResponse.from_domain(_get_or_404(content, announcement_id)),
    )


@router.delete("/announcements/{announcement_id}", response_model=Envelope[dict])
def delete_announcement(
    request: Request,
    announcement_id: int,
    principal: Principal = Depends(_owner),
) -> Envelope[dict]:
    content: ContentStore = request.app.state.content
    if not content.delete(ResourceType.announcement, announcement_id):
        raise ResourceNotFound("Announcement not found.")
    logger.info("User %s deleted announcement %s", principal.subject_id, announcement_id)
    return Envelope(message="Announcement deleted successfully", data={})


@router.patch("/announcements/{announcement_id}/archive", response_model=Envelope[AnnouncementResponse])
def archive_announcement(
    request: Request,
    announcement_id: int,
    principal: Principal = Depends(_owner),
) -> Envelope[AnnouncementResponse]:
    """Archive an announcement; it is purged 180 days later unless restored."""
    ann = lifecycle.archive(request.app.state.content, ResourceType.announcement, announcement_id)
    return Envelope(message="Announcement archived successfully", data=AnnouncementResponse.from_domain(ann))


@router.patch("/announcements/{announcement_id}/unarchive", response_model=Envelope[AnnouncementResponse])
def unarchive_announcement(
    request: Request,
    announcement_id: int,
    principal: Principal = Depends(_owner),
) -> Envelope[AnnouncementResponse]:
    ann = lifecycle.unarchive(request.app.state.content, ResourceType.announcement, announcement_id)
    return Envelope(message="Announcement unarchived successfully", data=AnnouncementResponse.from_domain(ann))
