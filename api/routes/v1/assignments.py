"""
api/routes/v1/assignments.py -- Assignment CRUD and archive lifecycle routes.

Routes:
  POST   /assignments                            -- create (lecturer, courseAdviser, admin)
  GET    /assignments                            -- list with filters + pagination
  GET    /assignments/{assignment_id}            -- one assignment
  PATCH  /assignments/{assignment_id}            -- edit (owner or admin)
  DELETE /assignments/{assignment_id}            -- delete (owner or admin)
  PATCH  /assignments/{assignment_id}/archive    -- archive (owner or admin)
  PATCH  /assignments/{assignment_id}/unarchive  -- restore (owner or admin)

Every response carries time_remaining {days, hours, minutes}, computed at
read time from the stored deadline and floored at zero.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import AssignmentCreate, AssignmentResponse, AssignmentUpdate, Envelope
from auth.dependencies import get_current_principal, require_owner, require_roles
from auth.models import Principal, ResourceType, Role
from content import lifecycle
from content.models import Assignment, Attachment
from content.store import ContentStore, to_iso
from core.errors import ResourceNotFound, ValidationFailure

logger = logging.getLogger("deptconnect.api.assignments")

router = APIRouter(dependencies=[Depends(get_current_principal)])

_can_set = require_roles(Role.lecturer, Role.course_adviser, Role.admin)
_owner = require_owner(ResourceType.assignment, id_param="assignment_id")


def _get_or_404(content: ContentStore, assignment_id: int) -> Assignment:
    assignment = content.get_assignment(assignment_id)
    if assignment is None:
        raise ResourceNotFound("Assignment not found.")
    return assignment


@router.post("/assignments", response_model=Envelope[AssignmentResponse], status_code=201)
def create_assignment(
    request: Request,
    body: AssignmentCreate,
    principal: Principal = Depends(_can_set),
) -> Envelope[AssignmentResponse]:
    content: ContentStore = request.app.state.content
    assignment_id = content.create_assignment(
        Assignment(
            title=body.title,
            description=body.description,
            deadline=to_iso(body.deadline),
            created_by=principal.subject_id,
            image_url=body.image_url,
            attachments=[Attachment(file_name=a.file_name, file_url=a.file_url) for a in body.attachments],
            admission_years=body.admission_years,
        )
    )
    logger.info("User %s created assignment %s", principal.subject_id, assignment_id)
    return Envelope(
        message="Assignment created successfully",
        data=AssignmentResponse.from_domain(_get_or_404(content, assignment_id)),
    )


@router.get("/assignments", response_model=Envelope[list[AssignmentResponse]])
def list_assignments(
    request: Request,
    title: Optional[str] = Query(None, max_length=200),
    created_by: Optional[int] = Query(None),
    admission_year: Optional[int] = Query(None),
    archived: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Envelope[list[AssignmentResponse]]:
    """List assignments newest first. admission_year matches any intake the assignment targets."""
    content: ContentStore = request.app.state.content
    rows = content.list_assignments(
        title=title,
        created_by=created_by,
        admission_year=str(admission_year) if admission_year else None,
        archived=archived,
        skip=(page - 1) * limit,
        limit=limit,
    )
    return Envelope(
        message="Assignments fetched successfully",
        data=[AssignmentResponse.from_domain(a) for a in rows],
    )


@router.get("/assignments/{assignment_id}", response_model=Envelope[AssignmentResponse])
def get_assignment(request: Request, assignment_id: int) -> Envelope[AssignmentResponse]:
    assignment = _get_or_404(request.app.state.content, assignment_id)
    return Envelope(message="Assignment fetched successfully", data=AssignmentResponse.from_domain(assignment))


@router.patch("/assignments/{assignment_id}", response_model=Envelope[AssignmentResponse])
def update_assignment(
    request: Request,
    assignment_id: int,
    body: AssignmentUpdate,
    principal: Principal = Depends(_owner),
) -> Envelope[AssignmentResponse]:
    content: ContentStore = request.app.state.content
    fields = body.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    if not fields:
        raise ValidationFailure("Nothing to update.")
    if body.deadline is not None:
        fields["deadline"] = to_iso(body.deadline)
    if not content.update_assignment(assignment_id, **fields):
        raise ResourceNotFound("Assignment not found.")
    logger.info("User %s updated assignment %s (%s)", principal.subject_id, assignment_id, sorted(fields))
    return Envelope(
        message="Assignment updated successfully",
        data=AssignmentResponse.from_domain(_get_or_404(content, assignment_id)),
    )


@router.delete("/assignments/{assignment_id}", response_model=Envelope[dict])
def delete_assignment(
    request: Request,
    assignment_id: int,
    principal: Principal = Depends(_owner),
) -> Envelope[dict]:
    content: ContentStore = request.app.state.content
    if not content.delete(ResourceType.assignment, assignment_id):
        raise ResourceNotFound("Assignment not found.")
    logger.info("User %s deleted assignment %s", principal.subject_id, assignment_id)
    return Envelope(message="Assignment deleted successfully", data={})


@router.patch("/assignments/{assignment_id}/archive", response_model=Envelope[AssignmentResponse])
def archive_assignment(
    request: Request,
    assignment_id: int,
    principal: Principal = Depends(_owner),
) -> Envelope[AssignmentResponse]:
    assignment = lifecycle.archive(request.app.state.content, ResourceType.assignment, assignment_id)
    return Envelope(message="Assignment archived successfully", data=AssignmentResponse.from_domain(assignment))


@router.patch("/assignments/{assignment_id}/unarchive", response_model=Envelope[AssignmentResponse])
def unarchive_assignment(
    request: Request,
    assignment_id: int,
    principal: Principal = Depends(_owner),
) -> Envelope[AssignmentResponse]:
    assignment = lifecycle.unarchive(request.app.state.content, ResourceType.assignment, assignment_id)
    return Envelope(message="Assignment unarchived successfully", data=AssignmentResponse.from_domain(assignment))
