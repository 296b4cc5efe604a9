"""
api/routes/v1/users.py -- Account directory and administration endpoints.

Routes:
  GET    /api/v1/users/me            -- own profile (approved accounts only)
  PATCH  /api/v1/users/me            -- change own email
  GET    /api/v1/lecturers           -- staff directory
  GET    /api/v1/lecturers/{id}      -- one staff account (any role)
  GET    /api/v1/students            -- student directory, ?admission_year=
  GET    /api/v1/students/{id}       -- one student account
  PATCH  /api/v1/lecturers/{id}      -- edit a staff account, incl. role (admin)
  PATCH  /api/v1/students/{id}       -- edit a student account, incl. role (admin)
  PATCH  /api/v1/users/{id}/status   -- approve / reject an account (admin)
  DELETE /api/v1/users/{id}          -- delete an account (admin)
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    Envelope,
    LecturerUpdateRequest,
    StatusUpdateRequest,
    StudentUpdateRequest,
    UpdateMeRequest,
    UserResponse,
)
from auth.dependencies import get_current_principal, require_roles
from auth.models import ALL_ROLES, STAFF_ROLES, STUDENT_ROLES, AccountStatus, Principal, Role, User
from auth.store import UserStore
from core.errors import AlreadyExists, PermissionDenied, ResourceNotFound, ValidationFailure

logger = logging.getLogger("deptconnect.api.users")

# Auth policy:
# - /users/me:            any session token on an approved account
# - /lecturers, /lecturers/{id}:  staff roles; the single lookup is open to all roles
# - /students, /students/{id}:    admin, studentAdmin, lecturer, courseAdviser
# - PATCH /lecturers/{id}, PATCH /students/{id}: admin only
# - /users/{id}/status, DELETE /users/{id}: admin only
router = APIRouter()

_staff_directory = require_roles(Role.admin, Role.course_adviser, Role.lecturer)
_student_directory = require_roles(Role.admin, Role.student_admin, Role.lecturer, Role.course_adviser)
_admin_only = require_roles(Role.admin)


def _load_user(store: UserStore, user_id: int, roles=ALL_ROLES) -> User:
    user = store.get_by_id(user_id)
    if user is None or user.role not in {r.value for r in roles}:
        raise ResourceNotFound("User not found.")
    return user


def _approved_self(store: UserStore, principal: Principal) -> User:
    user = _load_user(store, principal.subject_id)
    if user.status != AccountStatus.approved.value:
        raise PermissionDenied("Your account has not been approved yet.")
    return user


# ---------------------------------------------------------------------------
# Own profile
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=Envelope[UserResponse])
def get_me(request: Request, principal: Principal = Depends(get_current_principal)) -> Envelope[UserResponse]:
    """Return the caller's profile. Pending and rejected accounts get 403."""
    user = _approved_self(request.app.state.user_store, principal)
    return Envelope(message="User fetched successfully", data=UserResponse.from_domain(user))


@router.patch("/users/me", response_model=Envelope[UserResponse])
def update_me(
    request: Request,
    body: UpdateMeRequest,
    principal: Principal = Depends(get_current_principal),
) -> Envelope[UserResponse]:
    """Change the caller's email. Pending and rejected accounts get 403."""
    store: UserStore = request.app.state.user_store
    user = _approved_self(store, principal)
    if body.email is not None:
        try:
            store.update_user(user.id, email=body.email)
        except IntegrityError as exc:
            raise AlreadyExists("Email is already in use.") from exc
        user = _load_user(store, principal.subject_id)
    return Envelope(message="User updated successfully", data=UserResponse.from_domain(user))


# ---------------------------------------------------------------------------
# Directories
# ---------------------------------------------------------------------------


@router.get("/lecturers", response_model=Envelope[list[UserResponse]])
def list_lecturers(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(_staff_directory),
) -> Envelope[list[UserResponse]]:
    store: UserStore = request.app.state.user_store
    users = store.list_users(STAFF_ROLES, skip=(page - 1) * limit, limit=limit)
    return Envelope(message="Lecturers fetched successfully", data=[UserResponse.from_domain(u) for u in users])


@router.get("/lecturers/{user_id}", response_model=Envelope[UserResponse])
def get_lecturer(
    request: Request,
    user_id: int,
    principal: Principal = Depends(get_current_principal),
) -> Envelope[UserResponse]:
    user = _load_user(request.app.state.user_store, user_id, STAFF_ROLES)
    return Envelope(message="Lecturer fetched successfully", data=UserResponse.from_domain(user))


@router.get("/students", response_model=Envelope[list[UserResponse]])
def list_students(
    request: Request,
    admission_year: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(_student_directory),
) -> Envelope[list[UserResponse]]:
    """List student accounts, optionally narrowed to one intake."""
    store: UserStore = request.app.state.user_store
    users = store.list_users(STUDENT_ROLES, admission_year=admission_year, skip=(page - 1) * limit, limit=limit)
    return Envelope(message="Students fetched successfully", data=[UserResponse.from_domain(u) for u in users])


@router.get("/students/{user_id}", response_model=Envelope[UserResponse])
def get_student(
    request: Request,
    user_id: int,
    principal: Principal = Depends(_student_directory),
) -> Envelope[UserResponse]:
    user = _load_user(request.app.state.user_store, user_id, STUDENT_ROLES)
    return Envelope(message="Student fetched successfully", data=UserResponse.from_domain(user))


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


def _admin_update(store: UserStore, principal: Principal, user_id: int, roles, fields: dict) -> User:
    """Apply an admin edit to an account whose role is in roles.

    Role changes stay inside the account's family: lecturer <-> courseAdviser,
    student <-> studentAdmin. The request models enforce that.
    """
    _load_user(store, user_id, roles)
    if not fields:
        raise ValidationFailure("Nothing to update.")
    try:
        store.update_user(user_id, **fields)
    except IntegrityError as exc:
        raise AlreadyExists("Lecturer ID or matric number is already in use.") from exc
    logger.info("Admin %s updated user %s (%s)", principal.subject_id, user_id, sorted(fields))
    return _load_user(store, user_id)


@router.patch("/lecturers/{user_id}", response_model=Envelope[UserResponse])
def update_lecturer(
    request: Request,
    user_id: int,
    body: LecturerUpdateRequest,
    principal: Principal = Depends(_admin_only),
) -> Envelope[UserResponse]:
    """Edit a staff account's profile or move it between lecturer and courseAdviser."""
    fields = body.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    user = _admin_update(request.app.state.user_store, principal, user_id, STAFF_ROLES, fields)
    return Envelope(message="Lecturer updated successfully", data=UserResponse.from_domain(user))


@router.patch("/students/{user_id}", response_model=Envelope[UserResponse])
def update_student(
    request: Request,
    user_id: int,
    body: StudentUpdateRequest,
    principal: Principal = Depends(_admin_only),
) -> Envelope[UserResponse]:
    """Edit a student account's profile or move it between student and studentAdmin."""
    fields = body.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    user = _admin_update(request.app.state.user_store, principal, user_id, STUDENT_ROLES, fields)
    return Envelope(message="Student updated successfully", data=UserResponse.from_domain(user))


@router.patch("/users/{user_id}/status", response_model=Envelope[UserResponse])
def update_status(
    request: Request,
    user_id: int,
    body: StatusUpdateRequest,
    principal: Principal = Depends(_admin_only),
) -> Envelope[UserResponse]:
    """Approve or reject an account. Admins cannot change their own status."""
    store: UserStore = request.app.state.user_store
    user = _load_user(store, user_id)
    if user.id == principal.subject_id:
        raise PermissionDenied("You cannot change the status of your own account.")
    store.update_user(user_id, status=body.status.value)
    logger.info("Admin %s set user %s status to %s", principal.subject_id, user_id, body.status.value)
    return Envelope(message="User status updated", data=UserResponse.from_domain(_load_user(store, user_id)))


@router.delete("/users/{user_id}", response_model=Envelope[dict])
def delete_user(
    request: Request,
    user_id: int,
    principal: Principal = Depends(_admin_only),
) -> Envelope[dict]:
    """Delete an account and its outstanding OTPs. Admins cannot delete themselves."""
    store: UserStore = request.app.state.user_store
    if user_id == principal.subject_id:
        raise PermissionDenied("You cannot delete your own account.")
    if not store.delete_user(user_id):
        raise ResourceNotFound("User not found.")
    logger.info("Admin %s deleted user %s", principal.subject_id, user_id)
    return Envelope(message="User deleted successfully", data={})
