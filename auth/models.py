"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in content/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of caller roles. Values match the token claim verbatim."""

    admin = "admin"
    lecturer = "lecturer"
    course_adviser = "courseAdviser"
    student = "student"
    student_admin = "studentAdmin"


# Roles stored on lecturer-style and student-style accounts respectively.
STAFF_ROLES: frozenset[Role] = frozenset({Role.lecturer, Role.course_adviser})
STUDENT_ROLES: frozenset[Role] = frozenset({Role.student, Role.student_admin})
ALL_ROLES: frozenset[Role] = frozenset(Role)


class ResourceType(str, Enum):
    """Every resource kind the ownership guard can resolve.

    The content store maps each member to its table when it is constructed,
    so an unmapped member fails at startup rather than per request.
    """

    announcement = "announcement"
    assignment = "assignment"


class AccountStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller identity, rebuilt from the session token per request."""

    subject_id: int
    role: Role


@dataclass(frozen=True)
class ActionClaims:
    """Verified contents of a post-OTP action token."""

    subject_id: int
    verified_owner_id: int
    expires_at: int  # unix seconds


@dataclass
class User:
    """A lecturer, student, or admin account.

    hashed_password is the account's only credential and is never copied into
    a response model. lecturer_id is set for staff accounts; matric_no and
    admission_year for student accounts.
    """

    email: str
    first_name: str
    last_name: str
    role: str  # Role value
    id: int | None = None
    hashed_password: str | None = None
    status: str = AccountStatus.pending.value
    lecturer_id: str | None = None
    matric_no: str | None = None
    admission_year: int | None = None
    created_at: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class OneTimeToken:
    """A stored OTP. Only the bcrypt hash of the code is ever persisted.

    used only moves from False to True; see UserStore.mark_otp_used().
    """

    user_id: int
    token_hash: str
    expires_at: str  # ISO 8601 UTC
    id: int | None = None
    used: bool = False
    created_at: str | None = None
