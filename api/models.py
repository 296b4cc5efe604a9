"""
API request and response models for DeptConnect REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
content/models.py, which own the internal domain representation. Route
handlers map between the two via the from_domain() factory methods.

Successful responses use the Envelope shape {success, message, data};
failures use ErrorResponse {error: {code, message, detail}}.

Credentials never appear in a response model -- UserResponse has no
password field at all.
"""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from auth.models import STAFF_ROLES, STUDENT_ROLES, AccountStatus, Role, User
from content.models import Announcement, Assignment
from content.store import time_remaining

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PASSWORD_PATTERN = r"^[a-zA-Z0-9]{6,20}$"
OTP_PATTERN = r"^[a-zA-Z0-9]{6}$"

_Name = Annotated[str, Field(min_length=3, max_length=20)]
_Password = Annotated[str, Field(pattern=PASSWORD_PATTERN)]

T = TypeVar("T")


def _check_admission_year(value: Optional[int]) -> Optional[int]:
    """Accept 0 (unset) or any year from 2020 up to next year."""
    if value is None or value == 0:
        return value
    if 2020 <= value <= date.today().year + 1:
        return value
    raise ValueError(f"Admission year {value} is not valid")


def _check_year_list(values: list[str]) -> list[str]:
    for value in values:
        if not value.isdigit():
            raise ValueError(f"Admission year {value} is not valid")
        _check_admission_year(int(value))
    return values


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class Envelope(BaseModel, Generic[T]):
    """Success envelope shared by every non-error response."""

    success: bool = True
    message: str
    data: T


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class _RegisterBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: _Name
    last_name: _Name
    email: EmailStr
    password: _Password
    repeat_password: Optional[str] = None

    @model_validator(mode="after")
    def passwords_match(self) -> "_RegisterBase":
        if self.repeat_password is not None and self.repeat_password != self.password:
            raise ValueError("repeat_password must match password")
        return self


class RegisterLecturerRequest(_RegisterBase):
    """Request body for POST /api/v1/register/lecturer."""

    lecturer_id: str = Field(min_length=1, max_length=50)


class RegisterStudentRequest(_RegisterBase):
    """Request body for POST /api/v1/register/student."""

    matric_no: str = Field(min_length=1, max_length=50)
    admission_year: int

    @field_validator("admission_year")
    @classmethod
    def valid_year(cls, value: int) -> int:
        return _check_admission_year(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    email: EmailStr


class VerifyOtpRequest(BaseModel):
    otp: str = Field(pattern=OTP_PATTERN)


class ChangePasswordRequest(BaseModel):
    password: _Password


# ---------------------------------------------------------------------------
# Auth / users -- responses
# ---------------------------------------------------------------------------


class LoginData(BaseModel):
    name: str
    role: str
    token: str


class TokenData(BaseModel):
    token: str


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: str
    status: str
    lecturer_id: Optional[str] = None
    matric_no: Optional[str] = None
    admission_year: Optional[int] = None
    created_at: str = ""

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            role=user.role,
            status=user.status,
            lecturer_id=user.lecturer_id,
            matric_no=user.matric_no,
            admission_year=user.admission_year,
            created_at=user.created_at or "",
        )


class UpdateMeRequest(BaseModel):
    email: Optional[EmailStr] = None


class StatusUpdateRequest(BaseModel):
    status: AccountStatus


class _AccountUpdateBase(BaseModel):
    """Admin edit of another account. Only fields present in the body change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: Optional[_Name] = None
    last_name: Optional[_Name] = None
    role: Optional[Role] = None


class LecturerUpdateRequest(_AccountUpdateBase):
    """Request body for PATCH /api/v1/lecturers/{id}. role is lecturer or courseAdviser."""

    lecturer_id: Optional[str] = Field(None, min_length=1, max_length=50)

    @field_validator("role")
    @classmethod
    def staff_role(cls, value: Optional[Role]) -> Optional[Role]:
        if value is not None and value not in STAFF_ROLES:
            raise ValueError(f"A lecturer account cannot hold the role {value.value}")
        return value


class StudentUpdateRequest(_AccountUpdateBase):
    """Request body for PATCH /api/v1/students/{id}. role is student or studentAdmin."""

    matric_no: Optional[str] = Field(None, min_length=1, max_length=50)
    admission_year: Optional[int] = None

    @field_validator("role")
    @classmethod
    def student_role(cls, value: Optional[Role]) -> Optional[Role]:
        if value is not None and value not in STUDENT_ROLES:
            raise ValueError(f"A student account cannot hold the role {value.value}")
        return value

    @field_validator("admission_year")
    @classmethod
    def valid_year(cls, value: Optional[int]) -> Optional[int]:
        return _check_admission_year(value)


# ---------------------------------------------------------------------------
# Content -- shared
# ---------------------------------------------------------------------------


class CategoryEnum(str, Enum):
    general = "general"
    academic = "academic"
    event = "event"
    alert = "alert"
    other = "other"


class AttachmentModel(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    file_url: str = Field(min_length=1, max_length=2048)


class LifecycleFields(BaseModel):
    is_archived: bool
    archived_at: Optional[str] = None
    expires_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Announcements
# ---------------------------------------------------------------------------


class AnnouncementCreate(BaseModel):
    """Request body for POST /api/v1/announcements."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=3, max_length=150)
    body: str = Field(min_length=1)
    category: CategoryEnum = CategoryEnum.general
    image_url: Optional[str] = Field(default=None, max_length=2048)
    attachments: list[AttachmentModel] = Field(default_factory=list, max_length=10)
    admission_year: Optional[int] = None

    @field_validator("admission_year")
    @classmethod
    def valid_year(cls, value: Optional[int]) -> Optional[int]:
        return _check_admission_year(value)


class AnnouncementUpdate(BaseModel):
    """Request body for PATCH /api/v1/announcements/{id}. All fields optional."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=3, max_length=150)
    body: Optional[str] = Field(default=None, min_length=1)
    category: Optional[CategoryEnum] = None
    image_url: Optional[str] = Field(default=None, max_length=2048)
    attachments: Optional[list[AttachmentModel]] = Field(default=None, max_length=10)


class AnnouncementSummary(LifecycleFields):
    """One row in GET /announcements -- body and attachments omitted."""

    id: int
    title: str
    preview: str
    category: str
    image_url: Optional[str] = None
    admission_year: Optional[int] = None
    created_by: int
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, ann: Announcement) -> "AnnouncementSummary":
        return cls(
            id=ann.id,
            title=ann.title,
            preview=ann.preview,
            category=ann.category,
            image_url=ann.image_url,
            admission_year=ann.admission_year,
            created_by=ann.created_by,
            is_archived=ann.is_archived,
            archived_at=ann.archived_at,
            expires_at=ann.expires_at,
            created_at=ann.created_at,
            updated_at=ann.updated_at,
        )


class AnnouncementResponse(AnnouncementSummary):
    body: str
    attachments: list[AttachmentModel] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, ann: Announcement) -> "AnnouncementResponse":
        summary = AnnouncementSummary.from_domain(ann).model_dump()
        return cls(
            **summary,
            body=ann.body,
            attachments=[AttachmentModel(file_name=a.file_name, file_url=a.file_url) for a in ann.attachments],
        )


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


class AssignmentCreate(BaseModel):
    """Request body for POST /api/v1/assignments."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=1)
    deadline: datetime
    image_url: Optional[str] = Field(default=None, max_length=2048)
    attachments: list[AttachmentModel] = Field(default_factory=list, max_length=10)
    admission_years: list[str] = Field(min_length=1, max_length=10)

    @field_validator("admission_years")
    @classmethod
    def valid_years(cls, values: list[str]) -> list[str]:
        return _check_year_list(values)


class AssignmentUpdate(BaseModel):
    """Request body for PATCH /api/v1/assignments/{id}. All fields optional."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1)
    deadline: Optional[datetime] = None
    image_url: Optional[str] = Field(default=None, max_length=2048)
    attachments: Optional[list[AttachmentModel]] = Field(default=None, max_length=10)
    admission_years: Optional[list[str]] = Field(default=None, min_length=1, max_length=10)

    @field_validator("admission_years")
    @classmethod
    def valid_years(cls, values: Optional[list[str]]) -> Optional[list[str]]:
        if values is None:
            return values
        return _check_year_list(values)


class TimeRemaining(BaseModel):
    days: int
    hours: int
    minutes: int


class AssignmentResponse(LifecycleFields):
    id: int
    title: str
    description: str
    preview: str
    deadline: str
    time_remaining: TimeRemaining
    image_url: Optional[str] = None
    attachments: list[AttachmentModel] = Field(default_factory=list)
    admission_years: list[str]
    created_by: int
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, assignment: Assignment) -> "AssignmentResponse":
        return cls(
            id=assignment.id,
            title=assignment.title,
            description=assignment.description,
            preview=assignment.preview,
            deadline=assignment.deadline,
            time_remaining=TimeRemaining(**time_remaining(assignment.deadline)),
            image_url=assignment.image_url,
            attachments=[AttachmentModel(file_name=a.file_name, file_url=a.file_url) for a in assignment.attachments],
            admission_years=assignment.admission_years,
            created_by=assignment.created_by,
            is_archived=assignment.is_archived,
            archived_at=assignment.archived_at,
            expires_at=assignment.expires_at,
            created_at=assignment.created_at,
            updated_at=assignment.updated_at,
        )

