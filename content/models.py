"""
content/models.py -- Domain dataclasses for announcements and assignments.

These are pure data containers with zero logic. Persistence lives in
content/store.py and the archive state machine in content/lifecycle.py.

Every resource carries the same lifecycle triplet:
  is_archived == False  ->  archived_at is None and expires_at is None
  is_archived == True   ->  archived_at is set; expires_at usually is
                            (None means "archived forever")

created_by is the owning account id. It is set once on insert and never
updated -- the ownership guard depends on that.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Attachment:
    file_name: str
    file_url: str


@dataclass
class Announcement:
    """A department-wide notice.

    id is None before the record is written to the database.
    """

    title: str
    body: str
    created_by: int
    id: Optional[int] = None
    preview: str = ""
    category: str = "general"  # "general" | "academic" | "event" | "alert" | "other"
    image_url: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
    admission_year: Optional[int] = None
    is_archived: bool = False
    archived_at: Optional[str] = None  # ISO 8601
    expires_at: Optional[str] = None  # ISO 8601, swept by the store once past
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Assignment:
    """Coursework set by a lecturer or course adviser for one or more intakes."""

    title: str
    description: str
    deadline: str  # ISO 8601
    created_by: int
    id: Optional[int] = None
    preview: str = ""
    image_url: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
    admission_years: list[str] = field(default_factory=list)
    is_archived: bool = False
    archived_at: Optional[str] = None
    expires_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
