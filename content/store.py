"""
content/store.py -- SQLAlchemy-backed persistence for announcements and assignments.

Uses SQLAlchemy Core (not ORM) so the dataclasses in content/models.py remain
the authoritative domain representation.

Pattern: Repository + Data Mapper. ContentStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Resource-type dispatch:
  The ownership guard and the lifecycle manager address resources as
  (ResourceType, id). __init__ builds the ResourceType -> (table, mapper)
  table and refuses to start if any member is unmapped, so an unknown
  resource type is a startup failure rather than a per-request one.

Expiry:
  SQLite has no TTL index. purge_expired() deletes archived rows past
  expires_at and is run periodically by the API lifespan. Reads do not filter
  on expires_at -- a row may linger until the next sweep.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ContentStore()                                 # SQLite default
    ann_id = store.create_announcement(Announcement(title=..., body=..., created_by=uid))
    ann = store.find_by_id(ResourceType.announcement, ann_id)
    store.update_atomic(ResourceType.announcement, ann_id, {"is_archived": False}, {...})
    store.close()
"""

import json
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import ResourceType
from auth.store import to_iso
from content.models import Announcement, Assignment, Attachment

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'deptconnect_content.db'}"

PREVIEW_LENGTH = 300

Resource = Union[Announcement, Assignment]

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_announcements = Table(
    "announcements",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(150), nullable=False),
    Column("body", Text, nullable=False),
    Column("preview", String(PREVIEW_LENGTH + 3), nullable=False, server_default=""),
    Column("category", String(20), nullable=False, server_default="general"),
    Column("image_url", Text),
    Column("attachments", Text),  # JSON array of {file_name, file_url}
    Column("admission_year", Integer),
    Column("created_by", Integer, nullable=False, index=True),
    Column("is_archived", Boolean, nullable=False, server_default="0"),
    Column("archived_at", String(32)),
    Column("expires_at", String(32), index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_assignments = Table(
    "assignments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=False),
    Column("preview", String(PREVIEW_LENGTH + 3), nullable=False, server_default=""),
    Column("image_url", Text),
    Column("attachments", Text),  # JSON array of {file_name, file_url}
    Column("admission_years", Text, nullable=False),  # JSON array of year strings
    Column("deadline", String(32), nullable=False),
    Column("created_by", Integer, nullable=False, index=True),
    Column("is_archived", Boolean, nullable=False, server_default="0"),
    Column("archived_at", String(32)),
    Column("expires_at", String(32), index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def make_preview(text: str, limit: int = PREVIEW_LENGTH) -> str:
    """Collapse whitespace and cut text to limit characters, adding '...' when cut."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[:limit].rstrip() + "..."


def time_remaining(deadline_iso: str, now: Optional[datetime] = None) -> dict[str, int]:
    """Return {days, hours, minutes} left until deadline, floored at zero."""
    deadline = datetime.fromisoformat(deadline_iso)
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    seconds = max(0, int((deadline - (now or datetime.now(timezone.utc))).total_seconds()))
    return {
        "days": seconds // 86400,
        "hours": (seconds // 3600) % 24,
        "minutes": (seconds // 60) % 60,
    }


def _dump_attachments(attachments: list) -> str:
    return json.dumps([asdict(a) if isinstance(a, Attachment) else dict(a) for a in attachments])


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ContentStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

        self._resources: dict[ResourceType, tuple[Table, Callable[[Any], Resource]]] = {
            ResourceType.announcement: (_announcements, _row_to_announcement),
            ResourceType.assignment: (_assignments, _row_to_assignment),
        }
        unmapped = set(ResourceType) - set(self._resources)
        if unmapped:
            raise RuntimeError(f"ContentStore has no table for resource types: {sorted(unmapped)}")

    def _resource(self, resource_type: ResourceType) -> tuple[Table, Callable[[Any], Resource]]:
        return self._resources[ResourceType(resource_type)]

    # ------------------------------------------------------------------
    # Generic access (ownership guard + lifecycle manager)
    # ------------------------------------------------------------------

    def find_by_id(self, resource_type: ResourceType, resource_id: int) -> Optional[Resource]:
        """Fetch any resource by type and id. Returns None if not found."""
        table, mapper = self._resource(resource_type)
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.id == resource_id)).fetchone()
        return mapper(row) if row is not None else None

    def update_atomic(
        self,
        resource_type: ResourceType,
        resource_id: int,
        predicate: Optional[dict] = None,
        values: Optional[dict] = None,
    ) -> bool:
        """Apply values to one row in a single conditional UPDATE.

        predicate maps column names to the values they must currently hold.
        Returns True if the row matched (and was updated), False otherwise --
        either the id does not exist or the predicate did not hold.
        """
        table, _ = self._resource(resource_type)
        condition = table.c.id == resource_id
        for column, expected in (predicate or {}).items():
            condition = condition & (table.c[column] == expected)
        with self.engine.begin() as conn:
            result = conn.execute(table.update().where(condition).values(**(values or {}), updated_at=_now_iso()))
        return result.rowcount == 1

    def delete(self, resource_type: ResourceType, resource_id: int) -> bool:
        """Permanently delete a resource. Returns True if a row was removed."""
        table, _ = self._resource(resource_type)
        with self.engine.begin() as conn:
            result = conn.execute(table.delete().where(table.c.id == resource_id))
        return result.rowcount > 0

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every resource whose expires_at has passed. Returns rows removed."""
        cutoff = to_iso(now or datetime.now(timezone.utc))
        removed = 0
        with self.engine.begin() as conn:
            for table, _ in self._resources.values():
                result = conn.execute(
                    table.delete().where(table.c.expires_at.is_not(None) & (table.c.expires_at <= cutoff))
                )
                removed += result.rowcount
        return removed

    # ------------------------------------------------------------------
    # Announcements
    # ------------------------------------------------------------------

    def create_announcement(self, ann: Announcement) -> int:
        """Insert a new announcement and return its assigned ID. Preview is derived from body."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _announcements.insert().values(
                    title=ann.title,
                    body=ann.body,
                    preview=make_preview(ann.body),
                    category=ann.category,
                    image_url=ann.image_url,
                    attachments=_dump_attachments(ann.attachments),
                    admission_year=ann.admission_year,
                    created_by=ann.created_by,
                    is_archived=False,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_announcement(self, ann_id: int) -> Optional[Announcement]:
        return self.find_by_id(ResourceType.announcement, ann_id)

    def list_announcements(
        self,
        title: Optional[str] = None,
        created_by: Optional[int] = None,
        category: Optional[str] = None,
        admission_year: Optional[int] = None,
        timeline_days: Optional[int] = None,
        archived: Optional[bool] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> list[Announcement]:
        """Return announcements newest first, filtered and paginated.

        title is a case-insensitive substring match; timeline_days keeps only
        announcements created within that many days.
        """
        t = _announcements
        query = t.select()
        if title:
            query = query.where(t.c.title.icontains(title, autoescape=True))
        if created_by is not None:
            query = query.where(t.c.created_by == created_by)
        if category:
            query = query.where(t.c.category == category)
        if admission_year is not None:
            query = query.where(t.c.admission_year == admission_year)
        if timeline_days:
            since = to_iso(datetime.now(timezone.utc) - timedelta(days=timeline_days))
            query = query.where(t.c.created_at >= since)
        if archived is not None:
            query = query.where(t.c.is_archived == archived)
        query = query.order_by(t.c.created_at.desc(), t.c.id.desc()).offset(skip).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_announcement(r) for r in rows]

    def update_announcement(self, ann_id: int, **fields) -> bool:
        """Update mutable fields: title, body, category, image_url, attachments.

        A new body regenerates the preview. created_by and the lifecycle
        triplet are not accepted here. Returns False if ann_id was not found.
        """
        return self.update_atomic(ResourceType.announcement, ann_id, values=_content_values(fields, "body"))

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def create_assignment(self, assignment: Assignment) -> int:
        """Insert a new assignment and return its assigned ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _assignments.insert().values(
                    title=assignment.title,
                    description=assignment.description,
                    preview=make_preview(assignment.description),
                    image_url=assignment.image_url,
                    attachments=_dump_attachments(assignment.attachments),
                    admission_years=json.dumps(assignment.admission_years),
                    deadline=assignment.deadline,
                    created_by=assignment.created_by,
                    is_archived=False,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_assignment(self, assignment_id: int) -> Optional[Assignment]:
        return self.find_by_id(ResourceType.assignment, assignment_id)

    def list_assignments(
        self,
        title: Optional[str] = None,
        created_by: Optional[int] = None,
        admission_year: Optional[str] = None,
        archived: Optional[bool] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> list[Assignment]:
        """Return assignments newest first, filtered and paginated."""
        t = _assignments
        query = t.select()
        if title:
            query = query.where(t.c.title.icontains(title, autoescape=True))
        if created_by is not None:
            query = query.where(t.c.created_by == created_by)
        if admission_year:
            # admission_years is a JSON array of strings; match the quoted element.
            query = query.where(t.c.admission_years.contains(json.dumps(str(admission_year)), autoescape=True))
        if archived is not None:
            query = query.where(t.c.is_archived == archived)
        query = query.order_by(t.c.created_at.desc(), t.c.id.desc()).offset(skip).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_assignment(r) for r in rows]

    def update_assignment(self, assignment_id: int, **fields) -> bool:
        """Update mutable fields: title, description, deadline, image_url,
        attachments, admission_years. A new description regenerates the preview.
        """
        return self.update_atomic(ResourceType.assignment, assignment_id, values=_content_values(fields, "description"))

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


def _content_values(fields: dict, text_field: str) -> dict:
    values = dict(fields)
    for protected in ("id", "created_by", "created_at", "is_archived", "archived_at", "expires_at"):
        values.pop(protected, None)
    if text_field in values:
        values["preview"] = make_preview(values[text_field])
    if "attachments" in values:
        values["attachments"] = _dump_attachments(values["attachments"])
    if "admission_years" in values:
        values["admission_years"] = json.dumps(values["admission_years"])
    return values


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _load_attachments(raw: Optional[str]) -> list[Attachment]:
    return [Attachment(**a) for a in json.loads(raw)] if raw else []


def _row_to_announcement(row) -> Announcement:
    return Announcement(
        id=row.id,
        title=row.title,
        body=row.body,
        preview=row.preview or "",
        category=row.category,
        image_url=row.image_url,
        attachments=_load_attachments(row.attachments),
        admission_year=row.admission_year,
        created_by=row.created_by,
        is_archived=bool(row.is_archived),
        archived_at=row.archived_at,
        expires_at=row.expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_assignment(row) -> Assignment:
    return Assignment(
        id=row.id,
        title=row.title,
        description=row.description,
        preview=row.preview or "",
        image_url=row.image_url,
        attachments=_load_attachments(row.attachments),
        admission_years=json.loads(row.admission_years) if row.admission_years else [],
        deadline=row.deadline,
        created_by=row.created_by,
        is_archived=bool(row.is_archived),
        archived_at=row.archived_at,
        expires_at=row.expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
