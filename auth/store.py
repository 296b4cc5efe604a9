"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and OTPs.

Pattern: Repository + Data Mapper (same as content/store.py).
UserStore is the repository; _row_to_user / _row_to_otp are the mappers.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  OTP rows hold only the bcrypt hash of the code. mark_otp_used() is a
  compare-and-set (UPDATE ... WHERE used = 0) so two racing verifications
  of the same row produce exactly one winner; the rowcount decides.

  SQLite has no TTL index. get_active_otp() ignores rows past expires_at, and
  purge_expired_otps() -- run by the lifespan purge loop -- deletes them.

DB path: auth/deptconnect_auth.db (sibling to content/deptconnect_content.db).

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Boolean, Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import OneTimeToken, User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'deptconnect_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # stored lowercased
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("hashed_password", Text),
    Column("role", String(30), nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("lecturer_id", String(50), unique=True),
    Column("matric_no", String(50), unique=True),
    Column("admission_year", Integer),
    Column("created_at", String(32), nullable=False),
)

_otp_tokens = Table(
    "otp_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("token_hash", Text, nullable=False),  # bcrypt hash, never the raw code
    Column("expires_at", String(32), nullable=False),
    Column("used", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Index("ix_otp_tokens_expires_at", "expires_at"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block on the OTP CAS writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Render moment as a fixed-width UTC ISO-8601 string. Naive values are taken as UTC."""
    # Fixed microsecond precision keeps stored timestamps lexically ordered.
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and OneTimeToken entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(email="a@uni.com", first_name="Ada", last_name="Obi", role="lecturer"))
        user = store.get_by_email("a@uni.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email, lecturer_id or
        matric_no is already taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email.lower(),
                    first_name=user.first_name,
                    last_name=user.last_name,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    status=user.status,
                    lecturer_id=user.lecturer_id,
                    matric_no=user.matric_no,
                    admission_year=user.admission_year,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up an account by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(
        self,
        roles: Iterable[str],
        admission_year: int | None = None,
        skip: int = 0,
        limit: int = 10,
    ) -> list[User]:
        """Return accounts whose role is in roles, ordered by last name."""
        role_values = [getattr(r, "value", r) for r in roles]
        query = _users.select().where(_users.c.role.in_(role_values))
        if admission_year is not None:
            query = query.where(_users.c.admission_year == admission_year)
        query = query.order_by(_users.c.last_name, _users.c.id).offset(skip).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: email, hashed_password, status, role, first_name,
        last_name, lecturer_id, matric_no, admission_year. Returns True if a row was updated, False if not found.
        """
        if "email" in fields:
            fields["email"] = fields["email"].lower()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete an account and every OTP row it owns. Returns False if not found."""
        with self.engine.begin() as conn:
            conn.execute(_otp_tokens.delete().where(_otp_tokens.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # One-time tokens
    # ------------------------------------------------------------------

    def create_otp(self, token: OneTimeToken) -> int:
        """Insert a new OTP row (used=False) and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _otp_tokens.insert().values(
                    user_id=token.user_id,
                    token_hash=token.token_hash,
                    expires_at=token.expires_at,
                    used=False,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_active_otp(self, user_id: int, now: datetime | None = None) -> OneTimeToken | None:
        """Return the newest unexpired OTP row for user_id, used or not.

        Rows past expires_at are treated exactly like rows the sweep has
        already deleted. The used flag is left for the caller to judge.
        """
        cutoff = to_iso(now or datetime.now(timezone.utc))
        with self.engine.connect() as conn:
            row = conn.execute(
                _otp_tokens.select()
                .where((_otp_tokens.c.user_id == user_id) & (_otp_tokens.c.expires_at > cutoff))
                .order_by(_otp_tokens.c.created_at.desc(), _otp_tokens.c.id.desc())
            ).fetchone()
        return _row_to_otp(row) if row is not None else None

    def mark_otp_used(self, token_id: int) -> bool:
        """Atomically flip used from False to True.

        Returns True only for the caller whose UPDATE changed the row. A
        concurrent or repeated call finds used already set and gets False.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _otp_tokens.update()
                .where((_otp_tokens.c.id == token_id) & (_otp_tokens.c.used == False))  # noqa: E712
                .values(used=True)
            )
        return result.rowcount == 1

    def invalidate_outstanding_otps(self, user_id: int) -> int:
        """Mark every unused OTP for user_id as used. Returns rows retired."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _otp_tokens.update()
                .where((_otp_tokens.c.user_id == user_id) & (_otp_tokens.c.used == False))  # noqa: E712
                .values(used=True)
            )
        return result.rowcount

    def purge_expired_otps(self, now: datetime | None = None) -> int:
        """Delete OTP rows past expires_at. Returns number of rows removed."""
        cutoff = to_iso(now or datetime.now(timezone.utc))
        with self.engine.begin() as conn:
            result = conn.execute(_otp_tokens.delete().where(_otp_tokens.c.expires_at <= cutoff))
        return result.rowcount

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        hashed_password=row.hashed_password,
        role=row.role,
        status=row.status,
        lecturer_id=row.lecturer_id,
        matric_no=row.matric_no,
        admission_year=row.admission_year,
        created_at=row.created_at,
    )


def _row_to_otp(row) -> OneTimeToken:
    return OneTimeToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        used=bool(row.used),
        created_at=row.created_at,
    )
