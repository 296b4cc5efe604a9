"""
tests/conftest.py -- Shared test fixtures for DeptConnect.

This module provides:
  - RecordingMailer: captures outgoing OTP mail so tests can read the code
  - _make_test_stores(): isolated in-memory DBs for users + content
  - _patch_lifespan(): wires test stores and services into app.state
  - api_env: TestClient plus one approved account per role, module-scoped
  - user_store / content_store / hasher: per-test stores for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker.

Environment must be set before any api/auth/core import:
  DEBUG=true               -- get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4          -- keeps the suite fast
  RATE_LIMIT_ENABLED=false -- many logins per module would trip the limiter
  ALLOWED_HOSTS=["*"]      -- TestClient sends Host: testserver
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["*"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.hashing import BcryptHasher
from auth.models import AccountStatus, Role, User
from auth.otp import OtpService
from auth.store import UserStore
from auth.tokens import issue_session_token
from content.store import ContentStore

TEST_PASSWORD = "testpass123"

_hasher = BcryptHasher(rounds=4)


# ---------------------------------------------------------------------------
# Mail capture
# ---------------------------------------------------------------------------


class RecordingMailer:
    """Mailer that keeps every message in memory instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to_address: str, subject: str, body: str) -> None:
        self.sent.append((to_address, subject, body))

    def messages_to(self, address: str) -> list[str]:
        return [body for to, _, body in self.sent if to == address.lower()]

    def last_code_for(self, address: str) -> str:
        """Return the OTP from the most recent mail to address."""
        bodies = self.messages_to(address)
        assert bodies, f"No mail sent to {address}"
        match = re.search(r"Your otp is (\w{6})", bodies[-1])
        assert match, f"No OTP in mail body: {bodies[-1]!r}"
        return match.group(1)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, ContentStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    content_url = f"sqlite:///file:test_content_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), ContentStore(db_url=content_url)


def _patch_lifespan(user_store: UserStore, content: ContentStore, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine: a real asyncio.Task is
    needed because shutdown calls .cancel() on it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.content = content
        app.state.hasher = _hasher
        app.state.mailer = mailer
        app.state.otp = OtpService(user_store, _hasher, mailer, expire_minutes=10, single_active=True)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


def create_account(
    store: UserStore,
    role: Role,
    email: str,
    password: str = TEST_PASSWORD,
    status: AccountStatus = AccountStatus.approved,
    **extra,
) -> int:
    """Insert an account directly, bypassing registration. Returns its id."""
    return store.create_user(
        User(
            email=email,
            first_name="Test",
            last_name=role.value.capitalize(),
            role=role.value,
            hashed_password=_hasher.hash(password),
            status=status.value,
            **extra,
        )
    )


def bearer(user_id: int, role: Role) -> dict[str, str]:
    """Authorization header carrying a one-hour session token."""
    return {"Authorization": f"Bearer {issue_session_token(user_id, role, expire_seconds=3600)}"}


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiEnv:
    client: TestClient
    user_store: UserStore
    content: ContentStore
    mailer: RecordingMailer
    ids: dict[str, int] = field(default_factory=dict)
    headers: dict[str, dict[str, str]] = field(default_factory=dict)


# name -> (role, email, extra columns)
_SEED_ACCOUNTS = {
    "admin": (Role.admin, "admin@uni.edu", {}),
    "lecturer": (Role.lecturer, "lecturer@uni.edu", {"lecturer_id": "LEC-001"}),
    "other_lecturer": (Role.lecturer, "lecturer2@uni.edu", {"lecturer_id": "LEC-002"}),
    "adviser": (Role.course_adviser, "adviser@uni.edu", {"lecturer_id": "LEC-003"}),
    "student": (Role.student, "student@uni.edu", {"matric_no": "MAT-001", "admission_year": 2022}),
    "student_admin": (Role.student_admin, "sadmin@uni.edu", {"matric_no": "MAT-002", "admission_year": 2023}),
}


@pytest.fixture(scope="module")
def api_env(request) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan, so
    tests hit real route handlers against isolated in-memory stores. One
    approved account per role is seeded; env.headers[name] authenticates
    as that account.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, content = _make_test_stores(suffix)
    mailer = RecordingMailer()
    env = ApiEnv(client=None, user_store=user_store, content=content, mailer=mailer)
    for name, (role, email, extra) in _SEED_ACCOUNTS.items():
        uid = create_account(user_store, role, email, **extra)
        env.ids[name] = uid
        env.headers[name] = bearer(uid, role)

    app.router.lifespan_context = _patch_lifespan(user_store, content, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        env.client = client
        yield env

    user_store.close()
    content.close()


# ---------------------------------------------------------------------------
# Unit-test fixtures -- fresh file-backed stores per test
# ---------------------------------------------------------------------------


@pytest.fixture
def hasher() -> BcryptHasher:
    return _hasher


@pytest.fixture
def user_store(tmp_path) -> Generator[UserStore, None, None]:
    store = UserStore(db_url=f"sqlite:///{tmp_path / 'auth.db'}")
    yield store
    store.close()


@pytest.fixture
def content_store(tmp_path) -> Generator[ContentStore, None, None]:
    store = ContentStore(db_url=f"sqlite:///{tmp_path / 'content.db'}")
    yield store
    store.close()
