"""Unit tests for auth/store.py -- accounts and one-time tokens.

Covers:
- Unique constraints on email, lecturer_id and matric_no
- list_users() role and intake filters
- OTP rows: newest-unexpired lookup, compare-and-set, retirement, purge
- to_iso() reads naive datetimes as UTC whatever the host timezone
"""

import time
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import OneTimeToken, Role, User
from auth.store import to_iso
from content.store import to_iso as content_to_iso
from tests.conftest import create_account


def _otp(user_id: int, minutes: int = 10, token_hash: str = "$2b$04$fake") -> OneTimeToken:
    expires = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return OneTimeToken(user_id=user_id, token_hash=token_hash, expires_at=to_iso(expires))


class TestUsers:
    def test_email_is_stored_lowercase_and_unique(self, user_store):
        create_account(user_store, Role.lecturer, "Ada@Uni.edu", lecturer_id="L1")
        assert user_store.get_by_email("ADA@uni.EDU") is not None
        with pytest.raises(IntegrityError):
            create_account(user_store, Role.lecturer, "ada@uni.edu", lecturer_id="L2")

    def test_matric_no_is_unique(self, user_store):
        create_account(user_store, Role.student, "a@uni.edu", matric_no="M1")
        with pytest.raises(IntegrityError):
            create_account(user_store, Role.student, "b@uni.edu", matric_no="M1")

    def test_new_accounts_default_to_pending(self, user_store):
        uid = user_store.create_user(User(email="p@uni.edu", first_name="Pat", last_name="Eze", role="student"))
        assert user_store.get_by_id(uid).status == "pending"

    def test_list_users_filters_by_role_and_intake(self, user_store):
        create_account(user_store, Role.lecturer, "l@uni.edu", lecturer_id="L1")
        create_account(user_store, Role.student, "s1@uni.edu", matric_no="M1", admission_year=2022)
        create_account(user_store, Role.student_admin, "s2@uni.edu", matric_no="M2", admission_year=2023)

        students = user_store.list_users([Role.student, Role.student_admin])
        assert {u.email for u in students} == {"s1@uni.edu", "s2@uni.edu"}
        assert [u.email for u in user_store.list_users([Role.student, Role.student_admin], admission_year=2023)] == [
            "s2@uni.edu"
        ]
        assert [u.email for u in user_store.list_users(["lecturer"])] == ["l@uni.edu"]

    def test_list_users_paginates(self, user_store):
        for i in range(5):
            create_account(user_store, Role.student, f"s{i}@uni.edu", matric_no=f"M{i}")
        assert len(user_store.list_users([Role.student], skip=0, limit=3)) == 3
        assert len(user_store.list_users([Role.student], skip=3, limit=3)) == 2

    def test_update_and_delete(self, user_store):
        uid = create_account(user_store, Role.student, "s@uni.edu", matric_no="M1")
        assert user_store.update_user(uid, status="approved") is True
        assert user_store.get_by_id(uid).status == "approved"
        user_store.create_otp(_otp(uid))
        assert user_store.delete_user(uid) is True
        assert user_store.get_by_id(uid) is None
        assert user_store.get_active_otp(uid) is None
        assert user_store.delete_user(uid) is False

    def test_ping(self, user_store):
        assert user_store.ping() is True


class TestOneTimeTokens:
    def test_active_otp_is_the_newest_unexpired_row(self, user_store):
        uid = create_account(user_store, Role.student, "s@uni.edu", matric_no="M1")
        user_store.create_otp(_otp(uid, token_hash="old"))
        newest = user_store.create_otp(_otp(uid, token_hash="new"))
        assert user_store.get_active_otp(uid).id == newest

    def test_expired_rows_are_invisible(self, user_store):
        uid = create_account(user_store, Role.student, "s@uni.edu", matric_no="M1")
        user_store.create_otp(_otp(uid, minutes=-1))
        assert user_store.get_active_otp(uid) is None

    def test_mark_used_is_compare_and_set(self, user_store):
        uid = create_account(user_store, Role.student, "s@uni.edu", matric_no="M1")
        token_id = user_store.create_otp(_otp(uid))
        assert user_store.mark_otp_used(token_id) is True
        assert user_store.mark_otp_used(token_id) is False
        assert user_store.get_active_otp(uid).used is True

    def test_invalidate_outstanding(self, user_store):
        uid = create_account(user_store, Role.student, "s@uni.edu", matric_no="M1")
        other = create_account(user_store, Role.student, "t@uni.edu", matric_no="M2")
        user_store.create_otp(_otp(uid))
        user_store.create_otp(_otp(uid))
        other_token = user_store.create_otp(_otp(other))
        assert user_store.invalidate_outstanding_otps(uid) == 2
        assert user_store.invalidate_outstanding_otps(uid) == 0
        assert user_store.mark_otp_used(other_token) is True

    def test_purge_expired(self, user_store):
        uid = create_account(user_store, Role.student, "s@uni.edu", matric_no="M1")
        user_store.create_otp(_otp(uid, minutes=-5))
        user_store.create_otp(_otp(uid, minutes=5))
        assert user_store.purge_expired_otps() == 1
        assert user_store.get_active_otp(uid) is not None


@pytest.fixture
def far_from_utc(monkeypatch):
    """Run the test with the process clock in UTC+9."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is unavailable on this platform")
    monkeypatch.setenv("TZ", "Asia/Tokyo")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


class TestTimestamps:
    def test_naive_datetimes_are_read_as_utc(self, far_from_utc):
        assert to_iso(datetime(2024, 3, 1, 12, 0)) == "2024-03-01T12:00:00.000000+00:00"
        assert to_iso(datetime(2024, 3, 1, 21, 0, tzinfo=timezone(timedelta(hours=9)))) == (
            "2024-03-01T12:00:00.000000+00:00"
        )

    def test_content_store_shares_the_helper(self):
        assert content_to_iso is to_iso

    def test_naive_now_moves_no_expiry_cutoff(self, user_store, far_from_utc):
        uid = create_account(user_store, Role.student, "s@uni.edu", matric_no="M1")
        user_store.create_otp(_otp(uid, minutes=30))
        naive_utc_now = datetime.now(timezone.utc).replace(tzinfo=None)
        assert user_store.get_active_otp(uid, now=naive_utc_now + timedelta(minutes=20)) is not None
        assert user_store.get_active_otp(uid, now=naive_utc_now + timedelta(minutes=40)) is None
