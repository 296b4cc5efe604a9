"""
auth/otp.py -- One-time-password flow for password reset and registration.

Lifecycle of a code (per user):  Issued -> Verified -> Consumed
An Issued code also becomes Expired once expires_at passes; the store treats
expired rows as absent.

request()/issue():
  Generates a 6-character code, stores only its bcrypt hash, and hands the
  plaintext to the mailer. When the email matches no account the same bcrypt
  work runs against a throwaway code and nothing is stored or sent. Callers
  return an identical payload either way, so neither the body nor the latency
  of the response says whether the account exists.

verify():
  Raises InvalidToken if there is no live row or it is already used, and
  TokenMismatch if the code does not match. Success is decided by the store's
  compare-and-set on the used flag, not by the earlier read: of two racing
  verifications only the one whose UPDATE lands gets an action token.

change_password():
  The single privileged operation an action token unlocks.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.hashing import BcryptHasher
from auth.mailer import Mailer
from auth.models import ActionClaims, OneTimeToken, User
from auth.store import UserStore, to_iso
from auth.tokens import generate_otp, issue_action_token
from core.errors import InvalidToken, PermissionDenied, ResourceNotFound, TokenMismatch

logger = logging.getLogger("deptconnect.otp")

OTP_SUBJECT = "Verify otp"

# schedule(func, *args) -- e.g. FastAPI BackgroundTasks.add_task
Scheduler = Callable[..., None]


class OtpService:
    def __init__(
        self,
        store: UserStore,
        hasher: BcryptHasher,
        mailer: Mailer,
        expire_minutes: int = 10,
        single_active: bool = True,
        action_ttl_minutes: int = 10,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.mailer = mailer
        self.expire_minutes = expire_minutes
        self.single_active = single_active
        self.action_ttl_minutes = action_ttl_minutes

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def request(self, email: str, schedule: Scheduler | None = None) -> None:
        """Issue a code to the account registered under email, if there is one."""
        self.issue(self.store.get_by_email(email), schedule)

    def issue(self, user: User | None, schedule: Scheduler | None = None) -> None:
        """Issue a code to user, or burn equivalent work when user is None.

        With single_active set, earlier unused codes for the user are retired
        first, so at most one code can verify at a time.
        """
        code = generate_otp()
        if user is None or user.id is None:
            # Equalize timing -- same bcrypt cost as the real path
            self.hasher.hash(code)
            logger.info("OTP requested for unknown account; nothing issued")
            return

        if self.single_active:
            retired = self.store.invalidate_outstanding_otps(user.id)
            if retired:
                logger.info("Retired %d outstanding OTP(s) for user %s", retired, user.id)

        expires_at = datetime.now(timezone.utc) + timedelta(minutes=self.expire_minutes)
        self.store.create_otp(
            OneTimeToken(user_id=user.id, token_hash=self.hasher.hash(code), expires_at=to_iso(expires_at))
        )
        if schedule is not None:
            schedule(self._deliver, user.email, user.id, code)
        else:
            self._deliver(user.email, user.id, code)

    def _deliver(self, to_address: str, user_id: int, code: str) -> None:
        body = (
            f"Your otp is {code}\n\n"
            f"It expires in {self.expire_minutes} minutes. Account reference: {user_id}"
        )
        try:
            self.mailer.send(to_address, OTP_SUBJECT, body)
        except Exception:
            # Fire-and-forget: surfacing this would reveal the account exists.
            logger.exception("OTP delivery failed for user %s", user_id)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, user_id: int, code: str, now: datetime | None = None) -> str:
        """Consume the user's live code and return a signed action token."""
        token = self.store.get_active_otp(user_id, now=now)
        if token is None or token.used:
            logger.info("OTP verification failed for user %s: no usable token", user_id)
            raise InvalidToken()
        if not self.hasher.verify(code, token.token_hash):
            logger.info("OTP verification failed for user %s: code mismatch", user_id)
            raise TokenMismatch()
        if not self.store.mark_otp_used(token.id):
            # Lost the race against a concurrent verification of the same row.
            logger.info("OTP verification failed for user %s: already consumed", user_id)
            raise InvalidToken()
        logger.info("OTP verified for user %s", user_id)
        return issue_action_token(user_id, token.user_id, ttl_minutes=self.action_ttl_minutes)

    # ------------------------------------------------------------------
    # Follow-up operation
    # ------------------------------------------------------------------

    def change_password(self, claims: ActionClaims, user_id: int, new_password: str) -> None:
        """Replace user_id's password, provided the action token was issued for it."""
        if claims.verified_owner_id != user_id or claims.subject_id != user_id:
            raise PermissionDenied("Invalid token.")
        if self.store.get_by_id(user_id) is None:
            raise ResourceNotFound("User not found.")
        self.store.update_user(user_id, hashed_password=self.hasher.hash(new_password))
        logger.info("Password changed for user %s", user_id)
