"""
auth/tokens.py -- Session tokens, post-OTP action tokens, and password login.

Security design decisions:
  JWT: python-jose with HS256. Both token kinds are signed with SECRET_KEY and
       carry a "typ" claim ("session" or "action"). Each verifier rejects the
       other kind, so a ten-minute action token can never act as a login and a
       session token can never authorize a password change.

  Session tokens carry the subject id and role. The Principal is rebuilt from
       the claims alone on every request -- there is no per-request user
       lookup.

  Action tokens carry the subject id and the id of the user whose OTP was
       verified. They are never persisted: validity is signature + expiry.

  Verification raises Unauthenticated with reason "expired" or "invalid". The
       distinction is for logs only; the boundary maps both to 401.

  authenticate_user() always runs bcrypt, against a dummy hash when the email
       is unknown, so login latency does not reveal which accounts exist.

Layer rule: no imports from api/ or content/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import AccountStatus, ActionClaims, Principal, Role
from core.config import get_settings
from core.errors import Unauthenticated

if TYPE_CHECKING:
    from auth.hashing import BcryptHasher
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("deptconnect.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"
_SESSION = "session"
_ACTION = "action"

OTP_ALPHABET = string.ascii_lowercase + string.digits
OTP_LENGTH = 6


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def _encode(claims: dict, lifetime: timedelta) -> str:
    payload = dict(claims)
    payload["exp"] = datetime.now(timezone.utc) + lifetime
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def _decode(token: str | None, expected_typ: str) -> dict:
    """Verify signature, expiry and token kind. Raises Unauthenticated."""
    if not token:
        raise Unauthenticated(reason="missing")
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise Unauthenticated("Token expired.", reason="expired") from exc
    except JWTError as exc:
        raise Unauthenticated("Invalid token.", reason="invalid") from exc
    if payload.get("typ") != expected_typ:
        raise Unauthenticated("Invalid token.", reason="invalid")
    return payload


def issue_session_token(subject_id: int, role: Role | str, expire_seconds: int = 0) -> str:
    """Sign a long-lived session token for subject_id with the given role.

    Args:
        subject_id:     Numeric user ID.
        role:           Role enum member or its string value.
        expire_seconds: Override for the session lifetime. 0 (default) uses
                        Settings.session_token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_token_expire_seconds
    role_value = role.value if isinstance(role, Role) else Role(role).value
    return _encode({"sub": str(subject_id), "role": role_value, "typ": _SESSION}, timedelta(seconds=duration))


def verify_session_token(token: str | None) -> Principal:
    """Return the Principal encoded in a session token. Raises Unauthenticated."""
    payload = _decode(token, _SESSION)
    try:
        return Principal(subject_id=int(payload["sub"]), role=Role(payload["role"]))
    except (KeyError, ValueError) as exc:
        raise Unauthenticated("Invalid token.", reason="invalid") from exc


def issue_action_token(subject_id: int, verified_owner_id: int, ttl_minutes: int = 0) -> str:
    """Sign a short-lived action token binding subject_id to a verified OTP owner."""
    ttl = ttl_minutes if ttl_minutes > 0 else _settings.action_token_expire_minutes
    claims = {"sub": str(subject_id), "owner": str(verified_owner_id), "typ": _ACTION}
    return _encode(claims, timedelta(minutes=ttl))


def verify_action_token(token: str | None) -> ActionClaims:
    """Return the claims of an action token. Raises Unauthenticated."""
    payload = _decode(token, _ACTION)
    try:
        return ActionClaims(
            subject_id=int(payload["sub"]),
            verified_owner_id=int(payload["owner"]),
            expires_at=int(payload["exp"]),
        )
    except (KeyError, ValueError) as exc:
        raise Unauthenticated("Invalid token.", reason="invalid") from exc


# ---------------------------------------------------------------------------
# OTP code generation
# ---------------------------------------------------------------------------


def generate_otp(length: int = OTP_LENGTH) -> str:
    """Return a random code of lowercase letters and digits."""
    return "".join(secrets.choice(OTP_ALPHABET) for _ in range(length))


# ---------------------------------------------------------------------------
# Password login (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, hasher: BcryptHasher, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown email: bcrypt runs against hasher.dummy_hash (same cost)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Rejected accounts fail like a wrong password once bcrypt has run; pending
    accounts may log in and are gated per route.

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        # Equalize timing -- do NOT return early before running bcrypt
        hasher.verify(password, hasher.dummy_hash)
        return None
    if not hasher.verify(password, user.hashed_password):
        return None
    if user.status == AccountStatus.rejected.value:
        logger.info("Login refused for rejected account %s", user.id)
        return None
    return user
