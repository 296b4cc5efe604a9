"""
api/routes/v1/auth.py -- Registration, login and OTP password-reset endpoints.

Routes:
  POST /api/v1/register/lecturer          -- create pending staff account; 202
  POST /api/v1/register/student           -- create pending student account; 202
  POST /api/v1/login                      -- email/password login; session token
  POST /api/v1/reset-password             -- mail an OTP if the account exists; 202
  POST /api/v1/verify-otp?id=<user_id>    -- consume an OTP; action token
  POST /api/v1/change-password?id=<id>    -- set a new password (action token)

Security:
  Registration and reset-password answer with the same body, status and bcrypt
  cost whether or not the email is known. Mail goes out in a background task
  after the response is sent, so SMTP latency does not leak either.
  Login goes through authenticate_user(), which is timing-equalized.
  Login, reset-password and verify-otp are rate-limited per client IP.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    ChangePasswordRequest,
    Envelope,
    LoginData,
    LoginRequest,
    RegisterLecturerRequest,
    RegisterStudentRequest,
    ResetPasswordRequest,
    TokenData,
    VerifyOtpRequest,
)
from auth.dependencies import get_action_claims
from auth.hashing import BcryptHasher
from auth.models import ActionClaims, Role, User
from auth.otp import OtpService
from auth.store import UserStore
from auth.tokens import authenticate_user, issue_session_token
from core.config import get_settings

logger = logging.getLogger("deptconnect.api.auth")

_settings = get_settings()

REGISTER_MESSAGE = "Registration request received. If your email is valid, you will receive an OTP."
RESET_MESSAGE = "If a user with that email exists, a password reset OTP will be sent."

# Auth policy: every route here is public except change-password, which needs
# the short-lived action token minted by verify-otp.
router = APIRouter()


def _register(request: Request, background_tasks: BackgroundTasks, user: User, password: str) -> Envelope[dict]:
    """Shared body of both registration routes.

    Every branch hashes the password once and issues (or simulates) one OTP,
    then returns the same envelope.
    """
    store: UserStore = request.app.state.user_store
    hasher: BcryptHasher = request.app.state.hasher
    otp: OtpService = request.app.state.otp

    user.hashed_password = hasher.hash(password)
    if store.get_by_email(user.email) is not None:
        otp.issue(None)
        return Envelope(message=REGISTER_MESSAGE, data={})
    try:
        user.id = store.create_user(user)
    except IntegrityError:
        # lecturer_id / matric_no already taken, or a concurrent signup won the email.
        logger.info("Registration rejected for duplicate identifiers (role=%s)", user.role)
        otp.issue(None)
        return Envelope(message=REGISTER_MESSAGE, data={})
    logger.info("Registered pending %s account %s", user.role, user.id)
    otp.issue(user, background_tasks.add_task)
    return Envelope(message=REGISTER_MESSAGE, data={})


@router.post("/register/lecturer", response_model=Envelope[dict], status_code=202)
def register_lecturer(
    request: Request,
    body: RegisterLecturerRequest,
    background_tasks: BackgroundTasks,
) -> Envelope[dict]:
    """Create a pending lecturer account and mail it an OTP."""
    user = User(
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        role=Role.lecturer.value,
        lecturer_id=body.lecturer_id,
    )
    return _register(request, background_tasks, user, body.password)


@router.post("/register/student", response_model=Envelope[dict], status_code=202)
def register_student(
    request: Request,
    body: RegisterStudentRequest,
    background_tasks: BackgroundTasks,
) -> Envelope[dict]:
    """Create a pending student account and mail it an OTP."""
    user = User(
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        role=Role.student.value,
        matric_no=body.matric_no,
        admission_year=body.admission_year,
    )
    return _register(request, background_tasks, user, body.password)


@limiter.limit(_settings.login_rate_limit)
@router.post("/login", response_model=Envelope[LoginData])
def login(request: Request, body: LoginRequest, response: Response):
    """Authenticate with email and password; return a session token.

    Uses authenticate_user() which includes timing equalization. Wrong email
    and wrong password produce the same "bad_credentials" error.
    """
    user = authenticate_user(request.app.state.user_store, request.app.state.hasher, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = issue_session_token(user.id, user.role, expire_seconds=_settings.session_token_expire_seconds)
    response.headers["Cache-Control"] = "no-store"
    logger.info("User %s logged in", user.id)
    return Envelope(message="Login successful", data=LoginData(name=user.last_name, role=user.role, token=token))


@limiter.limit(_settings.otp_rate_limit)
@router.post("/reset-password", response_model=Envelope[dict], status_code=202)
def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    background_tasks: BackgroundTasks,
) -> Envelope[dict]:
    """Mail a password-reset OTP. The answer never says whether the email exists."""
    otp: OtpService = request.app.state.otp
    otp.request(body.email, background_tasks.add_task)
    return Envelope(message=RESET_MESSAGE, data={})


@limiter.limit(_settings.otp_rate_limit)
@router.post("/verify-otp", response_model=Envelope[TokenData])
def verify_otp(
    request: Request,
    body: VerifyOtpRequest,
    user_id: int = Query(..., alias="id", ge=1, description="Account id from the OTP mail"),
) -> Envelope[TokenData]:
    """Consume the account's live OTP and return a 10-minute action token.

    A wrong code, a used code and a missing code all answer 403 with the same
    message.
    """
    otp: OtpService = request.app.state.otp
    token = otp.verify(user_id, body.otp)
    return Envelope(message="OTP verified successfully", data=TokenData(token=token))


@router.post("/change-password", response_model=Envelope[dict])
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    user_id: int = Query(..., alias="id", ge=1),
    claims: ActionClaims = Depends(get_action_claims),
) -> Envelope[dict]:
    """Set a new password for the account the action token was minted for."""
    otp: OtpService = request.app.state.otp
    otp.change_password(claims, user_id, body.password)
    return Envelope(message="Password has been reset successfully", data={})
