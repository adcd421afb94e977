"""Authentication endpoints."""

import logging

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from studyportal.api.deps import (
    AuthServiceDep,
    CurrentSessionOptional,
    MagicLinkRateLimit,
    PasswordRateLimit,
    SessionCookiesDep,
    SessionStoreDep,
)
from studyportal.services.auth import AuthErrorCode, AuthState
from studyportal.services.guard import DASHBOARD_LANDING, LOGIN_PATH

logger = logging.getLogger(__name__)

router = APIRouter()

SETUP_PASSWORD_PATH = "/dashboard/setup-password"


class EmailRequest(BaseModel):
    """Request body carrying an email address."""

    email: str | None = None


class PasswordLoginRequest(BaseModel):
    """Request body for password login."""

    email: str | None = None
    password: str | None = None


class SetupPasswordRequest(BaseModel):
    """Request body for setting a password."""

    password: str | None = None


class AuthResponse(BaseModel):
    """Response envelope for auth operations."""

    success: bool
    error: str | None = None


class SessionUser(BaseModel):
    email: str
    name: str


class CheckSessionResponse(BaseModel):
    valid: bool
    user: SessionUser | None = None


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message},
    )


def _is_local_path(path: str) -> bool:
    return path.startswith("/") and not path.startswith("//")


@router.post("/login", response_model=AuthResponse)
async def login(request: EmailRequest, auth: AuthServiceDep, _rate_limit: MagicLinkRateLimit):
    """
    Request a magic link.

    Always reports success so the response does not reveal whether the
    email belongs to a student.
    """
    email = (request.email or "").strip()
    if not email:
        return _bad_request("Email is required")

    result = await auth.request_login(email)
    if not result.success:
        logger.info(f"Magic link not sent to {email}: {result.error.value if result.error else '-'}")
    return AuthResponse(success=True)


@router.post("/forgot-password", response_model=AuthResponse)
async def forgot_password(
    request: EmailRequest, auth: AuthServiceDep, _rate_limit: MagicLinkRateLimit
):
    """Send a reset-flavored magic link."""
    email = (request.email or "").strip()
    if not email:
        return _bad_request("Email is required")

    result = await auth.request_login(email, reset=True)
    if not result.success:
        logger.info(f"Reset link not sent to {email}: {result.error.value if result.error else '-'}")
    return AuthResponse(success=True)


@router.post("/password-login", response_model=AuthResponse)
async def password_login(
    request: PasswordLoginRequest, auth: AuthServiceDep, _rate_limit: PasswordRateLimit
):
    """Sign in with email and password."""
    email = (request.email or "").strip()
    if not email or not request.password:
        return _bad_request("Email and password are required")

    result = await auth.login_with_password(email, request.password)
    response = JSONResponse(
        content=AuthResponse(
            success=result.success,
            error=result.error.value if result.error else None,
        ).model_dump(exclude_none=True)
    )
    auth.start_session(response, result)
    return response


@router.post("/setup-password", response_model=AuthResponse)
async def setup_password(
    request: SetupPasswordRequest,
    auth: AuthServiceDep,
    session: CurrentSessionOptional,
):
    """Set the password of the signed-in student."""
    result = await auth.setup_password(session, request.password or "")

    if result.error == AuthErrorCode.UNAUTHORIZED:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"success": False, "error": "Unauthorized"},
        )
    if result.error == AuthErrorCode.PASSWORD_TOO_SHORT:
        return _bad_request("Password must be at least 8 characters")

    return AuthResponse(success=result.success, error=result.error.value if result.error else None)


@router.get("/callback")
async def callback(
    auth: AuthServiceDep,
    token: str | None = None,
    reset: bool = False,
):
    """Exchange a magic link token for a session cookie."""
    if not token:
        return RedirectResponse(LOGIN_PATH)

    result = await auth.handle_callback(token, reset=reset)
    if not result.success:
        code = result.error.value if result.error else AuthErrorCode.SERVER_ERROR.value
        return RedirectResponse(f"{LOGIN_PATH}?error={code}")

    if result.state == AuthState.AUTHENTICATED_NEEDS_PASSWORD:
        target = SETUP_PASSWORD_PATH
    else:
        target = "/dashboard"

    response = RedirectResponse(target)
    auth.start_session(response, result)
    return response


@router.post("/logout", response_model=AuthResponse)
async def logout(auth: AuthServiceDep):
    """Clear the session. Safe to call when already logged out."""
    response = JSONResponse(content={"success": True})
    auth.logout(response)
    return response


@router.get("/force-logout")
async def force_logout(auth: AuthServiceDep):
    """Clear the session and redirect-loop counter, then go to login."""
    response = RedirectResponse(f"{LOGIN_PATH}?forced_logout=true")
    auth.force_logout(response)
    return response


@router.get("/check-session", response_model=CheckSessionResponse)
async def check_session(session: CurrentSessionOptional):
    """Report whether the session cookie holds a valid session."""
    if session is None:
        return CheckSessionResponse(valid=False)
    return CheckSessionResponse(
        valid=True,
        user=SessionUser(email=session.email, name=session.student.name),
    )


@router.get("/validate-session")
async def validate_session(
    sessions: SessionStoreDep,
    session: CurrentSessionOptional,
    redirect: str = Query(default=DASHBOARD_LANDING),
):
    """Send a valid session on to ``redirect``; log out an invalid one."""
    if session is not None:
        target = redirect if _is_local_path(redirect) else DASHBOARD_LANDING
        return RedirectResponse(target)

    response = RedirectResponse(f"{LOGIN_PATH}?session_invalid=true")
    sessions.clear_session(response)
    return response


@router.get("/clear-cookies")
async def clear_cookies(cookies: SessionCookiesDep):
    """Unconditionally wipe auth cookies and go to login."""
    response = RedirectResponse(LOGIN_PATH)
    cookies.force_clear_session(response)
    return response
