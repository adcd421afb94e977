"""Cookie-backed sessions.

A session is nothing more than the ``auth_token`` cookie carrying a login
token. Reading a session verifies the token and re-resolves the student, so a
retired or deleted student loses access on the next request.
"""

import logging
from dataclasses import dataclass

from fastapi import Request, Response

from studyportal.models import Student
from studyportal.services.identity import IdentityResolver
from studyportal.services.tokens import TokenCodec, TokenPayload

logger = logging.getLogger(__name__)

SESSION_COOKIE = "auth_token"
REDIRECT_COUNT_COOKIE = "redirect_count"

SESSION_MAX_AGE = 60 * 60 * 24 * 7
REDIRECT_COUNTER_MAX_AGE = 60


@dataclass
class Session:
    """A verified session for an active student."""

    student: Student
    token: TokenPayload

    @property
    def email(self) -> str:
        return self.token.email


def read_token(request: Request) -> str | None:
    return request.cookies.get(SESSION_COOKIE) or None


def read_redirect_count(request: Request) -> int:
    """Parse the redirect counter cookie; anything unusable counts as 0."""
    raw = request.cookies.get(REDIRECT_COUNT_COOKIE)
    if not raw:
        return 0
    try:
        return max(int(raw), 0)
    except ValueError:
        return 0


class SessionCookies:
    """Writes and removes the session and redirect counter cookies."""

    def __init__(
        self,
        secure: bool = False,
        max_age: int = SESSION_MAX_AGE,
        redirect_counter_max_age: int = REDIRECT_COUNTER_MAX_AGE,
    ) -> None:
        self.secure = secure
        self.max_age = max_age
        self.redirect_counter_max_age = redirect_counter_max_age

    def set_session(self, response: Response, token: str) -> None:
        response.set_cookie(
            SESSION_COOKIE,
            token,
            max_age=self.max_age,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    def clear_session(self, response: Response) -> None:
        """Delete the session cookie.

        The cookie is both deleted and overwritten with an expired empty
        value; some clients only honour one of the two.
        """
        response.delete_cookie(SESSION_COOKIE, path="/", secure=self.secure, httponly=True)
        response.set_cookie(
            SESSION_COOKIE,
            "",
            max_age=0,
            expires=0,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    def force_clear_session(self, response: Response) -> None:
        self.clear_session(response)
        self.clear_redirect_count(response)

    def write_redirect_count(self, response: Response, count: int) -> None:
        response.set_cookie(
            REDIRECT_COUNT_COOKIE,
            str(count),
            max_age=self.redirect_counter_max_age,
            path="/",
            secure=self.secure,
            samesite="lax",
        )

    def clear_redirect_count(self, response: Response) -> None:
        response.delete_cookie(REDIRECT_COUNT_COOKIE, path="/", secure=self.secure)


class SessionStore(SessionCookies):
    """Session cookies plus verification of the token they carry."""

    def __init__(
        self,
        codec: TokenCodec,
        resolver: IdentityResolver,
        secure: bool = False,
        max_age: int = SESSION_MAX_AGE,
        redirect_counter_max_age: int = REDIRECT_COUNTER_MAX_AGE,
    ) -> None:
        super().__init__(
            secure=secure, max_age=max_age, redirect_counter_max_age=redirect_counter_max_age
        )
        self.codec = codec
        self.resolver = resolver

    async def get_session(self, request: Request) -> Session | None:
        """Return the verified session, or None when logged out or invalid."""
        token = read_token(request)
        if not token:
            return None

        payload = self.codec.verify(token)
        if payload is None:
            logger.debug("Session cookie holds an invalid token")
            return None

        outcome = await self.resolver.resolve_active(payload.email)
        if not outcome.is_active or outcome.student is None:
            logger.info(f"Session rejected for {payload.email}: {outcome.status.value}")
            return None

        return Session(student=outcome.student, token=payload)
