"""Authentication flows: magic links, passwords, callbacks and logout.

Every flow returns an ``AuthResult`` instead of raising, so route handlers
always get a success/failure shape they can render. A session moves through
these states:

    anonymous --request_login--> pending_verification
    pending_verification --handle_callback--> authenticated_needs_password
                                             | authenticated_complete
                                             | anonymous (on failure)
    anonymous --login_with_password--> authenticated_complete | anonymous
    authenticated_needs_password --setup_password--> authenticated_complete
    * --logout / force_logout--> anonymous
"""

import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

from fastapi import Response

from studyportal.models import Student
from studyportal.services.email import EmailService
from studyportal.services.identity import IdentityResolver, ResolveStatus
from studyportal.services.passwords import MIN_PASSWORD_LENGTH, PasswordHasher
from studyportal.services.session import Session, SessionStore
from studyportal.services.tokens import TokenCodec

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    ANONYMOUS = "anonymous"
    PENDING_VERIFICATION = "pending_verification"
    AUTHENTICATED = "authenticated"
    AUTHENTICATED_NEEDS_PASSWORD = "authenticated_needs_password"
    AUTHENTICATED_COMPLETE = "authenticated_complete"


class AuthErrorCode(str, Enum):
    INVALID_TOKEN = "invalid_token"
    USER_NOT_FOUND = "user_not_found"
    USER_RETIRED = "user_retired"
    INVALID_PASSWORD = "invalid_password"
    PASSWORD_TOO_SHORT = "password_too_short"
    UNAUTHORIZED = "unauthorized"
    SERVER_ERROR = "server_error"


_RESOLVE_ERRORS = {
    ResolveStatus.NOT_FOUND: AuthErrorCode.USER_NOT_FOUND,
    ResolveStatus.RETIRED: AuthErrorCode.USER_RETIRED,
}


def build_magic_link(app_url: str, token: str, reset: bool = False) -> str:
    """Build the callback URL that signs a student in with ``token``."""
    params = {"token": token}
    if reset:
        params["reset"] = "true"
    return f"{app_url.rstrip('/')}/api/auth/callback?{urlencode(params)}"


@dataclass
class AuthResult:
    """Outcome of an auth flow.

    ``token`` is set when the caller should start a session with it.
    """

    success: bool
    state: AuthState
    error: AuthErrorCode | None = None
    token: str | None = None
    student: Student | None = None

    @classmethod
    def failure(cls, error: AuthErrorCode) -> "AuthResult":
        return cls(success=False, state=AuthState.ANONYMOUS, error=error)

    @property
    def has_password(self) -> bool:
        return bool(self.student and self.student.has_password)


class AuthService:
    """Runs the auth flows over injected collaborators."""

    def __init__(
        self,
        codec: TokenCodec,
        resolver: IdentityResolver,
        hasher: PasswordHasher,
        sessions: SessionStore,
        email: EmailService,
        app_url: str,
    ) -> None:
        self.codec = codec
        self.resolver = resolver
        self.hasher = hasher
        self.sessions = sessions
        self.email = email
        self.app_url = app_url.rstrip("/")

    def build_magic_link(self, token: str, reset: bool = False) -> str:
        return build_magic_link(self.app_url, token, reset=reset)

    async def _dispatch_magic_link(self, email: str, link: str, reset: bool) -> None:
        # Delivery problems never fail the login itself
        valid_hours = int(self.codec.ttl.total_seconds() // 3600)
        try:
            sent = await self.email.send_magic_link(
                to=email, magic_link=link, reset=reset, valid_hours=valid_hours
            )
        except Exception as e:
            logger.error(f"Magic link dispatch to {email} raised: {e!r}")
            return
        if not sent:
            logger.warning(f"Magic link to {email} was not delivered")

    async def request_login(self, email: str, reset: bool = False) -> AuthResult:
        """Send a magic link (or a reset-flavored one) to an active student."""
        try:
            outcome = await self.resolver.resolve_active(email)
            if not outcome.is_active:
                return AuthResult.failure(_RESOLVE_ERRORS[outcome.status])

            token = self.codec.generate(email)
            link = self.build_magic_link(token, reset=reset)
            logger.debug(f"Magic link for {email}: {link}")
            await self._dispatch_magic_link(email, link, reset)

            return AuthResult(
                success=True,
                state=AuthState.PENDING_VERIFICATION,
                student=outcome.student,
            )
        except Exception:
            logger.exception(f"Login request failed for {email}")
            return AuthResult.failure(AuthErrorCode.SERVER_ERROR)

    async def handle_callback(self, token: str, reset: bool = False) -> AuthResult:
        """Exchange a magic link token for a session."""
        try:
            payload = self.codec.verify(token)
            if payload is None:
                return AuthResult.failure(AuthErrorCode.INVALID_TOKEN)

            outcome = await self.resolver.resolve_active(payload.email)
            if not outcome.is_active:
                logger.info(f"Callback rejected for {payload.email}: {outcome.status.value}")
                return AuthResult.failure(_RESOLVE_ERRORS[outcome.status])

            student = outcome.student
            if reset or not (student and student.has_password):
                state = AuthState.AUTHENTICATED_NEEDS_PASSWORD
            else:
                state = AuthState.AUTHENTICATED_COMPLETE

            return AuthResult(success=True, state=state, token=token, student=student)
        except Exception:
            logger.exception("Callback handling failed")
            return AuthResult.failure(AuthErrorCode.SERVER_ERROR)

    async def login_with_password(self, email: str, password: str) -> AuthResult:
        """Authenticate with email and password."""
        try:
            outcome = await self.resolver.resolve_active(email)
            if not outcome.is_active or outcome.student is None:
                return AuthResult.failure(_RESOLVE_ERRORS[outcome.status])

            student = outcome.student
            if not self.hasher.verify(password, student.password_hash):
                logger.info(f"Invalid password for {email}")
                return AuthResult.failure(AuthErrorCode.INVALID_PASSWORD)

            if self.hasher.needs_rehash(student.password_hash):
                upgraded = await self.resolver.save_password_hash(
                    student.id, self.hasher.hash(password)
                )
                if upgraded:
                    logger.info(f"Upgraded legacy password hash for {email}")

            return AuthResult(
                success=True,
                state=AuthState.AUTHENTICATED_COMPLETE,
                token=self.codec.generate(email),
                student=student,
            )
        except Exception:
            logger.exception(f"Password login failed for {email}")
            return AuthResult.failure(AuthErrorCode.SERVER_ERROR)

    async def setup_password(self, session: Session | None, new_password: str) -> AuthResult:
        """Set the password of the signed-in student."""
        if session is None:
            return AuthResult.failure(AuthErrorCode.UNAUTHORIZED)

        if len(new_password) < MIN_PASSWORD_LENGTH:
            return AuthResult(
                success=False,
                state=AuthState.AUTHENTICATED_NEEDS_PASSWORD,
                error=AuthErrorCode.PASSWORD_TOO_SHORT,
                student=session.student,
            )

        try:
            password_hash = self.hasher.hash(new_password)
            saved = await self.resolver.save_password_hash(session.student.id, password_hash)
        except Exception:
            logger.exception(f"Password setup failed for {session.email}")
            saved = False

        if not saved:
            return AuthResult(
                success=False,
                state=AuthState.AUTHENTICATED_NEEDS_PASSWORD,
                error=AuthErrorCode.SERVER_ERROR,
                student=session.student,
            )

        student = session.student.model_copy(update={"password_hash": password_hash})
        return AuthResult(success=True, state=AuthState.AUTHENTICATED_COMPLETE, student=student)

    def start_session(self, response: Response, result: AuthResult) -> None:
        if result.success and result.token:
            self.sessions.set_session(response, result.token)

    def logout(self, response: Response) -> None:
        self.sessions.clear_session(response)

    def force_logout(self, response: Response) -> None:
        """Logout that also resets redirect-loop tracking."""
        self.sessions.force_clear_session(response)
