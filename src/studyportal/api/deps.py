"""FastAPI dependencies for dependency injection."""

import logging
from datetime import timedelta
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from studyportal.config import settings
from studyportal.services.auth import AuthService
from studyportal.services.directory import DatabaseIds, NotionDirectory, StudentDirectory
from studyportal.services.email import EmailService, email_service
from studyportal.services.identity import IdentityResolver
from studyportal.services.passwords import PasswordHasher
from studyportal.services.rate_limit import RateLimitType, check_rate_limit
from studyportal.services.session import Session, SessionCookies, SessionStore
from studyportal.services.tokens import TokenCodec

logger = logging.getLogger(__name__)


@lru_cache
def get_directory() -> StudentDirectory:
    """Shared Notion directory client."""
    return NotionDirectory(
        api_key=settings.notion_api_key,
        databases=DatabaseIds(
            students=settings.students_database_id,
            tasks=settings.tasks_database_id,
            submissions=settings.submissions_database_id,
            schedules=settings.schedules_database_id,
        ),
        base_url=settings.notion_api_url,
        notion_version=settings.notion_version,
        timeout=settings.notion_timeout,
    )


def get_email_service() -> EmailService:
    return email_service


def get_token_codec() -> TokenCodec:
    return TokenCodec(secret=settings.secret_key, ttl=timedelta(hours=settings.token_ttl_hours))


def get_password_hasher() -> PasswordHasher:
    return PasswordHasher(secret=settings.secret_key, rounds=settings.bcrypt_rounds)


def get_session_cookies() -> SessionCookies:
    return SessionCookies(
        secure=settings.secure_cookies,
        max_age=settings.session_max_age_days * 24 * 60 * 60,
        redirect_counter_max_age=settings.redirect_counter_max_age,
    )


SessionCookiesDep = Annotated[SessionCookies, Depends(get_session_cookies)]
DirectoryDep = Annotated[StudentDirectory, Depends(get_directory)]


def get_identity_resolver(directory: DirectoryDep) -> IdentityResolver:
    return IdentityResolver(directory)


def get_session_store(
    codec: Annotated[TokenCodec, Depends(get_token_codec)],
    resolver: Annotated[IdentityResolver, Depends(get_identity_resolver)],
    cookies: SessionCookiesDep,
) -> SessionStore:
    return SessionStore(
        codec=codec,
        resolver=resolver,
        secure=cookies.secure,
        max_age=cookies.max_age,
        redirect_counter_max_age=cookies.redirect_counter_max_age,
    )


SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]


def get_auth_service(
    sessions: SessionStoreDep,
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
    email: Annotated[EmailService, Depends(get_email_service)],
) -> AuthService:
    return AuthService(
        codec=sessions.codec,
        resolver=sessions.resolver,
        hasher=hasher,
        sessions=sessions,
        email=email,
        app_url=settings.app_url,
    )


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


async def get_current_session_optional(
    request: Request, sessions: SessionStoreDep
) -> Session | None:
    """Get the verified session if there is one, None otherwise."""
    return await sessions.get_session(request)


async def get_current_session(
    session: Annotated[Session | None, Depends(get_current_session_optional)],
) -> Session:
    """Get the verified session or raise 401."""
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return session


CurrentSession = Annotated[Session, Depends(get_current_session)]
CurrentSessionOptional = Annotated[Session | None, Depends(get_current_session_optional)]


class RateLimitDependency:
    """Refuses requests over the budget for ``limit_type`` with a 429."""

    def __init__(self, limit_type: RateLimitType) -> None:
        self.limit_type = limit_type

    async def __call__(self, request: Request) -> None:
        result = await check_rate_limit(request, self.limit_type)
        if result.allowed:
            return

        headers = result.headers()
        logger.warning(f"Rate limit {self.limit_type.value} exceeded for {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests. Try again in {headers['Retry-After']} seconds.",
            headers=headers,
        )


MagicLinkRateLimit = Annotated[None, Depends(RateLimitDependency(RateLimitType.MAGIC_LINK))]
PasswordRateLimit = Annotated[None, Depends(RateLimitDependency(RateLimitType.PASSWORD))]
ApiRateLimit = Annotated[None, Depends(RateLimitDependency(RateLimitType.API))]
