"""Middleware: request context and the login/dashboard redirect guard."""

import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from studyportal.services.guard import (
    DEFAULT_LOOP_THRESHOLD,
    LOGIN_PATH,
    GuardAction,
    decide,
    is_guarded,
)
from studyportal.services.session import (
    REDIRECT_COUNT_COOKIE,
    SessionCookies,
    read_redirect_count,
    read_token,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probes hit these constantly; they are not worth an access log line
UNLOGGED_PATHS = frozenset({"/api/health"})

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return request_id_var.get()


class RequestContextFilter(logging.Filter):
    """Stamps log records with the current request ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID and logs how it finished.

    An incoming X-Request-ID is reused so IDs line up with the proxy in front
    of the app; otherwise a fresh UUID is assigned. The ID is echoed back on
    the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        context_token = request_id_var.set(request_id)
        started = time.perf_counter()
        path = request.url.path

        try:
            try:
                response = await call_next(request)
            except Exception:
                elapsed = (time.perf_counter() - started) * 1000
                logger.exception(f"{request.method} {path} raised after {elapsed:.1f}ms")
                raise

            elapsed = (time.perf_counter() - started) * 1000
            if path not in UNLOGGED_PATHS:
                logger.info(
                    f"{request.method} {path} -> {response.status_code} ({elapsed:.1f}ms)",
                    extra={"status_code": response.status_code, "duration_ms": elapsed},
                )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(context_token)


class RedirectGuardMiddleware(BaseHTTPMiddleware):
    """Redirects between login and dashboard pages based on cookie presence.

    Only page navigations (GET/HEAD on guarded paths) are inspected; API
    calls and static files pass straight through and leave the redirect
    counter alone.
    """

    def __init__(
        self,
        app: ASGIApp,
        cookies: SessionCookies | None = None,
        threshold: int = DEFAULT_LOOP_THRESHOLD,
    ) -> None:
        super().__init__(app)
        self.cookies = cookies or SessionCookies()
        self.threshold = threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if request.method not in ("GET", "HEAD") or not is_guarded(path):
            return await call_next(request)

        prior_count = read_redirect_count(request)
        decision = decide(
            path,
            has_session_cookie=read_token(request) is not None,
            prior_count=prior_count,
            threshold=self.threshold,
        )

        if decision.action == GuardAction.FORCE_LOGOUT:
            logger.warning(
                f"Redirect loop detected on {path} after {prior_count} redirects, forcing logout"
            )
            response = RedirectResponse(f"{LOGIN_PATH}?forced_logout=true")
            self.cookies.force_clear_session(response)
            return response

        if decision.action == GuardAction.REDIRECT and decision.location:
            logger.debug(f"Guard redirect {path} -> {decision.location} (count={decision.count})")
            response = RedirectResponse(decision.location)
            self.cookies.write_redirect_count(response, decision.count)
            return response

        response = await call_next(request)
        if REDIRECT_COUNT_COOKIE in request.cookies:
            self.cookies.clear_redirect_count(response)
        return response
