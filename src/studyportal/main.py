"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studyportal.api import pages
from studyportal.api.deps import get_directory, get_session_cookies
from studyportal.api.middleware import RedirectGuardMiddleware, RequestContextMiddleware
from studyportal.api.router import api_router
from studyportal.config import settings
from studyportal.logging import setup_logging

logger = logging.getLogger(__name__)


def init_sentry() -> None:
    if not settings.sentry_dsn:
        return

    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        send_default_pii=False,
    )
    logger.info("Sentry enabled for %s", settings.environment)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    if not settings.notion_api_key:
        logger.warning("NOTION_API_KEY is not set; student lookups will fail")
    yield
    # Only close the Notion client if a request ever created it
    if get_directory.cache_info().currsize:
        await get_directory().close()


def create_app() -> FastAPI:
    docs = settings.debug_enabled
    application = FastAPI(
        title="Study Portal API",
        description="Student portal backed by a Notion workspace",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs" if docs else None,
        redoc_url="/api/redoc" if docs else None,
        openapi_url="/api/openapi.json" if docs else None,
    )

    # Added first so it sits innermost, inside the request context
    application.add_middleware(
        RedirectGuardMiddleware,  # type: ignore[arg-type]
        cookies=get_session_cookies(),
        threshold=settings.redirect_loop_threshold,
    )
    application.add_middleware(RequestContextMiddleware)  # type: ignore[arg-type]
    application.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    application.include_router(api_router, prefix="/api")
    application.include_router(pages.router, tags=["pages"])
    return application


if not settings.is_test:
    setup_logging()
init_sentry()

app = create_app()


if __name__ == "__main__":
    import uvicorn

    from studyportal.logging import get_uvicorn_log_config

    uvicorn.run(
        "studyportal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_config=get_uvicorn_log_config(),
    )
